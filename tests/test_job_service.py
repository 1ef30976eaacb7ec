import threading
from datetime import datetime, timedelta, timezone

import pytest

from app.exceptions import NotFoundError
from app.models import AuditLogEntry
from app.services.audit_service import TAGS_ADDED
from app.services.batch_service import IdentifierRow
from app.services.job_service import CANCELLED, COMPLETED, FAILED, JobService

ROWS = [IdentifierRow(f"gid://shopify/Customer/{i}") for i in range(1, 4)]


@pytest.fixture
def jobs(session_factory):
    return JobService(session_factory=session_factory)


def test_background_job_runs_and_records_audit(jobs, fake_client, session_factory):
    job = jobs.submit(
        fake_client,
        label="add-tags",
        object_type="customer",
        run=lambda ex: ex.run_add_tags(ROWS, "customer", ["VIP"]),
        operation=TAGS_ADDED,
        export_mode="add",
    )
    job.thread.join(timeout=5)

    assert job.status == COMPLETED
    assert job.progress == 100
    assert len(job.results) == 3

    db = session_factory()
    try:
        entry = db.query(AuditLogEntry).one()
        assert entry.id == job.audit_entry_id
        assert entry.myshopify_domain == fake_client.shop_domain
    finally:
        db.close()


def test_cancel_keeps_partial_results(jobs, fake_client, session_factory):
    started = threading.Event()
    release = threading.Event()

    def run(executor):
        def on_progress(processed, total):
            executor_progress(processed, total)
            if processed == 1:
                started.set()
                release.wait(timeout=5)

        executor_progress = executor.on_progress
        executor.on_progress = on_progress
        return executor.run_add_tags(ROWS, "customer", ["VIP"])

    job = jobs.submit(fake_client, "add-tags", "customer", run, operation=TAGS_ADDED, export_mode="add")
    assert started.wait(timeout=5)

    jobs.cancel(job.id)
    release.set()
    job.thread.join(timeout=5)

    assert job.status == CANCELLED
    assert len(job.results) == 1
    assert job.processed == 1
    assert job.progress == 33

    db = session_factory()
    try:
        assert len(db.query(AuditLogEntry).one().value) == 1
    finally:
        db.close()


def test_failed_job_reports_error(jobs, fake_client):
    def run(executor):
        raise RuntimeError("boom")

    job = jobs.submit(fake_client, "add-tags", "customer", run, operation=TAGS_ADDED)
    job.thread.join(timeout=5)

    assert job.status == FAILED
    assert job.error == "boom"
    assert job.audit_entry_id is None


def test_unknown_job(jobs):
    with pytest.raises(NotFoundError):
        jobs.get("missing")


def test_export_uses_job_mode(jobs, fake_client):
    job = jobs.submit(
        fake_client,
        "add-tags",
        "customer",
        lambda ex: ex.run_add_tags(ROWS[:1], "customer", ["VIP"]),
        export_mode="add",
        identifier_column="Id",
    )
    job.thread.join(timeout=5)

    assert jobs.export(job.id).splitlines() == [
        "Id,Tags,Success,Error",
        "gid://shopify/Customer/1,VIP,true,",
    ]


def test_results_visible_while_job_runs(jobs, fake_client):
    first_done = threading.Event()
    release = threading.Event()
    add_tags = fake_client.add_tags

    def slow_add_tags(resource_id, tags):
        if resource_id == ROWS[1].identifier:
            first_done.set()
            release.wait(timeout=5)
        add_tags(resource_id, tags)

    fake_client.add_tags = slow_add_tags
    job = jobs.submit(
        fake_client,
        "add-tags",
        "customer",
        lambda ex: ex.run_add_tags(ROWS, "customer", ["VIP"]),
        export_mode="add",
    )
    assert first_done.wait(timeout=5)

    midway = job.to_dict()
    export = jobs.export(job.id).splitlines()
    release.set()
    job.thread.join(timeout=5)

    assert midway["status"] == "running"
    assert midway["processed"] == 1
    assert len(midway["results"]) == midway["processed"]
    assert midway["results"][0]["id"] == ROWS[0].identifier
    assert len(export) == 2
    # newest first once finished
    assert [r["id"] for r in job.to_dict()["results"]] == [r.identifier for r in reversed(ROWS)]


def test_submit_drops_expired_finished_jobs(jobs, fake_client):
    def run(executor):
        return executor.run_add_tags(ROWS[:1], "customer", ["VIP"])

    old = jobs.submit(fake_client, "add-tags", "customer", run)
    old.thread.join(timeout=5)
    recent = jobs.submit(fake_client, "add-tags", "customer", run)
    recent.thread.join(timeout=5)
    old.finished_at = datetime.now(timezone.utc) - timedelta(hours=25)

    jobs.submit(fake_client, "add-tags", "customer", run).thread.join(timeout=5)

    with pytest.raises(NotFoundError):
        jobs.get(old.id)
    assert jobs.get(recent.id) is recent
