"""Batch jobs - run a bulk edit in the background and track its progress."""
import logging
import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from app.config import settings
from app.database import SessionLocal
from app.exceptions import NotFoundError, TransportError
from app.services.audit_service import audit_service
from app.services.batch_service import BatchExecutor, BatchResult, compute_progress
from app.services.csv_service import DEFAULT_IDENTIFIER_COLUMN, export_csv

logger = logging.getLogger(__name__)

PENDING = "pending"
RUNNING = "running"
COMPLETED = "completed"
CANCELLED = "cancelled"
FAILED = "failed"


class BatchJob:
    """One submitted bulk edit."""

    def __init__(
        self,
        label: str,
        object_type: str,
        operation: Optional[str],
        export_mode: str,
        export_key: Optional[str] = None,
        identifier_column: str = DEFAULT_IDENTIFIER_COLUMN
    ):
        self.id = uuid.uuid4().hex
        self.label = label
        self.object_type = object_type
        self.operation = operation  # audit operation, None when not audited
        self.export_mode = export_mode
        self.export_key = export_key
        self.identifier_column = identifier_column
        self.status = PENDING
        self.processed = 0
        self.total = 0
        self.progress = 0
        self.results: List[BatchResult] = []
        self.error: Optional[str] = None
        self.audit_entry_id: Optional[int] = None
        self.created_at = datetime.now(timezone.utc)
        self.finished_at: Optional[datetime] = None
        self.cancel_event = threading.Event()
        self.thread: Optional[threading.Thread] = None

    @property
    def is_finished(self) -> bool:
        return self.status in (COMPLETED, CANCELLED, FAILED)

    def update_progress(self, processed: int, total: int):
        self.processed = processed
        self.total = total
        if total > 0:
            self.progress = compute_progress(processed, total)

    def add_result(self, result: BatchResult):
        self.results.append(result)

    def to_dict(self, include_results: bool = True) -> dict:
        results = list(self.results)
        data = {
            "id": self.id,
            "label": self.label,
            "object_type": self.object_type,
            "operation": self.operation,
            "status": self.status,
            "processed": self.processed,
            "total": self.total,
            "progress": self.progress,
            "succeeded": sum(1 for r in results if r.success),
            "failed": sum(1 for r in results if not r.success),
            "error": self.error,
            "audit_entry_id": self.audit_entry_id,
            "created_at": self.created_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }
        if include_results:
            # Newest first, as the results list is shown while a job runs
            data["results"] = [r.as_dict() for r in reversed(results)]
        return data


class JobService:
    """In-process registry of batch jobs."""

    def __init__(self, session_factory=None):
        self.session_factory = session_factory or SessionLocal
        self._jobs: Dict[str, BatchJob] = {}
        self._lock = threading.Lock()

    def submit(
        self,
        client,
        label: str,
        object_type: str,
        run: Callable[[BatchExecutor], List[BatchResult]],
        operation: Optional[str] = None,
        export_mode: str = "remove",
        export_key: Optional[str] = None,
        identifier_column: str = DEFAULT_IDENTIFIER_COLUMN
    ) -> BatchJob:
        """
        Start ``run`` against a fresh executor.

        The job runs in a daemon thread, or synchronously when
        ``settings.run_jobs_inline`` is set. Finished jobs older than the
        audit retention window are dropped first.
        """
        job = BatchJob(label, object_type, operation, export_mode, export_key, identifier_column)
        with self._lock:
            self._prune()
            self._jobs[job.id] = job

        if settings.run_jobs_inline:
            self._execute(job, client, run)
        else:
            job.thread = threading.Thread(target=self._execute, args=(job, client, run), daemon=True)
            job.thread.start()

        logger.info("Submitted job %s (%s on %s)", job.id, label, object_type)
        return job

    def _prune(self):
        cutoff = datetime.now(timezone.utc) - timedelta(hours=settings.audit_retention_hours)
        expired = [
            job_id for job_id, job in self._jobs.items()
            if job.is_finished and job.finished_at and job.finished_at < cutoff
        ]
        for job_id in expired:
            del self._jobs[job_id]
        if expired:
            logger.info("Dropped %d finished jobs", len(expired))

    def _execute(self, job: BatchJob, client, run: Callable[[BatchExecutor], List[BatchResult]]):
        job.status = RUNNING
        executor = BatchExecutor(
            client,
            cancel_event=job.cancel_event,
            on_progress=job.update_progress,
            on_result=job.add_result,
        )

        try:
            run(executor)
            job.status = CANCELLED if executor.cancelled else COMPLETED
            if job.status == COMPLETED:
                job.progress = 100
        except Exception as e:
            logger.exception("Job %s failed", job.id)
            job.status = FAILED
            job.error = str(e)

        # Partial runs are audited too, so cancelled work can still be undone
        if job.operation and job.results:
            self._record(job, client)

        job.finished_at = datetime.now(timezone.utc)
        logger.info("Job %s %s: %d results", job.id, job.status, len(job.results))

    def _record(self, job: BatchJob, client):
        try:
            user_name = client.get_shop_info().get("email")
        except TransportError as e:
            logger.warning("Could not fetch shop email for audit entry: %s", e)
            user_name = None

        db = self.session_factory()
        try:
            entry = audit_service.record(
                db,
                shop_domain=client.shop_domain,
                operation=job.operation,
                object_type=job.object_type,
                results=job.results,
                user_name=user_name,
            )
            job.audit_entry_id = entry.id if entry else None
        except Exception as e:
            db.rollback()
            logger.error("Failed to record audit entry for job %s: %s", job.id, e)
        finally:
            db.close()

    def get(self, job_id: str) -> BatchJob:
        job = self._jobs.get(job_id)
        if job is None:
            raise NotFoundError(f"Job {job_id} not found")
        return job

    def cancel(self, job_id: str) -> BatchJob:
        """Ask a running job to stop after its current row."""
        job = self.get(job_id)
        if not job.is_finished:
            job.cancel_event.set()
            logger.info("Cancellation requested for job %s", job_id)
        return job

    def export(self, job_id: str) -> str:
        job = self.get(job_id)
        return export_csv(list(job.results), job.export_mode, job.export_key, job.identifier_column)


# Singleton instance
job_service = JobService()
