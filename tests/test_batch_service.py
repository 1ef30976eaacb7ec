import json
import threading

import pytest

from app.config import settings
from app.exceptions import BulkEditError
from app.services.batch_service import (
    RESOLVE_FAILED,
    BatchExecutor,
    IdentifierRow,
    compute_progress,
    parse_tags,
)
from app.services.metafield_values import ListMode, MetafieldDescriptor

COLOR = MetafieldDescriptor("custom", "color", "list.single_line_text_field")


def rows(*identifiers, value=None):
    return [IdentifierRow(i, value) for i in identifiers]


def test_add_tags_resolves_then_mutates_in_order(fake_client):
    fake_client.lookups["email:cust1@test.com"] = "gid://shopify/Customer/1"

    results = BatchExecutor(fake_client).run_add_tags(
        rows("cust1@test.com", "cust2@test.com"), "customer", ["VIP"]
    )

    assert [r.id for r in results] == ["cust1@test.com", "cust2@test.com"]
    assert results[0].success
    assert results[0].tags == ["VIP"]
    assert results[1].as_dict()["success"] is False
    assert results[1].as_dict()["errors"] == [{"message": RESOLVE_FAILED}]
    assert fake_client.calls == [
        ("execute", "email:cust1@test.com"),
        ("add_tags", "gid://shopify/Customer/1", ["VIP"]),
        ("execute", "email:cust2@test.com"),
    ]


def test_results_follow_input_order_when_rows_fail(fake_client):
    fake_client.lookups["email:b@test.com"] = "gid://shopify/Customer/2"
    fake_client.mutation_errors["gid://shopify/Customer/4"] = [{"message": "Tag too long"}]
    identifiers = ["a@test.com", "b@test.com", "gid://shopify/Product/1", "gid://shopify/Customer/4"]

    results = BatchExecutor(fake_client).run_add_tags(rows(*identifiers), "customer", ["VIP"])

    assert [r.id for r in results] == identifiers
    assert [r.success for r in results] == [False, True, False, False]
    assert "Product" in results[2].error
    assert results[3].error == "Tag too long"


def test_add_tags_without_tags_fails(fake_client):
    results = BatchExecutor(fake_client).run_add_tags(rows("gid://shopify/Customer/1"), "customer", [])

    assert results[0].error == "No tags provided"
    assert fake_client.calls_named("add_tags") == []


def test_row_value_overrides_tags(fake_client):
    results = BatchExecutor(fake_client).run_add_tags(
        [IdentifierRow("gid://shopify/Customer/1", "a, b")], "customer", ["VIP"]
    )
    assert results[0].tags == ["a", "b"]


def test_remove_tags_none_present_is_noop(fake_client):
    fake_client.tags["gid://shopify/Customer/1"] = ["other"]

    results = BatchExecutor(fake_client).run_remove_tags(
        rows("gid://shopify/Customer/1"), "customer", ["red", "blue"]
    )

    assert not results[0].success
    assert "red" in results[0].error and "blue" in results[0].error
    assert fake_client.calls_named("remove_tags") == []


def test_remove_tags_partial_match_warns(fake_client):
    fake_client.tags["gid://shopify/Customer/1"] = ["red", "green"]

    results = BatchExecutor(fake_client).run_remove_tags(
        rows("gid://shopify/Customer/1"), "customer", ["red", "blue"]
    )

    assert results[0].success
    assert results[0].removed_tags == ["red"]
    assert results[0].warning == "Missing tags: blue"
    assert fake_client.tags["gid://shopify/Customer/1"] == ["green"]


def test_remove_tags_global(fake_client):
    fake_client.owners = ["gid://shopify/Product/1", "gid://shopify/Product/2", "gid://shopify/Product/3"]
    fake_client.tags = {
        "gid://shopify/Product/1": ["sale", "new"],
        "gid://shopify/Product/2": ["new"],
        "gid://shopify/Product/3": ["sale"],
    }

    results = BatchExecutor(fake_client).run_remove_tags_global("product", ["sale"])

    assert [r.id for r in results] == ["gid://shopify/Product/1", "gid://shopify/Product/3"]
    assert all(r.success for r in results)
    assert fake_client.tags["gid://shopify/Product/1"] == ["new"]
    search = fake_client.calls_named("fetch_owner_page")[0][3]
    assert search == 'tag:"sale"'


def _tagged_owners(fake_client, count):
    fake_client.owners = [f"gid://shopify/Product/{i}" for i in range(count)]
    fake_client.tags = {gid: ["sale"] for gid in fake_client.owners}
    # Failed removals leave the search results stable across pages
    fake_client.mutation_errors = {gid: [{"message": "locked"}] for gid in fake_client.owners}


def test_remove_tags_global_reports_progress_from_count(fake_client):
    _tagged_owners(fake_client, 30)
    progress = []

    executor = BatchExecutor(fake_client, on_progress=lambda p, t: progress.append(compute_progress(p, t)))
    results = executor.run_remove_tags_global("product", ["sale"])

    assert len(results) == 30
    assert progress == [66, 100]
    assert fake_client.calls_named("count_resources")[0][2] == 'tag:"sale"'


def test_remove_tags_global_progress_without_count(fake_client):
    _tagged_owners(fake_client, 30)
    fake_client.total = 0
    progress = []

    executor = BatchExecutor(fake_client, on_progress=lambda p, t: progress.append(compute_progress(p, t)))
    executor.run_remove_tags_global("product", ["sale"])

    assert progress == [50, 100]


def test_results_are_streamed_as_rows_finish(fake_client):
    seen = []
    executor = BatchExecutor(fake_client, on_result=seen.append)

    results = executor.run_add_tags(rows("gid://shopify/Customer/1", "gid://shopify/Customer/2"), "customer", ["VIP"])

    assert seen == results


def test_remove_tags_global_requires_tags(fake_client):
    with pytest.raises(BulkEditError):
        BatchExecutor(fake_client).run_remove_tags_global("product", [" "])


def test_remove_metafield_all_pages_and_progress(fake_client):
    fake_client.owners = [f"gid://shopify/Product/{i}" for i in range(450)]
    fake_client.metafields[("gid://shopify/Product/3", "custom", "color")] = {
        "id": "gid://shopify/Metafield/9", "type": "list.single_line_text_field", "value": '["red"]'
    }
    progress = []

    executor = BatchExecutor(fake_client, on_progress=lambda p, t: progress.append(compute_progress(p, t)))
    results = executor.run_remove_metafield_all("product", COLOR)

    pages = fake_client.calls_named("fetch_owner_page")
    assert [(c[1], c[2]) for c in pages] == [(None, settings.owner_page_size), ("200", 200), ("400", 200)]
    assert progress == [44, 88, 100]
    assert len(results) == 450

    removed = [r for r in results if r.success]
    assert len(removed) == 1
    assert removed[0].data["value"] == '["red"]'
    assert results[0].error == "Metafield is not present"
    assert fake_client.calls_named("count_resources")


def test_remove_metafield_from_csv(fake_client):
    fake_client.lookups["handle:about"] = "gid://shopify/Page/1"
    fake_client.metafields[("gid://shopify/Page/1", "custom", "color")] = {
        "id": "gid://shopify/Metafield/1", "type": "single_line_text_field", "value": "blue"
    }
    descriptor = MetafieldDescriptor("custom", "color", "single_line_text_field")

    results = BatchExecutor(fake_client).run_remove_metafield(rows("about", "missing"), "page", descriptor)

    assert results[0].success
    assert results[0].resolved_id == "gid://shopify/Page/1"
    assert results[0].data["value"] == "blue"
    assert results[1].error == "Could not resolve ID for: missing"


def test_update_list_merges_with_current(fake_client):
    owner = "gid://shopify/Product/1"
    fake_client.metafields[(owner, "custom", "color")] = {"id": "m1", "type": COLOR.type, "value": '["red","green"]'}

    results = BatchExecutor(fake_client).run_update_metafield(
        [IdentifierRow(owner, "blue, green")], "product", COLOR
    )

    assert results[0].success
    assert json.loads(results[0].data["value"]) == ["blue", "green"]
    assert json.loads(fake_client.metafields[(owner, "custom", "color")]["value"]) == ["red", "green", "blue"]


def test_update_remove_to_empty_deletes(fake_client):
    owner = "gid://shopify/Product/1"
    fake_client.metafields[(owner, "custom", "color")] = {"id": "m1", "type": COLOR.type, "value": '["x"]'}

    results = BatchExecutor(fake_client).run_update_metafield(
        [IdentifierRow(owner, "x")], "product", COLOR, ListMode.REMOVE_SUBSET
    )

    assert results[0].success
    assert json.loads(results[0].data["value"]) == ["x"]
    assert fake_client.calls_named("set_metafield") == []
    assert len(fake_client.calls_named("delete_metafields")) == 1


def test_update_remove_values_not_present(fake_client):
    owner = "gid://shopify/Product/1"
    fake_client.metafields[(owner, "custom", "color")] = {"id": "m1", "type": COLOR.type, "value": '["x"]'}

    results = BatchExecutor(fake_client).run_update_metafield(
        [IdentifierRow(owner, "y")], "product", COLOR, ListMode.REMOVE_SUBSET
    )

    assert results[0].error == "Values not present"


def test_update_invalid_value_fails_before_remote_call(fake_client):
    descriptor = MetafieldDescriptor("custom", "count", "number_integer")

    results = BatchExecutor(fake_client).run_update_metafield(
        [IdentifierRow("some-handle", "four")], "product", descriptor
    )

    assert not results[0].success
    assert "Invalid integer" in results[0].error
    assert fake_client.calls == []


def test_update_scalar_sets_value(fake_client):
    descriptor = MetafieldDescriptor("custom", "note", "multi_line_text_field")

    results = BatchExecutor(fake_client).run_update_metafield(
        [IdentifierRow("gid://shopify/Product/1", "a\\nb")], "product", descriptor
    )

    assert results[0].data["value"] == "a\nb"
    assert fake_client.metafields[("gid://shopify/Product/1", "custom", "note")]["value"] == "a\nb"


def test_cancel_stops_between_rows(fake_client):
    cancel = threading.Event()

    def on_progress(processed, total):
        if processed == 1:
            cancel.set()

    executor = BatchExecutor(fake_client, cancel_event=cancel, on_progress=on_progress)
    results = executor.run_add_tags(
        rows("gid://shopify/Customer/1", "gid://shopify/Customer/2"), "customer", ["VIP"]
    )

    assert len(results) == 1
    assert executor.cancelled


def test_compute_progress():
    assert compute_progress(200, 450) == 44
    assert compute_progress(450, 450) == 100
    assert compute_progress(5, 0) == 0


def test_parse_tags():
    assert parse_tags("a, b,,a ") == ["a", "b"]
    assert parse_tags(["x", " y "]) == ["x", "y"]
    assert parse_tags(None) == []
