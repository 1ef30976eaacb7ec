"""Batch service - drives bulk tag and metafield edits one row at a time.

Rows are sent strictly in order: row i+1 is not sent until row i has a
response. That keeps the shop under the Admin API rate limit without a
limiter, and keeps ``results[i]`` lined up with ``rows[i]`` for the audit log
and the CSV export. A failed row is recorded and the batch moves on; nothing
is retried.
"""
import logging
import math
import threading
from dataclasses import dataclass, asdict
from typing import Callable, List, Optional

from app.config import settings
from app.exceptions import BulkEditError, NotFoundError, RemoteMutationError
from app.services import resource_locator
from app.services.metafield_values import (
    ListMode,
    MetafieldDescriptor,
    dump_list,
    is_empty_list,
    normalize_value,
    parse_existing,
    parse_list,
    reconcile_list,
    resolve_metaobject_references,
)
from app.services.pagination import walk

logger = logging.getLogger(__name__)

RESOLVE_FAILED = "Failed to fetch resource ID"


@dataclass(frozen=True)
class IdentifierRow:
    identifier: str
    value: Optional[str] = None


@dataclass
class BatchResult:
    id: str
    success: bool
    error: Optional[str] = None
    resolved_id: Optional[str] = None
    tags: Optional[List[str]] = None
    removed_tags: Optional[List[str]] = None
    data: Optional[dict] = None
    warning: Optional[str] = None

    @property
    def target_id(self) -> str:
        return self.resolved_id or self.id

    def as_dict(self) -> dict:
        out = asdict(self)
        out["errors"] = [{"message": self.error}] if self.error else []
        return out


def compute_progress(processed: int, total: int) -> int:
    """Whole percent complete, rounded down."""
    if total <= 0:
        return 0
    return min(100, math.floor(processed * 100 / total))


def parse_tags(value) -> List[str]:
    if not value:
        return []
    if isinstance(value, list):
        items = value
    else:
        items = str(value).split(",")
    return list(dict.fromkeys(t.strip() for t in items if t and t.strip()))


class BatchExecutor:
    """Runs one bulk edit against a ShopifyService-like client."""

    def __init__(
        self,
        client,
        cancel_event: Optional[threading.Event] = None,
        on_progress: Optional[Callable[[int, int], None]] = None,
        on_result: Optional[Callable[[BatchResult], None]] = None
    ):
        self.client = client
        self.cancel_event = cancel_event or threading.Event()
        self.on_progress = on_progress
        self.on_result = on_result
        self.cancelled = False

    def _should_stop(self) -> bool:
        if self.cancel_event.is_set():
            self.cancelled = True
        return self.cancelled

    def _report(self, processed: int, total: int):
        if self.on_progress:
            self.on_progress(processed, total)

    def _collect(self, results: List[BatchResult], result: BatchResult):
        results.append(result)
        if self.on_result:
            self.on_result(result)

    def _resolve(self, object_type: str, identifier: str, by_sku: bool = False) -> str:
        return resource_locator.resolve(self.client, object_type, identifier, by_sku=by_sku).id

    def _run_rows(self, rows: List[IdentifierRow], handle_row: Callable[[IdentifierRow], BatchResult], label: str) -> List[BatchResult]:
        total = len(rows)
        results: List[BatchResult] = []
        logger.info("Starting %s batch with %d rows", label, total)

        for row in rows:
            if self._should_stop():
                logger.info("%s batch cancelled after %d of %d rows", label, len(results), total)
                break

            try:
                result = handle_row(row)
            except BulkEditError as e:
                result = BatchResult(id=row.identifier, success=False, error=str(e))
            except Exception as e:
                logger.exception("Unexpected error on row %s", row.identifier)
                result = BatchResult(id=row.identifier, success=False, error=str(e) or "Unknown error")

            if not result.success:
                logger.warning("Row %s failed: %s", row.identifier, result.error)
            self._collect(results, result)
            self._report(len(results), total)

        succeeded = sum(1 for r in results if r.success)
        logger.info("Finished %s batch: %d succeeded, %d failed", label, succeeded, len(results) - succeeded)
        return results

    # ------------------------------------------------------------------
    # Tags
    # ------------------------------------------------------------------

    def run_add_tags(
        self,
        rows: List[IdentifierRow],
        object_type: str,
        tags: List[str],
        by_sku: bool = False
    ) -> List[BatchResult]:
        """Add ``tags`` (or a row's own tag list) to every row's resource."""
        def handle(row: IdentifierRow) -> BatchResult:
            try:
                resource_id = self._resolve(object_type, row.identifier, by_sku)
            except NotFoundError:
                return BatchResult(id=row.identifier, success=False, error=RESOLVE_FAILED)

            row_tags = parse_tags(row.value) or list(tags)
            if not row_tags:
                return BatchResult(id=row.identifier, success=False, error="No tags provided", resolved_id=resource_id)

            try:
                self.client.add_tags(resource_id, row_tags)
            except RemoteMutationError as e:
                return BatchResult(id=row.identifier, success=False, error=str(e), resolved_id=resource_id)
            return BatchResult(id=row.identifier, success=True, resolved_id=resource_id, tags=row_tags)

        return self._run_rows(rows, handle, "add-tags")

    def _remove_from(self, display_id: str, resource_id: str, requested: List[str], existing: List[str]) -> BatchResult:
        to_remove = [t for t in requested if t in existing]
        missing = [t for t in requested if t not in existing]

        if not to_remove:
            return BatchResult(
                id=display_id,
                success=False,
                error=f"Tags not present: {', '.join(missing)}",
                resolved_id=resource_id,
                removed_tags=[],
            )

        try:
            self.client.remove_tags(resource_id, to_remove)
        except RemoteMutationError as e:
            return BatchResult(id=display_id, success=False, error=str(e), resolved_id=resource_id, removed_tags=[])

        return BatchResult(
            id=display_id,
            success=True,
            resolved_id=resource_id,
            removed_tags=to_remove,
            warning=f"Missing tags: {', '.join(missing)}" if missing else None,
        )

    def run_remove_tags(
        self,
        rows: List[IdentifierRow],
        object_type: str,
        tags: List[str],
        by_sku: bool = False
    ) -> List[BatchResult]:
        """Remove ``tags`` from every row's resource, only where present."""
        requested = parse_tags(tags)

        def handle(row: IdentifierRow) -> BatchResult:
            try:
                resource_id = self._resolve(object_type, row.identifier, by_sku)
            except NotFoundError:
                return BatchResult(id=row.identifier, success=False, error=RESOLVE_FAILED, removed_tags=[])

            row_tags = parse_tags(row.value) or requested
            if not row_tags:
                return BatchResult(id=row.identifier, success=False, error="No tags provided", resolved_id=resource_id)

            existing = self.client.get_tags(resource_id)
            return self._remove_from(row.identifier, resource_id, row_tags, existing)

        return self._run_rows(rows, handle, "remove-tags")

    def run_remove_tags_global(self, object_type: str, tags: List[str]) -> List[BatchResult]:
        """Remove ``tags`` from every resource of the type that carries any of them."""
        requested = parse_tags(tags)
        if not requested:
            raise BulkEditError("No tags provided")

        search = " OR ".join(f'tag:"{t}"' for t in requested)
        total = self.client.count_resources(object_type, search=search)
        results: List[BatchResult] = []
        logger.info("Starting global tag removal for %s: %s (%d owners)", object_type, requested, total)

        def fetch(cursor, first):
            return self.client.fetch_owner_page(object_type, cursor, first, search=search, with_tags=True)

        for page in walk(fetch, settings.global_tag_page_size):
            for item in page.items:
                if self._should_stop():
                    break
                try:
                    result = self._remove_from(item["id"], item["id"], requested, item.get("tags") or [])
                except BulkEditError as e:
                    result = BatchResult(id=item["id"], success=False, error=str(e), removed_tags=[])
                self._collect(results, result)
            # Search counts are approximate, and 0 when unavailable
            if total < len(results) or not page.has_more:
                total = len(results) + (settings.global_tag_page_size if page.has_more else 0)
            self._report(len(results), total)
            if self.cancelled:
                break

        logger.info("Finished global tag removal: %d resources processed", len(results))
        return results

    # ------------------------------------------------------------------
    # Metafields
    # ------------------------------------------------------------------

    def _delete_if_present(self, display_id: str, owner_id: str, descriptor: MetafieldDescriptor) -> BatchResult:
        found = self.client.get_metafield(owner_id, descriptor.namespace, descriptor.key)
        if not found:
            return BatchResult(id=display_id, success=False, error="Metafield is not present", resolved_id=owner_id)

        data = {
            "ownerId": owner_id,
            "namespace": descriptor.namespace,
            "key": descriptor.key,
            "metafieldId": found.get("id"),
            "type": found.get("type") or descriptor.type,
            "value": found.get("value"),
        }
        try:
            self.client.delete_metafields([{"ownerId": owner_id, "namespace": descriptor.namespace, "key": descriptor.key}])
        except RemoteMutationError as e:
            return BatchResult(id=display_id, success=False, error=str(e), resolved_id=owner_id, data=data)
        return BatchResult(id=display_id, success=True, resolved_id=owner_id, data=data)

    def run_remove_metafield_all(self, object_type: str, descriptor: MetafieldDescriptor) -> List[BatchResult]:
        """Delete a metafield from every owner of the type, a page at a time."""
        total = self.client.count_resources(object_type)
        results: List[BatchResult] = []
        logger.info("Starting store-wide removal of %s.%s on %s (%d owners)",
                    descriptor.namespace, descriptor.key, object_type, total)

        def fetch(cursor, first):
            return self.client.fetch_owner_page(object_type, cursor, first)

        for page in walk(fetch, settings.owner_page_size):
            for item in page.items:
                if self._should_stop():
                    break
                owner_id = item["id"]
                try:
                    result = self._delete_if_present(owner_id, owner_id, descriptor)
                except BulkEditError as e:
                    result = BatchResult(id=owner_id, success=False, error=str(e))
                self._collect(results, result)
            self._report(len(results), total)
            if self.cancelled:
                break

        logger.info("Finished store-wide metafield removal: %d owners processed", len(results))
        return results

    def run_remove_metafield(
        self,
        rows: List[IdentifierRow],
        object_type: str,
        descriptor: MetafieldDescriptor
    ) -> List[BatchResult]:
        """Delete a metafield from the owners listed in a CSV."""
        def handle(row: IdentifierRow) -> BatchResult:
            try:
                owner_id = self._resolve(object_type, row.identifier)
            except NotFoundError:
                return BatchResult(id=row.identifier, success=False, error=f"Could not resolve ID for: {row.identifier}")
            return self._delete_if_present(row.identifier, owner_id, descriptor)

        return self._run_rows(rows, handle, "remove-metafield")

    def run_update_metafield(
        self,
        rows: List[IdentifierRow],
        object_type: str,
        descriptor: MetafieldDescriptor,
        list_mode: ListMode = ListMode.MERGE
    ) -> List[BatchResult]:
        """
        Set a metafield from CSV values.

        List types are reconciled against the stored list; a list that ends
        up empty deletes the metafield. In the two remove modes the recorded
        value is what was actually taken out, so undo can merge it back.
        """
        list_mode = ListMode(list_mode)

        def handle(row: IdentifierRow) -> BatchResult:
            # Normalize first so bad values fail before any remote call
            normalized = normalize_value(descriptor.type, row.value)

            try:
                owner_id = self._resolve(object_type, row.identifier)
            except NotFoundError:
                return BatchResult(id=row.identifier, success=False, error=f"Could not resolve ID for: {row.identifier}")

            if not descriptor.is_list:
                if descriptor.is_metaobject_reference:
                    normalized = resolve_metaobject_references(self.client, descriptor, [normalized])[0]
                self.client.set_metafield(owner_id, descriptor.namespace, descriptor.key, descriptor.type, normalized)
                return self._update_result(row, owner_id, descriptor, normalized)

            incoming = parse_list(normalized)
            if descriptor.is_metaobject_reference:
                incoming = resolve_metaobject_references(self.client, descriptor, incoming)

            existing = self.client.get_metafield(owner_id, descriptor.namespace, descriptor.key)
            existing_value = existing.get("value") if existing else None

            new_value = reconcile_list(existing_value, incoming, list_mode)
            applied = incoming
            if list_mode is ListMode.REMOVE_SUBSET:
                current = parse_existing(existing_value)
                applied = [v for v in incoming if v in current]
                if not applied:
                    return BatchResult(id=row.identifier, success=False, error="Values not present", resolved_id=owner_id)
            elif list_mode is ListMode.REMOVE_ALL:
                if existing is None:
                    return BatchResult(id=row.identifier, success=False, error="Metafield is not present", resolved_id=owner_id)
                applied = parse_existing(existing_value)

            if is_empty_list(new_value):
                if existing is not None:
                    self.client.delete_metafields([{"ownerId": owner_id, "namespace": descriptor.namespace, "key": descriptor.key}])
            else:
                self.client.set_metafield(owner_id, descriptor.namespace, descriptor.key, descriptor.type, new_value)

            return self._update_result(row, owner_id, descriptor, dump_list(applied))

        return self._run_rows(rows, handle, "update-metafield")

    @staticmethod
    def _update_result(row: IdentifierRow, owner_id: str, descriptor: MetafieldDescriptor, value: str) -> BatchResult:
        return BatchResult(
            id=row.identifier,
            success=True,
            resolved_id=owner_id,
            data={
                "namespace": descriptor.namespace,
                "key": descriptor.key,
                "type": descriptor.type,
                "value": value,
            },
        )
