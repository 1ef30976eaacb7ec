"""Undo driver - replays the inverse of an audited batch exactly once."""
import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.orm import Session

from app.exceptions import BulkEditError, NotFoundError
from app.models import AuditLogEntry
from app.services import resource_locator
from app.services.audit_service import (
    audit_service,
    TAGS_ADDED,
    TAGS_REMOVED,
    METAFIELD_REMOVED,
    METAFIELD_UPDATED,
)
from app.services.batch_service import parse_tags
from app.services.metafield_values import ListMode, parse_existing, parse_list, reconcile_list

logger = logging.getLogger(__name__)


@dataclass
class RestoreRowResult:
    index: int
    id: str
    success: bool
    action: Optional[str] = None
    error: Optional[str] = None


def _target(client, entry: AuditLogEntry, identifier: str) -> str:
    """Snapshots normally hold GIDs; anything else is looked up again."""
    if resource_locator.gid_type(identifier):
        return identifier
    return resource_locator.resolve(client, entry.object_type, identifier).id


def _restore_tags_added(client, owner_id: str, row: dict) -> str:
    tags = parse_tags(row.get("tagList"))
    if not tags:
        return "skipped"
    client.remove_tags(owner_id, tags)
    return "tags-removed"


def _restore_tags_removed(client, owner_id: str, row: dict) -> str:
    tags = parse_tags(row.get("removedTags"))
    if not tags:
        return "skipped"
    client.add_tags(owner_id, tags)
    return "tags-added"


def _restore_metafield_removed(client, owner_id: str, row: dict) -> str:
    """Put a deleted metafield back. Lists are merged into whatever is there now."""
    data = row.get("data") or {}
    namespace, key, type_name, value = data.get("namespace"), data.get("key"), data.get("type"), data.get("value")
    if value is None:
        return "skipped"

    if type_name and type_name.startswith("list."):
        current = client.get_metafield(owner_id, namespace, key)
        merged = reconcile_list(current.get("value") if current else None, parse_existing(value), ListMode.MERGE)
        client.set_metafield(owner_id, namespace, key, type_name, merged)
    else:
        client.set_metafield(owner_id, namespace, key, type_name, value)
    return "metafield-set"


def _restore_metafield_updated(client, owner_id: str, row: dict) -> str:
    """Take back what an update added. Scalars are deleted outright."""
    data = row.get("data") or {}
    namespace, key, type_name, value = data.get("namespace"), data.get("key"), data.get("type"), data.get("value")
    identifier = [{"ownerId": owner_id, "namespace": namespace, "key": key}]

    if not (type_name and type_name.startswith("list.")):
        client.delete_metafields(identifier)
        return "metafield-deleted"

    current = client.get_metafield(owner_id, namespace, key)
    if not current:
        return "skipped"

    remaining = reconcile_list(current.get("value"), parse_list(value), ListMode.REMOVE_SUBSET)
    if parse_existing(remaining):
        client.set_metafield(owner_id, namespace, key, type_name, remaining)
        return "metafield-set"

    client.delete_metafields(identifier)
    return "metafield-deleted"


INVERSES = {
    TAGS_ADDED: _restore_tags_added,
    TAGS_REMOVED: _restore_tags_removed,
    METAFIELD_REMOVED: _restore_metafield_removed,
    METAFIELD_UPDATED: _restore_metafield_updated,
}


def restore_row(client, entry: AuditLogEntry, row_index: int) -> RestoreRowResult:
    """Apply the inverse of one recorded row. Errors come back in the result."""
    row = entry.value[row_index]
    identifier = row.get("id") or ""
    inverse = INVERSES.get(entry.operation)
    if inverse is None:
        return RestoreRowResult(row_index, identifier, False, error=f"Unknown operation: {entry.operation}")

    try:
        owner_id = _target(client, entry, identifier)
        action = inverse(client, owner_id, row)
    except NotFoundError:
        return RestoreRowResult(row_index, identifier, False, error=f"Could not resolve ID for: {identifier}")
    except BulkEditError as e:
        return RestoreRowResult(row_index, identifier, False, error=str(e))

    return RestoreRowResult(row_index, identifier, True, action=action)


def restore_entry(db: Session, client, entry_id: int) -> List[RestoreRowResult]:
    """
    Undo an audit entry.

    The entry is claimed before any remote call, so a second restore of the
    same entry fails with RestoreError even while the first is running.
    Rows are replayed in order and a failed row does not stop the rest.
    """
    entry = audit_service.claim_for_restore(db, entry_id)
    logger.info("Restoring %s entry %d (%d rows)", entry.operation, entry.id, len(entry.value or []))

    results = []
    try:
        for index in range(len(entry.value or [])):
            result = restore_row(client, entry, index)
            if not result.success:
                logger.warning("Restore of row %s failed: %s", result.id, result.error)
            results.append(result)
    finally:
        audit_service.finish_restore(db, entry)

    failed = sum(1 for r in results if not r.success)
    logger.info("Restore of entry %d finished: %d rows, %d failed", entry.id, len(results), failed)
    return results

