"""Audit log service - records completed batches so they can be undone."""
import logging
from datetime import datetime, timezone, timedelta
from typing import List, Optional

from sqlalchemy import desc, update
from sqlalchemy.orm import Session

from app.config import settings
from app.exceptions import NotFoundError, RestoreError, ValidationError
from app.models import AuditLogEntry

logger = logging.getLogger(__name__)

TAGS_ADDED = "Tags-Added"
TAGS_REMOVED = "Tags-removed"
METAFIELD_REMOVED = "Metafield-removed"
METAFIELD_UPDATED = "Metafield-updated"

OPERATIONS = (TAGS_ADDED, TAGS_REMOVED, METAFIELD_REMOVED, METAFIELD_UPDATED)


def snapshot(operation: str, results) -> List[dict]:
    """
    Reduce batch results to what undo needs. Failed rows are dropped.

    Tags-Added        -> {id, tagList, success}
    Tags-removed      -> {id, removedTags}
    Metafield-*       -> {id, data: {namespace, key, type, value}}
    """
    values = []
    for r in results:
        if not r.success:
            continue
        if operation == TAGS_ADDED:
            values.append({"id": r.target_id, "tagList": ", ".join(r.tags or []), "success": "true"})
        elif operation == TAGS_REMOVED:
            values.append({"id": r.target_id, "removedTags": list(r.removed_tags or [])})
        else:
            data = r.data or {}
            values.append({
                "id": r.target_id,
                "data": {
                    "namespace": data.get("namespace"),
                    "key": data.get("key"),
                    "type": data.get("type"),
                    "value": data.get("value"),
                },
            })
    return values


class AuditService:
    """Service for audit log operations."""

    def cleanup_expired(self, db: Session, hours: Optional[int] = None) -> int:
        """Delete entries older than the retention window, for every shop."""
        cutoff = datetime.now(timezone.utc) - timedelta(hours=hours or settings.audit_retention_hours)
        deleted = db.query(AuditLogEntry).filter(AuditLogEntry.time < cutoff).delete(synchronize_session=False)
        db.commit()
        if deleted:
            logger.info("Deleted %d expired audit entries", deleted)
        return deleted

    def record(
        self,
        db: Session,
        shop_domain: str,
        operation: str,
        object_type: str,
        results,
        user_name: Optional[str] = None
    ) -> Optional[AuditLogEntry]:
        """Write one entry for a finished batch. Returns None when nothing succeeded."""
        if operation not in OPERATIONS:
            raise ValidationError(f"Unknown operation: {operation}")

        # Cleanup on write; there is no scheduled sweep
        try:
            self.cleanup_expired(db)
        except Exception as e:
            db.rollback()
            logger.error("Audit cleanup failed (non-fatal): %s", e)

        values = snapshot(operation, results)
        if not values:
            logger.info("No successful rows for %s, nothing recorded", operation)
            return None

        entry = AuditLogEntry(
            user_name=user_name or "unknown@shop.com",
            operation=operation,
            value=values,
            object_type=object_type,
            myshopify_domain=shop_domain,
            time=datetime.now(timezone.utc),
            restore=True,
            restore_status="active",
        )
        db.add(entry)
        db.commit()
        db.refresh(entry)
        logger.info("Recorded %s entry %d with %d rows for %s", operation, entry.id, len(values), shop_domain)
        return entry

    def list_entries(self, db: Session, shop_domain: str) -> List[AuditLogEntry]:
        """Entries for one shop, newest first."""
        return db.query(AuditLogEntry).filter(
            AuditLogEntry.myshopify_domain == shop_domain
        ).order_by(desc(AuditLogEntry.time), desc(AuditLogEntry.id)).all()

    def get_entry(self, db: Session, entry_id: int) -> Optional[AuditLogEntry]:
        return db.query(AuditLogEntry).filter(AuditLogEntry.id == entry_id).first()

    def delete_entries(
        self,
        db: Session,
        entry_id: Optional[int] = None,
        operation: Optional[str] = None,
        shop_domain: Optional[str] = None,
        older_than_hours: Optional[float] = None
    ) -> int:
        """Delete entries matching every given condition. At least one is required."""
        if not any([entry_id, operation, shop_domain, older_than_hours]):
            raise ValidationError("No delete condition provided")

        query = db.query(AuditLogEntry)
        if entry_id:
            query = query.filter(AuditLogEntry.id == entry_id)
        if operation:
            query = query.filter(AuditLogEntry.operation == operation)
        if shop_domain:
            query = query.filter(AuditLogEntry.myshopify_domain == shop_domain)
        if older_than_hours:
            cutoff = datetime.now(timezone.utc) - timedelta(hours=older_than_hours)
            query = query.filter(AuditLogEntry.time < cutoff)

        deleted = query.delete(synchronize_session=False)
        db.commit()
        return deleted

    def mark_consumed(self, db: Session, entry_id: int) -> bool:
        """Take an entry out of the restorable set without replaying it."""
        result = db.execute(
            update(AuditLogEntry)
            .where(AuditLogEntry.id == entry_id)
            .values(restore=False, restore_status="consumed")
        )
        db.commit()
        return result.rowcount > 0

    def claim_for_restore(self, db: Session, entry_id: int) -> AuditLogEntry:
        """
        Atomically move an entry from active to restoring.

        The conditional update only matches while the entry is still active,
        so two concurrent restores cannot both claim it.
        """
        result = db.execute(
            update(AuditLogEntry)
            .where(AuditLogEntry.id == entry_id, AuditLogEntry.restore_status == "active")
            .values(restore=False, restore_status="restoring")
        )
        db.commit()

        entry = self.get_entry(db, entry_id)
        if entry is None:
            raise NotFoundError(f"Audit entry {entry_id} not found")
        if result.rowcount != 1:
            raise RestoreError(f"Audit entry {entry_id} has already been restored")
        db.refresh(entry)
        return entry

    def finish_restore(self, db: Session, entry: AuditLogEntry):
        entry.restore = False
        entry.restore_status = "consumed"
        entry.restored_at = datetime.now(timezone.utc)
        db.commit()


audit_service = AuditService()
