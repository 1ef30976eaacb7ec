"""API routes for the audit log and undo."""
from dataclasses import asdict
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.database import get_db
from app.exceptions import NotFoundError, status_for
from app.schemas import AuditEntryResponse, RestoreResponse
from app.services.audit_service import audit_service
from app.services.restore_service import restore_entry
from app.services.shopify_service import ShopifyService, get_shopify_service

router = APIRouter()


@router.get("", response_model=List[AuditEntryResponse])
async def list_history(
    shop: Optional[str] = None,
    db: Session = Depends(get_db),
    client: ShopifyService = Depends(get_shopify_service)
):
    """
    Audit entries for the shop, newest first.

    Defaults to the configured shop when ``shop`` is not given.
    """
    try:
        return audit_service.list_entries(db, shop or client.shop_domain)
    except Exception as e:
        raise HTTPException(status_code=status_for(e), detail=str(e))


@router.post("/{entry_id}/restore", response_model=RestoreResponse)
def restore_history_entry(
    entry_id: int,
    db: Session = Depends(get_db),
    client: ShopifyService = Depends(get_shopify_service)
):
    """
    Undo an audit entry.

    Each entry can be restored once. A second attempt returns 409.
    """
    try:
        rows = restore_entry(db, client, entry_id)
        restored = sum(1 for r in rows if r.success)
        return {
            "entry_id": entry_id,
            "restored": restored,
            "failed": len(rows) - restored,
            "rows": [asdict(r) for r in rows],
        }
    except Exception as e:
        raise HTTPException(status_code=status_for(e), detail=str(e))


@router.post("/{entry_id}/dismiss")
async def dismiss_history_entry(entry_id: int, db: Session = Depends(get_db)):
    """Mark an entry as no longer restorable without replaying it."""
    try:
        if not audit_service.mark_consumed(db, entry_id):
            raise NotFoundError(f"Audit entry {entry_id} not found")
        return {"message": f"Audit entry {entry_id} dismissed"}
    except Exception as e:
        raise HTTPException(status_code=status_for(e), detail=str(e))


@router.delete("")
async def delete_history(
    entry_id: Optional[int] = None,
    operation: Optional[str] = None,
    shop: Optional[str] = None,
    older_than_hours: Optional[float] = None,
    db: Session = Depends(get_db)
):
    """Delete entries matching all given filters. At least one is required."""
    try:
        deleted = audit_service.delete_entries(
            db,
            entry_id=entry_id,
            operation=operation,
            shop_domain=shop,
            older_than_hours=older_than_hours
        )
        return {"deleted": deleted}
    except Exception as e:
        raise HTTPException(status_code=status_for(e), detail=str(e))
