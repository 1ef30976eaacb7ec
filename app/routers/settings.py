"""Settings and configuration router."""
from typing import List
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.database import get_db
from app.schemas import SettingResponse, SettingUpdateRequest
from app.services.settings_service import settings_service, mask_value

router = APIRouter()


@router.get("/", response_model=List[SettingResponse])
async def get_all_settings(db: Session = Depends(get_db)):
    """
    Get all settings.
    Sensitive values are always masked.
    """
    result = []
    for setting in settings_service.get_all_settings(db):
        result.append({
            "id": setting.id,
            "key": setting.key,
            "value": mask_value(setting.value) if setting.is_sensitive else setting.value,
            "description": setting.description,
            "is_sensitive": setting.is_sensitive,
            "created_at": setting.created_at,
            "updated_at": setting.updated_at
        })
    return result


@router.put("/api-keys")
async def update_api_keys(
    request: SettingUpdateRequest,
    db: Session = Depends(get_db)
):
    """Update the shop domain and Admin API token."""
    try:
        updated = settings_service.update_api_keys(
            db,
            shopify_shop=request.shopify_shop,
            shopify_token=request.shopify_token
        )
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))

    return {
        "message": "API keys updated successfully",
        "updated": updated
    }
