"""Pydantic schemas for request/response validation."""
from datetime import datetime
from typing import Optional, List, Any
from pydantic import BaseModel, Field

from app.services.metafield_values import ListMode


# ============================================================================
# Tag Schemas
# ============================================================================

class CsvUpload(BaseModel):
    object_type: str
    csv_content: str = Field(..., description="Raw CSV text, header row first")
    identifier_column: Optional[str] = Field(None, description="Defaults to the object type's column, e.g. Email")


class TagsCsvRequest(CsvUpload):
    tags: List[str] = []


class TagsGlobalRemoveRequest(BaseModel):
    object_type: str
    tags: List[str]


class TagCondition(BaseModel):
    value: str
    operator: str = "AND"


class TagSearchRequest(BaseModel):
    object_type: str
    conditions: List[TagCondition] = []
    match_type: str = "contains"


class TagSearchResponse(BaseModel):
    object_type: str
    total_tags: int
    tags: List[str]


# ============================================================================
# Metafield Schemas
# ============================================================================

class MetafieldTarget(BaseModel):
    namespace: str
    key: str
    type: str
    metaobject_type: Optional[str] = None


class MetafieldDefinitionsRequest(BaseModel):
    object_type: str


class MetafieldRemoveAllRequest(BaseModel):
    object_type: str
    metafield: MetafieldTarget


class MetafieldCsvRequest(CsvUpload):
    metafield: MetafieldTarget


class MetafieldUpdateRequest(MetafieldCsvRequest):
    list_mode: ListMode = ListMode.MERGE


# ============================================================================
# Job Schemas
# ============================================================================

class JobResultItem(BaseModel):
    id: str
    success: bool
    error: Optional[str] = None
    resolved_id: Optional[str] = None
    tags: Optional[List[str]] = None
    removed_tags: Optional[List[str]] = None
    data: Optional[dict] = None
    warning: Optional[str] = None
    errors: List[dict] = []


class JobResponse(BaseModel):
    id: str
    label: str
    object_type: str
    operation: Optional[str] = None
    status: str
    processed: int
    total: int
    progress: int
    succeeded: int
    failed: int
    error: Optional[str] = None
    audit_entry_id: Optional[int] = None
    created_at: datetime
    finished_at: Optional[datetime] = None
    results: List[JobResultItem] = []


# ============================================================================
# History Schemas
# ============================================================================

class AuditEntryResponse(BaseModel):
    id: int
    user_name: Optional[str] = None
    operation: str
    value: List[Any]
    object_type: Optional[str] = None
    myshopify_domain: str
    time: datetime
    restore: bool
    restore_status: str
    restored_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RestoreRowResponse(BaseModel):
    index: int
    id: str
    success: bool
    action: Optional[str] = None
    error: Optional[str] = None


class RestoreResponse(BaseModel):
    entry_id: int
    restored: int
    failed: int
    rows: List[RestoreRowResponse]


# ============================================================================
# Settings Schemas
# ============================================================================

class SettingResponse(BaseModel):
    id: int
    key: str
    value: Optional[str] = None  # Will be masked if sensitive
    description: Optional[str] = None
    is_sensitive: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SettingUpdateRequest(BaseModel):
    shopify_shop: Optional[str] = None
    shopify_token: Optional[str] = None
