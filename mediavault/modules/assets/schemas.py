import uuid
from datetime import datetime
from pydantic import BaseModel, Field

class AssetOut(BaseModel):
    id: uuid.UUID
    owner_id: uuid.UUID
    original_name: str
    byte_size: int
    mime_type: str
    sha256: str
    provider_id: str
    primary_locator: str | None = None
    backup_locator: str | None = None
    category: str | None = None
    tags: list[str] | None = None
    is_indexed: bool
    is_restorable: bool
    created_at: datetime

    class Config:
        from_attributes = True

class UploadOut(BaseModel):
    asset: AssetOut
    backup_error: str | None = None
    embedding_error: str | None = None
    classification_error: str | None = None

class SearchHitOut(BaseModel):
    asset: AssetOut
    score: float | None = None

class ScanRequest(BaseModel):
    asset_ids: list[uuid.UUID] | None = None

class ScanEntryOut(BaseModel):
    id: uuid.UUID
    is_missing: bool

class RestorableOut(BaseModel):
    asset: AssetOut
    preview_url: str | None = None

class RestoreOut(BaseModel):
    id: uuid.UUID
    state: str
    locator: str
    fetched_backup: bool

class RestoreManyRequest(BaseModel):
    asset_ids: list[uuid.UUID] = Field(min_length=1)

class RestoreReportOut(BaseModel):
    asset_id: uuid.UUID
    state: str | None = None
    locator: str | None = None
    error: str | None = None
    error_kind: str | None = None

class DeleteOut(BaseModel):
    id: uuid.UUID
    freed_bytes: int
    backup_warning: str | None = None

class QuotaOut(BaseModel):
    plan: str
    usage: int
    limit: int
    remaining: int
