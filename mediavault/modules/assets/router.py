import uuid
from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession
from mediavault.core.config import settings
from mediavault.core.db import get_session
from mediavault.core.security import Principal, get_principal, require_scopes
from mediavault.modules.assets.models import MediaAsset
from mediavault.modules.assets.schemas import (
    AssetOut, DeleteOut, RestorableOut, RestoreManyRequest, RestoreOut, RestoreReportOut,
    ScanEntryOut, ScanRequest, SearchHitOut, UploadOut,
)
from mediavault.modules.assets.service import AssetService
from mediavault.modules.search.service import SearchHit
from mediavault.platform.provider_registry import registry

router = APIRouter()

def get_asset_service(session: AsyncSession = Depends(get_session)) -> AssetService:
    return AssetService(session, registry.asset_store(), registry.embedding_pipeline(), bus=registry.event_bus())

def _asset_out(obj: MediaAsset) -> AssetOut:
    return AssetOut.model_validate(obj)

def _hits_out(hits: list[SearchHit]) -> list[SearchHitOut]:
    return [SearchHitOut(asset=_asset_out(h.asset), score=h.score) for h in hits]

@router.post("", response_model=UploadOut, status_code=201, dependencies=[Depends(require_scopes("assets:write"))])
async def upload_asset(
    file: UploadFile = File(...),
    principal: Principal = Depends(get_principal),
    service: AssetService = Depends(get_asset_service),
):
    if file.size is not None and file.size > settings.MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail=f"File too large (>{settings.MAX_UPLOAD_BYTES} bytes)")
    data = await file.read()
    if len(data) > settings.MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=413, detail=f"File too large (>{settings.MAX_UPLOAD_BYTES} bytes)")
    if not data:
        raise HTTPException(status_code=400, detail="Empty file")
    res = await service.upload(principal.owner_id, data, file.filename or "upload", file.content_type)
    return UploadOut(
        asset=_asset_out(res.asset),
        backup_error=res.backup_error,
        embedding_error=res.embedding_error,
        classification_error=res.classification_error,
    )

@router.get("", response_model=list[AssetOut])
async def list_assets(
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    principal: Principal = Depends(get_principal),
    service: AssetService = Depends(get_asset_service),
):
    return [_asset_out(a) for a in await service.list_assets(principal.owner_id, limit=limit, offset=offset)]

@router.get("/search", response_model=list[SearchHitOut])
async def search_assets(
    q: str = Query("", max_length=500),
    principal: Principal = Depends(get_principal),
    service: AssetService = Depends(get_asset_service),
):
    return _hits_out(await service.search(principal.owner_id, q))

@router.post("/reconcile/scan", response_model=list[ScanEntryOut])
async def scan_missing(
    body: ScanRequest | None = None,
    principal: Principal = Depends(get_principal),
    service: AssetService = Depends(get_asset_service),
):
    entries = await service.scan_missing(principal.owner_id, body.asset_ids if body else None)
    return [ScanEntryOut(id=e.id, is_missing=e.is_missing) for e in entries]

@router.get("/restorable", response_model=list[RestorableOut])
async def list_restorable(
    principal: Principal = Depends(get_principal),
    service: AssetService = Depends(get_asset_service),
):
    items = await service.list_restorable(principal.owner_id)
    return [RestorableOut(asset=_asset_out(i.asset), preview_url=i.preview_url) for i in items]

@router.post("/restore", response_model=list[RestoreReportOut], dependencies=[Depends(require_scopes("assets:write"))])
async def restore_many(
    body: RestoreManyRequest,
    principal: Principal = Depends(get_principal),
    service: AssetService = Depends(get_asset_service),
):
    reports = await service.restore_many(principal.owner_id, body.asset_ids)
    return [
        RestoreReportOut(
            asset_id=r.asset_id,
            state=r.state.value if r.state else None,
            locator=r.locator,
            error=r.error,
            error_kind=r.error_kind,
        )
        for r in reports
    ]

@router.get("/{asset_id}", response_model=AssetOut)
async def get_asset(
    asset_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    service: AssetService = Depends(get_asset_service),
):
    return _asset_out(await service.get(principal.owner_id, asset_id))

@router.get("/{asset_id}/similar", response_model=list[SearchHitOut])
async def similar_assets(
    asset_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    service: AssetService = Depends(get_asset_service),
):
    return _hits_out(await service.find_similar(principal.owner_id, asset_id))

@router.post("/{asset_id}/restore", response_model=RestoreOut, dependencies=[Depends(require_scopes("assets:write"))])
async def restore_asset(
    asset_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    service: AssetService = Depends(get_asset_service),
):
    res = await service.restore(principal.owner_id, asset_id)
    return RestoreOut(id=res.asset.id, state=res.state.value, locator=res.locator, fetched_backup=res.fetched_backup)

@router.delete("/{asset_id}", response_model=DeleteOut, dependencies=[Depends(require_scopes("assets:write"))])
async def delete_asset(
    asset_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    service: AssetService = Depends(get_asset_service),
):
    res = await service.delete(principal.owner_id, asset_id)
    return DeleteOut(id=res.asset_id, freed_bytes=res.byte_size, backup_warning=res.backup_warning)
