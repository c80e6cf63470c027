from fastapi import APIRouter, Depends
from mediavault.core.security import Principal, get_principal
from mediavault.modules.assets.router import get_asset_service
from mediavault.modules.assets.schemas import QuotaOut
from mediavault.modules.assets.service import AssetService

router = APIRouter()

@router.get("/quota", response_model=QuotaOut)
async def get_quota(principal: Principal = Depends(get_principal), service: AssetService = Depends(get_asset_service)):
    q = await service.quota_status(principal.owner_id)
    return QuotaOut(plan=q.plan, usage=q.usage, limit=q.limit, remaining=q.remaining)
