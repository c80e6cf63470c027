from fastapi import APIRouter
from mediavault.modules.assets.router import router as assets_router
from mediavault.modules.quota.router import router as quota_router

api_router = APIRouter()
api_router.include_router(assets_router, prefix="/assets", tags=["assets"])
api_router.include_router(quota_router, tags=["quota"])

@api_router.get("/health", tags=["health"])
async def health():
    return {"status": "ok"}
