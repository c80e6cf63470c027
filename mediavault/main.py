import time
import uuid
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from dotenv import load_dotenv

# Load environment variables from .env file before anything else
load_dotenv()

from mediavault.core.config import settings
from mediavault.core.logging import request_id_ctx, setup_logging
from mediavault.core.errors import (
    BatchTooLarge, FetchFailed, MediaVaultError, NoBackupAvailable, NotFound, PrimaryStoreFailure,
    QuotaExceeded, RateLimited, RepublishFailed,
)
from mediavault.api.router import api_router
from mediavault.core.db import init_models
from mediavault.platform.provider_registry import registry
import logging


setup_logging()
app = FastAPI(title=settings.APP_NAME)
logger = logging.getLogger("mediavault.http")

@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    process_time = (time.time() - start_time) * 1000
    logger.info(
        f"Request: {request.method} {request.url.path} - Response: {response.status_code} - Time: {process_time:.2f}ms"
    )
    return response

# outermost middleware: the id is set before the request logger runs
@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("x-request-id") or uuid.uuid4().hex[:12]
    token = request_id_ctx.set(rid)
    try:
        response = await call_next(request)
    finally:
        request_id_ctx.reset(token)
    response.headers["x-request-id"] = rid
    return response

# most specific first; the first matching class wins
_STATUS_BY_ERROR: list[tuple[type[MediaVaultError], int]] = [
    (QuotaExceeded, 403),
    (NoBackupAvailable, 404),
    (NotFound, 404),
    (RateLimited, 429),
    (FetchFailed, 502),
    (RepublishFailed, 502),
    (PrimaryStoreFailure, 502),
    (BatchTooLarge, 400),
]

def status_for(exc: MediaVaultError) -> int:
    for cls, code in _STATUS_BY_ERROR:
        if isinstance(exc, cls):
            return code
    return 500

@app.exception_handler(MediaVaultError)
async def media_error_handler(request: Request, exc: MediaVaultError):
    code = status_for(exc)
    content: dict = {"message": str(exc), "error": type(exc).__name__}
    if isinstance(exc, QuotaExceeded):
        content.update(current_usage=exc.current_usage, limit=exc.limit)
    if isinstance(exc, (FetchFailed, RepublishFailed)):
        content["retryable"] = True
    headers = None
    if isinstance(exc, RateLimited) and exc.retry_after is not None:
        headers = {"Retry-After": str(int(exc.retry_after))}
    if code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}", exc_info=code == 500)
    return JSONResponse(status_code=code, content=content, headers=headers)

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.critical(f"Unhandled exception for request {request.method} {request.url.path}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"message": "An internal server error occurred."},
    )

@app.on_event("startup")
async def on_startup():
    await init_models()

@app.on_event("shutdown")
async def on_shutdown():
    await registry.aclose()


app.include_router(api_router, prefix=settings.API_PREFIX)
