import hashlib
import logging
import time
import httpx
from mediavault.core.config import settings
from mediavault.core.errors import NotFound, PrimaryStoreFailure, RateLimited
from mediavault.platform.ports.primary_store import PrimaryStorePort, PrimaryPutResult

log = logging.getLogger("primary.cloudinary")

API_BASE = "https://api.cloudinary.com/v1_1"
DELIVERY_BASE = "https://res.cloudinary.com"
RESOURCE_TYPE = "image"

# Cloudinary answers 420 (legacy) or 429 when the Admin API hourly quota is spent
_RATE_LIMIT_STATUSES = {420, 429}

def sign_params(params: dict, api_secret: str) -> str:
    """Cloudinary request signature: sha1 over sorted key=value pairs plus the secret."""
    to_sign = "&".join(f"{k}={params[k]}" for k in sorted(params) if params[k] not in (None, ""))
    return hashlib.sha1(f"{to_sign}{api_secret}".encode("utf-8")).hexdigest()

class CloudinaryPrimaryStore(PrimaryStorePort):
    def __init__(
        self,
        cloud_name: str | None = None,
        api_key: str | None = None,
        api_secret: str | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        max_batch: int | None = None,
    ):
        self.cloud_name = cloud_name or settings.CLOUDINARY_CLOUD_NAME
        self.api_key = api_key or settings.CLOUDINARY_API_KEY
        self.api_secret = api_secret or settings.CLOUDINARY_API_SECRET
        if not (self.cloud_name and self.api_key and self.api_secret):
            raise RuntimeError("CLOUDINARY_CLOUD_NAME / CLOUDINARY_API_KEY / CLOUDINARY_API_SECRET not configured")
        self.client = client or httpx.AsyncClient(timeout=settings.PRIMARY_TIMEOUT_S)
        self.max_batch = max_batch or settings.PRIMARY_EXISTS_BATCH_LIMIT

    def _signed(self, params: dict) -> dict:
        params = {**params, "timestamp": int(time.time())}
        params["signature"] = sign_params(params, self.api_secret)
        params["api_key"] = self.api_key
        return params

    def _raise_for(self, resp: httpx.Response, action: str) -> None:
        if resp.status_code in _RATE_LIMIT_STATUSES:
            retry_after = resp.headers.get("retry-after")
            raise RateLimited(
                f"cloudinary {action} rate limited",
                retry_after=float(retry_after) if retry_after and retry_after.isdigit() else None,
            )
        if resp.status_code >= 400:
            detail = resp.text[:300]
            raise PrimaryStoreFailure(f"cloudinary {action} failed: HTTP {resp.status_code} {detail}")

    async def put(self, data: bytes, provider_id: str, content_type: str) -> PrimaryPutResult:
        url = f"{API_BASE}/{self.cloud_name}/{RESOURCE_TYPE}/upload"
        form = self._signed({"public_id": provider_id, "overwrite": "true", "invalidate": "true"})
        try:
            resp = await self.client.post(url, data=form, files={"file": (provider_id.rsplit("/", 1)[-1], data, content_type)})
        except httpx.HTTPError as e:
            raise PrimaryStoreFailure(f"cloudinary upload failed: {e}") from e
        self._raise_for(resp, "upload")
        body = resp.json()
        log.debug(f"[CLOUDINARY] uploaded public_id={body.get('public_id')} version={body.get('version')}")
        return PrimaryPutResult(locator=body["secure_url"], provider_id=body.get("public_id", provider_id))

    async def exists_batch(self, provider_ids: list[str]) -> dict[str, bool]:
        if not provider_ids:
            return {}
        if len(provider_ids) > self.max_batch:
            raise ValueError(f"exists_batch takes at most {self.max_batch} ids")
        url = f"{API_BASE}/{self.cloud_name}/resources/{RESOURCE_TYPE}/upload"
        params = [("public_ids[]", pid) for pid in provider_ids] + [("max_results", str(self.max_batch))]
        try:
            resp = await self.client.get(url, params=params, auth=(self.api_key, self.api_secret))
        except httpx.HTTPError as e:
            raise PrimaryStoreFailure(f"cloudinary lookup failed: {e}") from e
        self._raise_for(resp, "lookup")
        present = {r.get("public_id") for r in resp.json().get("resources", [])}
        return {pid: pid in present for pid in provider_ids}

    async def get(self, provider_id: str) -> bytes:
        url = f"{DELIVERY_BASE}/{self.cloud_name}/{RESOURCE_TYPE}/upload/{provider_id}"
        try:
            resp = await self.client.get(url, follow_redirects=True)
        except httpx.HTTPError as e:
            raise PrimaryStoreFailure(f"cloudinary download failed: {e}") from e
        if resp.status_code == 404:
            raise NotFound(f"primary object {provider_id} not found")
        self._raise_for(resp, "download")
        return resp.content

    async def delete(self, provider_id: str) -> None:
        url = f"{API_BASE}/{self.cloud_name}/{RESOURCE_TYPE}/destroy"
        try:
            resp = await self.client.post(url, data=self._signed({"public_id": provider_id, "invalidate": "true"}))
        except httpx.HTTPError as e:
            raise PrimaryStoreFailure(f"cloudinary destroy failed: {e}") from e
        self._raise_for(resp, "destroy")
        result = resp.json().get("result")
        # "not found" means it is already gone, which is what we wanted
        if result not in ("ok", "not found"):
            raise PrimaryStoreFailure(f"cloudinary destroy returned {result!r}")

    async def aclose(self) -> None:
        await self.client.aclose()
