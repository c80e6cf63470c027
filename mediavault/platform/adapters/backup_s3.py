import asyncio
import boto3
from botocore.client import Config
from botocore.exceptions import ClientError
from mediavault.core.config import settings
from mediavault.core.errors import NotFound
from mediavault.platform.ports.backup_store import BackupStorePort

_MISSING_CODES = {"NoSuchKey", "404", "NotFound"}

class S3BackupStore(BackupStorePort):
    """Private S3/MinIO bucket holding the insurance copy of every upload."""
    def __init__(self, bucket: str | None = None):
        session = boto3.session.Session(
            aws_access_key_id=settings.S3_ACCESS_KEY,
            aws_secret_access_key=settings.S3_SECRET_KEY,
            region_name=settings.S3_REGION,
        )
        self.s3 = session.client(
            "s3",
            endpoint_url=settings.S3_ENDPOINT_URL,
            config=Config(signature_version="s3v4"),
        )
        self.bucket = bucket or settings.S3_BACKUP_BUCKET

    def _put(self, key: str, data: bytes, content_type: str, upsert: bool) -> None:
        if not upsert:
            try:
                self.s3.head_object(Bucket=self.bucket, Key=key)
            except ClientError as e:
                if e.response.get("Error", {}).get("Code") not in _MISSING_CODES:
                    raise
            else:
                raise FileExistsError(key)
        self.s3.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)

    def _get(self, key: str) -> bytes:
        try:
            obj = self.s3.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _MISSING_CODES:
                raise NotFound(f"backup object {key} not found") from e
            raise
        return obj["Body"].read()

    # boto3 is blocking; every call goes to a worker thread
    async def put(self, key: str, data: bytes, content_type: str, upsert: bool = True) -> str:
        await asyncio.to_thread(self._put, key, data, content_type, upsert)
        return key

    async def get(self, key: str) -> bytes:
        return await asyncio.to_thread(self._get, key)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self.s3.delete_object, Bucket=self.bucket, Key=key)

    async def signed_url(self, key: str, ttl_seconds: int = 3600) -> str:
        return await asyncio.to_thread(
            self.s3.generate_presigned_url,
            "get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=ttl_seconds,
        )
