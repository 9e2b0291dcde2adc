import boto3
from typing import List, Optional
from urllib.parse import quote
from botocore.exceptions import BotoCoreError, ClientError
from app.settings import Settings, settings as default_settings
from app.exceptions import StorageError
from app.image_service.models import UploadResult, BlobDescriptor
import logging

log = logging.getLogger(__name__)

OVERWRITE_REFUSED = ("PreconditionFailed", "ConditionalRequestConflict")

def _is_missing(e: ClientError) -> bool:
    return e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound")

# -------------------------
# S3 Service
# -------------------------
class S3Service:
    def __init__(self, settings: Settings = default_settings):
        self.settings = settings
        self.bucket = settings.s3_bucket
        session = boto3.session.Session(region_name=settings.aws_region)
        kwargs = {
            "aws_access_key_id": settings.aws_access_key_id,
            "aws_secret_access_key": settings.aws_secret_access_key,
        }
        if settings.aws_endpoint_url:
            kwargs["endpoint_url"] = settings.aws_endpoint_url

        self.client = session.client("s3", **kwargs)
        log.info("Initialized S3 client")

        # Ensure bucket exists at initialization
        self.ensure_bucket()

    def ensure_bucket(self):
        try:
            self.client.head_bucket(Bucket=self.bucket)
            log.debug("Bucket %s already exists", self.bucket)
        except ClientError as e:
            if _is_missing(e):
                self.client.create_bucket(Bucket=self.bucket)
                log.info("Created bucket %s", self.bucket)
            else:
                log.error("Failed to check/create bucket: %s", e)
                raise

    def exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            if _is_missing(e):
                return False
            raise

    def upload(self, data: bytes, key: str, content_type: str) -> UploadResult:
        """Stores `data` under `key`. Existing keys are never overwritten."""
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                IfNoneMatch="*",
            )
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in OVERWRITE_REFUSED:
                log.error("S3 upload of %s refused: key exists", key)
                raise StorageError(f"Failed to upload image: object '{key}' already exists")
            log.error("S3 upload of %s failed: %s", key, e)
            raise StorageError(f"Failed to upload image: {e}")
        except BotoCoreError as e:
            log.error("S3 upload of %s failed: %s", key, e)
            raise StorageError(f"Failed to upload image: {e}")
        log.debug("Uploaded %s to s3://%s/%s", key, self.bucket, key)
        return UploadResult(id=key, public_url=self.get_public_url(key))

    def delete(self, key: str):
        try:
            if not self.exists(key):
                raise StorageError(f"Failed to delete image: object '{key}' not found")
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            log.error("S3 delete of %s failed: %s", key, e)
            raise StorageError(f"Failed to delete image: {e}")
        log.debug("Deleted s3://%s/%s", self.bucket, key)

    def list(self, prefix: Optional[str] = None, limit: Optional[int] = None) -> List[BlobDescriptor]:
        """Single page of objects, capped at s3_list_limit. No continuation."""
        max_keys = min(limit or self.settings.s3_list_limit, self.settings.s3_list_limit)
        kwargs = {"Bucket": self.bucket, "MaxKeys": max_keys}
        if prefix:
            kwargs["Prefix"] = prefix
        try:
            resp = self.client.list_objects_v2(**kwargs)
        except (BotoCoreError, ClientError) as e:
            log.error("S3 list failed: %s", e)
            raise StorageError(f"Failed to list images: {e}")

        blobs = [
            BlobDescriptor(
                name=obj["Key"],
                created_at=obj["LastModified"],
                public_url=self.get_public_url(obj["Key"]),
            )
            for obj in resp.get("Contents", [])
        ]
        log.debug("Listed %d objects under %r", len(blobs), prefix)
        return blobs

    def get_public_url(self, key: str) -> str:
        quoted = quote(key)
        if self.settings.s3_public_base_url:
            return f"{self.settings.s3_public_base_url.rstrip('/')}/{quoted}"
        if self.settings.aws_endpoint_url:
            return f"{self.settings.aws_endpoint_url.rstrip('/')}/{self.bucket}/{quoted}"
        return f"https://{self.bucket}.s3.{self.settings.aws_region}.amazonaws.com/{quoted}"

    def close(self):
        log.info("Closed S3 client")
