import logging
from pathlib import Path
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from videorelay.errors import ConfigError, StorageError
from videorelay.settings import Settings

logger = logging.getLogger(__name__)

_MISSING_CODES = {"NoSuchKey", "404", "NotFound"}


def _error_code(e: ClientError) -> Optional[str]:
    return e.response.get("Error", {}).get("Code")


class ObjectStore:
    """S3-compatible bucket (Cloudflare R2) holding mirrored video assets."""

    def __init__(self, client, bucket: str, public_base_url: str):
        self.client = client
        self.bucket = bucket
        self.public_base_url = public_base_url.rstrip("/")

    @classmethod
    def from_settings(cls, settings: Settings) -> "ObjectStore":
        if not settings.r2_configured:
            raise ConfigError("R2 storage is not configured")
        # R2 speaks SigV4 only and ignores regions
        cfg = Config(signature_version="s3v4", region_name="auto")
        client = boto3.client(
            "s3",
            region_name="auto",
            endpoint_url=f"https://{settings.R2_ACCOUNT_ID}.r2.cloudflarestorage.com",
            aws_access_key_id=settings.R2_ACCESS_KEY_ID,
            aws_secret_access_key=settings.R2_SECRET_ACCESS_KEY,
            config=cfg,
        )
        return cls(client, settings.R2_BUCKET_NAME, settings.R2_PUBLIC_BASE_URL)

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url}/{key}"

    def upload_object(self, key: str, body: bytes, content_type: str) -> str:
        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=body, ContentType=content_type)
        except ClientError as e:
            msg = e.response.get("Error", {}).get("Message")
            raise StorageError(f"R2 upload error for {key}: {_error_code(e)} {msg}") from e
        except BotoCoreError as e:
            raise StorageError(f"R2 upload error for {key}: {e}") from e
        logger.info(f"Uploaded {key} ({len(body)} bytes, {content_type})")
        return self.public_url(key)

    def delete_object(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            code = _error_code(e)
            raise StorageError(f"R2 delete error for {key}: {code}", missing=code in _MISSING_CODES) from e
        except BotoCoreError as e:
            raise StorageError(f"R2 delete error for {key}: {e}") from e


class LocalFileStore:
    """Output directory used when assets are kept on the server's filesystem."""

    def __init__(self, output_dir: str):
        self.output_dir = Path(output_dir).resolve()

    def path_for(self, filename: str) -> Path:
        return self.output_dir / filename

    def delete_file(self, filename: str) -> None:
        path = self.path_for(filename)
        try:
            path.unlink()
        except FileNotFoundError as e:
            raise StorageError(f"{path} does not exist", missing=True) from e
        except OSError as e:
            raise StorageError(f"Error deleting {path}: {e}") from e
        logger.info(f"Deleted local file: {path}")
