"""Object storage service for lecture audio."""

import time
from io import BytesIO

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from studly.config import get_settings

settings = get_settings()


class StorageService:
    """Service for managing object storage (Supabase Storage / S3 / MinIO)."""

    def __init__(self):
        self._client = None
        self._bucket = settings.storage_bucket

    @property
    def client(self):
        """Lazy initialization of S3 client."""
        if self._client is None:
            endpoint_url = f"{'https' if settings.storage_use_ssl else 'http'}://{settings.storage_endpoint}"
            self._client = boto3.client(
                "s3",
                endpoint_url=endpoint_url,
                aws_access_key_id=settings.storage_access_key,
                aws_secret_access_key=settings.storage_secret_key,
                region_name=settings.storage_region,
                config=Config(signature_version="s3v4"),
            )
            self._ensure_bucket()
        return self._client

    def _ensure_bucket(self):
        """Create bucket if it doesn't exist."""
        try:
            self._client.head_bucket(Bucket=self._bucket)
        except ClientError:
            self._client.create_bucket(Bucket=self._bucket)

    def generate_path(self, user_id: str, content_type: str = "audio/webm") -> str:
        """Generate storage path for a user's recording: {user_id}/{timestamp_ms}{ext}."""
        timestamp = int(time.time() * 1000)
        return f"{user_id}/{timestamp}{self.get_extension(content_type)}"

    def upload_recording(
        self, content: bytes, user_id: str, content_type: str = "audio/webm"
    ) -> str:
        """
        Upload a recorded audio blob.
        Returns the storage path.
        """
        path = self.generate_path(user_id, content_type)

        self.client.upload_fileobj(
            BytesIO(content),
            self._bucket,
            path,
            ExtraArgs={"ContentType": content_type},
        )

        return path

    def generate_presigned_url(
        self, storage_path: str, expires_in: int = 3600
    ) -> str:
        """Generate a presigned URL for downloading a file."""
        return self.client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self._bucket, "Key": storage_path},
            ExpiresIn=expires_in,
        )

    def delete_recording(self, storage_path: str):
        """Delete a stored recording."""
        self.client.delete_object(Bucket=self._bucket, Key=storage_path)

    def get_extension(self, content_type: str) -> str:
        """Get file extension from content type."""
        mapping = {
            "audio/webm": ".webm",
            "audio/wav": ".wav",
            "audio/x-wav": ".wav",
            "audio/mpeg": ".mp3",
            "audio/mp3": ".mp3",
            "audio/mp4": ".m4a",
            "audio/m4a": ".m4a",
            "audio/x-m4a": ".m4a",
            "audio/ogg": ".ogg",
            "audio/flac": ".flac",
        }
        base_type = content_type.split(";")[0].strip().lower()
        return mapping.get(base_type, ".webm")

    def health_check(self) -> bool:
        """Check if storage is accessible."""
        try:
            self.client.head_bucket(Bucket=self._bucket)
            return True
        except Exception:
            return False


# Singleton instance
storage_service = StorageService()
