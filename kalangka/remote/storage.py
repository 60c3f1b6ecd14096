"""Photo upload to Supabase Storage."""

import asyncio
import logging
from pathlib import Path

from supabase import Client, create_client

from kalangka.media import timestamped_name

logger = logging.getLogger(__name__)

DEFAULT_BUCKET = "kalangka"
CONTENT_TYPE = "image/jpeg"


class BlobUploader:
    """Uploads record photos and returns their public URL.

    Upload never raises: any failure is logged and reported as None so the
    record itself can still sync without its image.

    Attributes:
        bucket: Storage bucket name.
    """

    def __init__(
        self,
        url: str = "",
        key: str = "",
        bucket: str = DEFAULT_BUCKET,
        client: Client | None = None,
    ):
        """Initialize the uploader.

        Args:
            url: Supabase project URL.
            key: Supabase API key.
            bucket: Storage bucket name.
            client: Pre-built Supabase client (skips lazy creation).
        """
        self.url = url
        self.key = key
        self.bucket = bucket
        self._client = client

    @property
    def is_configured(self) -> bool:
        return self._client is not None or bool(self.url and self.key)

    def _get_client(self) -> Client:
        """Get or create the Supabase client."""
        if self._client is None:
            if not (self.url and self.key):
                raise RuntimeError("Supabase storage is not configured")
            self._client = create_client(self.url, self.key)
        return self._client

    def get_public_url(self, object_name: str) -> str:
        """Public URL of an uploaded object."""
        return self._get_client().storage.from_(self.bucket).get_public_url(object_name)

    def _upload_sync(self, object_name: str, contents: bytes) -> str:
        bucket = self._get_client().storage.from_(self.bucket)
        bucket.upload(
            object_name,
            contents,
            {"content-type": CONTENT_TYPE, "upsert": "false"},
        )
        return bucket.get_public_url(object_name)

    def _log_failure(self, object_name: str, error: Exception) -> None:
        message = str(error)
        logger.error(f"Upload of {object_name} to bucket '{self.bucket}' failed: {message}")
        if "bucket not found" in message.lower():
            logger.error(f"Bucket '{self.bucket}' does not exist; create it as a public bucket")
        elif "forbidden" in message.lower():
            logger.error("Storage rejected the upload; check the bucket's access policies")

    async def upload(self, kind: str, record_id: str, file_path: str | None) -> str | None:
        """Upload a local photo.

        Args:
            kind: Entity kind name, used in the object name.
            record_id: Record id, used in the object name.
            file_path: Local file path.

        Returns:
            str | None: Public URL, or None when there is nothing to upload or
                the upload failed.
        """
        if not file_path:
            return None

        path = Path(file_path)
        if not await asyncio.to_thread(path.is_file):
            logger.warning(f"Image file not found: {file_path}")
            return None

        object_name = timestamped_name(kind, record_id)
        try:
            contents = await asyncio.to_thread(path.read_bytes)
            logger.info(f"Uploading {object_name} to bucket '{self.bucket}'")
            public_url = await asyncio.to_thread(self._upload_sync, object_name, contents)
        except Exception as e:
            self._log_failure(object_name, e)
            return None

        logger.info(f"Uploaded {kind} {record_id} image to {public_url}")
        return public_url
