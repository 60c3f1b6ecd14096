"""Local image files attached to records.

Captured photos are copied into one directory per entity kind; remote photos
received during a pull are downloaded next to them.
"""

import asyncio
import logging
import shutil
import time
from pathlib import Path
from urllib.parse import urlparse

import httpx

logger = logging.getLogger(__name__)

DEFAULT_EXTENSION = "jpg"
DOWNLOAD_TIMEOUT = 30.0


def timestamped_name(kind: str, record_id: str, ext: str = DEFAULT_EXTENSION) -> str:
    """Build a unique file or object name for a record photo.

    Args:
        kind: Entity kind name.
        record_id: Record id.
        ext: File extension without the dot.

    Returns:
        str: ``{kind}_{id}_{epoch_millis}.{ext}``
    """
    return f"{kind}_{record_id}_{int(time.time() * 1000)}.{ext.lstrip('.')}"


def is_remote(ref: str | None) -> bool:
    """Whether an image reference is a remote URL rather than a local path."""
    return bool(ref) and ref.startswith(("http://", "https://"))


class MediaStore:
    """Per-kind image directories under a common root.

    Attributes:
        root: Root media directory.
    """

    def __init__(self, root: Path, transport: httpx.AsyncBaseTransport | None = None):
        """Initialize the media store.

        Args:
            root: Root media directory; created on first write.
            transport: Custom httpx transport for downloads (tests).
        """
        self.root = Path(root)
        self._transport = transport
        self._http_client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=DOWNLOAD_TIMEOUT, follow_redirects=True, transport=self._transport
            )
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    @staticmethod
    def is_remote(ref: str | None) -> bool:
        return is_remote(ref)

    def kind_dir(self, kind: str) -> Path:
        """Directory holding images of one kind."""
        return self.root / kind

    def _ensure_kind_dir(self, kind: str) -> Path:
        directory = self.kind_dir(kind)
        directory.mkdir(parents=True, exist_ok=True)
        return directory

    def build_filename(self, kind: str, record_id: str, ext: str = DEFAULT_EXTENSION) -> str:
        return timestamped_name(kind, record_id, ext)

    async def import_capture(self, kind: str, record_id: str, source_path: str | Path) -> str:
        """Copy a captured or picked image into the kind's directory.

        Args:
            kind: Entity kind name.
            record_id: Record the photo belongs to.
            source_path: Temporary file produced by the camera or picker.

        Returns:
            str: Local path of the stored copy.

        Raises:
            FileNotFoundError: If the source file does not exist.
        """
        source = Path(source_path)
        ext = source.suffix.lstrip(".") or DEFAULT_EXTENSION
        target = self._ensure_kind_dir(kind) / self.build_filename(kind, record_id, ext)
        await asyncio.to_thread(shutil.copyfile, source, target)
        logger.info(f"Stored {kind} image for {record_id} at {target}")
        return str(target)

    async def localize(self, kind: str, record_id: str, url: str | None) -> str | None:
        """Download a remote image so it is available offline.

        Args:
            kind: Entity kind name.
            record_id: Record the photo belongs to.
            url: Remote image URL.

        Returns:
            str | None: Local path of the download, or the original reference
                when it is not a URL or the download fails.
        """
        if not is_remote(url):
            return url

        ext = Path(urlparse(url).path).suffix.lstrip(".") or DEFAULT_EXTENSION
        try:
            client = await self._get_client()
            response = await client.get(url)
            response.raise_for_status()
            target = self._ensure_kind_dir(kind) / self.build_filename(kind, record_id, ext)
            await asyncio.to_thread(target.write_bytes, response.content)
        except (httpx.HTTPError, OSError) as e:
            logger.warning(f"Could not download {kind} image for {record_id}, keeping URL: {e}")
            return url

        logger.info(f"Downloaded {kind} image for {record_id} to {target}")
        return str(target)
