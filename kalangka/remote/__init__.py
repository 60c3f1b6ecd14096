"""Remote REST API and object storage clients."""

from kalangka.remote.client import RemoteApi
from kalangka.remote.storage import BlobUploader

__all__ = ["RemoteApi", "BlobUploader"]
