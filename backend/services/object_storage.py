"""Object storage backed by a Supabase Storage bucket (presigned-URL access only)."""
import logging
from typing import List, Optional

from supabase import Client

from config import STORAGE_BUCKET, SIGNED_URL_TTL

logger = logging.getLogger(__name__)


class ObjectStorage:
    """Upload, download, sign and delete objects in one private bucket."""

    def __init__(self, client: Client, bucket: str = STORAGE_BUCKET):
        self.client = client
        self.bucket = bucket
        logger.info(f"Initialized ObjectStorage with bucket: {bucket}")

    def _bucket(self):
        return self.client.storage.from_(self.bucket)

    def upload(self, path: str, data: bytes, content_type: Optional[str] = None) -> str:
        """
        Store bytes under `path`.

        Returns:
            The storage path

        Raises:
            RuntimeError: If the upload fails
        """
        file_options = {"content-type": content_type or "application/octet-stream"}
        try:
            self._bucket().upload(path, data, file_options=file_options)
        except Exception as e:
            error_msg = f"Failed to upload {path}: {str(e)}"
            logger.error(error_msg)
            raise RuntimeError(error_msg) from e

        logger.info(f"Uploaded {len(data)} bytes to {path}")
        return path

    def download(self, path: str) -> bytes:
        try:
            return self._bucket().download(path)
        except Exception as e:
            error_msg = f"Failed to download {path}: {str(e)}"
            logger.error(error_msg)
            raise RuntimeError(error_msg) from e

    def create_signed_url(self, path: str, expires_in: int = SIGNED_URL_TTL) -> Optional[str]:
        """Return a time-limited URL for `path`, or None if signing failed."""
        try:
            signed = self._bucket().create_signed_url(path, expires_in)
        except Exception as e:
            logger.error(f"Failed to sign {path}: {e}")
            return None
        # storage3 has returned both spellings across releases
        return signed.get("signedURL") or signed.get("signedUrl")

    def remove(self, path: str) -> None:
        self.remove_many([path])

    def remove_many(self, paths: List[str]) -> None:
        paths = [p for p in paths if p]
        if not paths:
            return
        try:
            self._bucket().remove(paths)
        except Exception as e:
            error_msg = f"Failed to remove {len(paths)} objects: {str(e)}"
            logger.error(error_msg)
            raise RuntimeError(error_msg) from e
        logger.info(f"Removed {len(paths)} objects from {self.bucket}")
