"""Local disk storage for uploaded profile pictures."""

import os
import uuid
from pathlib import Path

from fastapi import UploadFile

from pastebox.config import get_settings
from pastebox.exceptions import InvalidUpload

ALLOWED_EXTENSIONS = {".png", ".jpg", ".jpeg", ".gif", ".webp"}
PROFILE_PICTURE_DIR = "profile_pictures"


class BlobStore:
    """Stores uploaded images under ``root`` and hands back the URL they are served from."""

    def __init__(self, root: str | Path, max_bytes: int, url_prefix: str = "/uploads") -> None:
        self.root = Path(root)
        self.max_bytes = max_bytes
        self.url_prefix = url_prefix.rstrip("/")

    def validate_upload_metadata(self, filename: str, content_type: str | None) -> None:
        """Check extension and MIME type. Raises InvalidUpload."""
        ext = Path(filename).suffix.lower()
        if ext not in ALLOWED_EXTENSIONS:
            raise InvalidUpload(f"Unsupported file type '{ext}'. Allowed: {', '.join(sorted(ALLOWED_EXTENSIONS))}")
        if content_type and not content_type.startswith("image/"):
            raise InvalidUpload(f"Invalid content type '{content_type}'. Must be an image.")

    async def store(self, upload: UploadFile) -> str:
        """Stream the upload to disk with a size limit. Returns its reference URL."""
        self.validate_upload_metadata(upload.filename or "", upload.content_type)

        ext = Path(upload.filename or "").suffix.lower()
        stored_filename = f"{uuid.uuid4().hex}{ext}"
        target_dir = self.root / PROFILE_PICTURE_DIR
        target_dir.mkdir(parents=True, exist_ok=True)

        file_path = target_dir / stored_filename
        file_size = 0
        chunk_size = 1024 * 64

        try:
            with open(file_path, "wb") as f:
                while True:
                    chunk = await upload.read(chunk_size)
                    if not chunk:
                        break
                    file_size += len(chunk)
                    if file_size > self.max_bytes:
                        raise InvalidUpload(f"File too large. Maximum: {self.max_bytes // (1024 * 1024)}MB")
                    f.write(chunk)
        except InvalidUpload:
            if file_path.exists():
                os.remove(file_path)
            raise

        if file_size == 0:
            os.remove(file_path)
            raise InvalidUpload("Uploaded file is empty.")

        return f"{self.url_prefix}/{PROFILE_PICTURE_DIR}/{stored_filename}"


_blob_store: BlobStore | None = None


def get_blob_store() -> BlobStore:
    """Get singleton blob store instance."""
    global _blob_store
    if _blob_store is None:
        settings = get_settings()
        _blob_store = BlobStore(settings.UPLOAD_DIR, max_bytes=settings.MAX_UPLOAD_SIZE_MB * 1024 * 1024)
    return _blob_store
