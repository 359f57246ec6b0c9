"""
Storage bucket for profile images and custom field attachments.
Files live on local disk under UPLOAD_DIR/<bucket>/<owner_id>/ and are
addressed by their path relative to UPLOAD_DIR.
"""
import os
import uuid
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import UploadFile

from opsdesk.config import get_settings
from opsdesk.services.errors import ValidationError, NotFoundError

settings = get_settings()
logger = logging.getLogger(__name__)

BUCKETS = ("profiles", "client-fields")

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp"}
ALLOWED_EXTENSIONS = IMAGE_EXTENSIONS | {
    ".pdf", ".txt", ".csv", ".doc", ".docx", ".xls", ".xlsx",
}


@dataclass
class StoredFile:
    path: str
    original_filename: str
    size: int
    content_type: Optional[str]

    @property
    def url(self) -> str:
        return public_url(self.path)


def public_url(path: Optional[str]) -> Optional[str]:
    if not path:
        return None
    return f"/api/files/{path}"


class StorageService:
    def __init__(self, root: Optional[str] = None, max_size: Optional[int] = None):
        self.root = root or settings.UPLOAD_DIR
        self.max_size = max_size or settings.MAX_UPLOAD_SIZE

    def resolve(self, path: str) -> str:
        """Absolute path for a stored file; rejects paths escaping the bucket root"""
        root = os.path.realpath(self.root)
        full = os.path.realpath(os.path.join(root, path))
        if not full.startswith(root + os.sep):
            raise ValidationError("Invalid file path")
        return full

    async def save(
        self,
        bucket: str,
        owner_id: int,
        upload: UploadFile,
        images_only: bool = False,
    ) -> StoredFile:
        if bucket not in BUCKETS:
            raise ValidationError(f"Unknown storage bucket: {bucket}")

        original = upload.filename or "file"
        ext = os.path.splitext(original)[1].lower()
        allowed = IMAGE_EXTENSIONS if images_only else ALLOWED_EXTENSIONS
        if ext not in allowed:
            raise ValidationError(f"File type {ext or '(none)'} not allowed")

        content = await upload.read()
        if not content:
            raise ValidationError("File is empty")
        if len(content) > self.max_size:
            raise ValidationError(
                f"File too large (max {self.max_size // (1024 * 1024)} MB)"
            )

        relative = f"{bucket}/{owner_id}/{uuid.uuid4().hex}{ext}"
        full = self.resolve(relative)
        os.makedirs(os.path.dirname(full), exist_ok=True)
        with open(full, "wb") as f:
            f.write(content)

        logger.info(f"Stored {original} as {relative} ({len(content)} bytes)")
        return StoredFile(
            path=relative,
            original_filename=original,
            size=len(content),
            content_type=upload.content_type,
        )

    def remove(self, path: Optional[str]) -> bool:
        """Delete a stored file. Missing files are not an error."""
        if not path:
            return False
        full = self.resolve(path)
        if not os.path.exists(full):
            return False
        os.remove(full)
        logger.info(f"Removed stored file {path}")
        return True

    def open_path(self, path: str) -> str:
        full = self.resolve(path)
        if not os.path.isfile(full):
            raise NotFoundError("File not found")
        return full


storage_service = StorageService()
