"""Write-once blob storage on the local filesystem.

Blobs are stored under a random UUID name (plus a whitelisted extension) and
are never overwritten or modified in place.
"""
import logging
import os
import re
import unicodedata
import uuid
from dataclasses import dataclass
from pathlib import Path

from schoolcrm.core.config import settings
from schoolcrm.core.exceptions import NotFound

logger = logging.getLogger(__name__)

SAFE_EXTENSIONS = {
    ".pdf", ".png", ".jpg", ".jpeg", ".gif", ".webp", ".txt", ".csv",
    ".docx", ".xlsx", ".pptx", ".mp4", ".mp3", ".wav",
}

STORED_NAME_RE = re.compile(r"^[a-f0-9-]{36}(?:\.[a-z0-9]+)?$", re.IGNORECASE)

_UNSAFE_CHARS_RE = re.compile(r"[^\w.\- ]")

DEFAULT_MIME = "application/octet-stream"


@dataclass(frozen=True)
class UploadedFile:
    """A file received from a client, fully read into memory."""
    filename: str | None
    content_type: str | None
    data: bytes


def safe_extension(original_name: str | None) -> str:
    if not original_name:
        return ""
    ext = os.path.splitext(original_name)[1].lower()
    return ext if ext in SAFE_EXTENSIONS else ""


def safe_original_name(original_name: str | None) -> str | None:
    """Display name kept for downloads; browsers send "blob" for unnamed data."""
    if not original_name or original_name.lower() == "blob":
        return None
    cleaned = _UNSAFE_CHARS_RE.sub("", unicodedata.normalize("NFKC", original_name))
    cleaned = re.sub(r"\s+", " ", cleaned).strip()[:180]
    return cleaned or None


def is_stored_name(name: str) -> bool:
    return bool(STORED_NAME_RE.match(name))


class FileStorage:
    def __init__(self, base_dir: str | Path | None = None):
        self.base_dir = Path(base_dir or settings.UPLOADS_DIR)

    def path_for(self, name: str) -> Path:
        if not is_stored_name(name):
            raise NotFound("File not found")
        return self.base_dir / name

    def save(self, data: bytes, original_name: str | None = None) -> str:
        """Store ``data`` under a fresh name and return that name."""
        name = f"{uuid.uuid4()}{safe_extension(original_name)}"
        self.base_dir.mkdir(parents=True, exist_ok=True)
        with open(self.base_dir / name, "xb") as fh:
            fh.write(data)
        return name

    def read(self, name: str) -> bytes:
        try:
            return self.path_for(name).read_bytes()
        except FileNotFoundError:
            raise NotFound("File not found")

    def delete(self, name: str) -> None:
        try:
            self.path_for(name).unlink(missing_ok=True)
        except OSError:
            logger.exception(f"Could not remove stored file {name}")


def get_file_storage() -> FileStorage:
    return FileStorage()
