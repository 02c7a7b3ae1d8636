import hashlib
import logging

from sqlalchemy.orm import Session

from schoolcrm.core.config import settings
from schoolcrm.core.exceptions import ValidationFailed
from schoolcrm.domains.files.storage import DEFAULT_MIME, FileStorage, UploadedFile, safe_original_name
from schoolcrm.domains.tasks.models import Attachment

logger = logging.getLogger(__name__)


class AttachmentsService:
    """Persists uploads as blobs plus ``Attachment`` rows.

    Blobs written during the current unit of work are remembered so that the
    caller can remove them when the surrounding transaction rolls back.
    """

    def __init__(self, db: Session, storage: FileStorage, max_bytes: int | None = None):
        self.db = db
        self.storage = storage
        self.max_bytes = max_bytes or settings.max_upload_bytes
        self.written: list[str] = []

    def validate(self, uploads: list[UploadedFile]) -> None:
        for upload in uploads:
            if len(upload.data) > self.max_bytes:
                raise ValidationFailed(f"File '{upload.filename}' exceeds {self.max_bytes} bytes")

    def store(self, upload: UploadedFile) -> Attachment | None:
        if not upload.data:
            logger.warning(f"Skipping empty upload {upload.filename!r}")
            return None

        sha256 = hashlib.sha256(upload.data).hexdigest()
        name = self.storage.save(upload.data, upload.filename)
        self.written.append(name)

        attachment = Attachment(
            name=name,
            original_name=safe_original_name(upload.filename),
            mime=upload.content_type or DEFAULT_MIME,
            size=len(upload.data),
            sha256=sha256,
        )
        self.db.add(attachment)
        self.db.flush()
        return attachment

    def discard_written(self) -> None:
        for name in self.written:
            self.storage.delete(name)
        self.written.clear()

    def get_by_name(self, name: str) -> Attachment | None:
        return self.db.query(Attachment).filter(Attachment.name == name).first()
