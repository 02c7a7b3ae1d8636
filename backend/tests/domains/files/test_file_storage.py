"""Tests for blob storage and attachment rows."""
import pytest

from schoolcrm.core.exceptions import NotFound, ValidationFailed
from schoolcrm.domains.files.service import AttachmentsService
from schoolcrm.domains.files.storage import UploadedFile, is_stored_name, safe_extension, safe_original_name


class TestNames:
    @pytest.mark.parametrize("original,expected", [
        ("report.PDF", ".pdf"),
        ("photo.jpeg", ".jpeg"),
        ("script.sh", ""),
        ("archive.tar.gz", ""),
        (None, ""),
    ])
    def test_safe_extension(self, original, expected):
        assert safe_extension(original) == expected

    def test_original_name_is_cleaned(self):
        assert safe_original_name("blob") is None
        assert safe_original_name("  План   урока<1>.docx ") == "План урока1.docx"
        assert safe_original_name("../../etc/passwd") == "....etcpasswd"

    def test_stored_name_pattern(self):
        assert is_stored_name("3f2b8a1e-0c1d-4e5f-9a8b-7c6d5e4f3a2b.pdf")
        assert not is_stored_name("../secret.pdf")
        assert not is_stored_name("3f2b8a1e-0c1d-4e5f-9a8b-7c6d5e4f3a2b/../x")


class TestFileStorage:
    def test_save_is_write_once(self, storage):
        first = storage.save(b"one", "a.txt")
        second = storage.save(b"one", "a.txt")
        assert first != second
        assert first.endswith(".txt")
        assert storage.read(first) == storage.read(second) == b"one"

    def test_read_rejects_unsafe_and_missing_names(self, storage):
        with pytest.raises(NotFound):
            storage.read("../../etc/passwd")
        with pytest.raises(NotFound):
            storage.read("3f2b8a1e-0c1d-4e5f-9a8b-7c6d5e4f3a2b.pdf")

    def test_delete_is_quiet_for_missing_blob(self, storage):
        storage.delete("3f2b8a1e-0c1d-4e5f-9a8b-7c6d5e4f3a2b.pdf")


class TestAttachmentsService:
    def test_store_records_metadata(self, db, storage):
        service = AttachmentsService(db, storage)
        attachment = service.store(UploadedFile(filename="notes.txt", content_type="text/plain", data=b"hello"))
        db.commit()

        assert attachment.size == 5
        assert attachment.sha256 == "2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824"
        assert service.get_by_name(attachment.name).id == attachment.id

    def test_empty_upload_is_skipped(self, db, storage):
        assert AttachmentsService(db, storage).store(UploadedFile("empty.txt", None, b"")) is None

    def test_discard_written(self, db, storage):
        service = AttachmentsService(db, storage)
        attachment = service.store(UploadedFile("a.png", "image/png", b"png"))
        name = attachment.name
        service.discard_written()
        with pytest.raises(NotFound):
            storage.read(name)
        assert service.written == []

    def test_validate_size(self, db, storage):
        service = AttachmentsService(db, storage, max_bytes=3)
        with pytest.raises(ValidationFailed):
            service.validate([UploadedFile("big.bin", None, b"1234")])
