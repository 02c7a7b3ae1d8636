from urllib.parse import quote

from fastapi import APIRouter, Response

from schoolcrm.core.dependencies import CurrentUser, DbSession
from schoolcrm.core.exceptions import NotFound
from schoolcrm.domains.files.dependencies import Storage
from schoolcrm.domains.files.service import AttachmentsService
from schoolcrm.domains.files.storage import DEFAULT_MIME, is_stored_name

router = APIRouter()


@router.get("/{name}")
def download_file(name: str, db: DbSession, current_user: CurrentUser, storage: Storage):
    """Serve a stored blob inline under its original file name."""
    if not is_stored_name(name):
        raise NotFound("File not found")

    attachment = AttachmentsService(db, storage).get_by_name(name)
    if attachment is None:
        raise NotFound("File not found")

    data = storage.read(name)
    filename = attachment.original_name or name
    return Response(
        content=data,
        media_type=attachment.mime or DEFAULT_MIME,
        headers={"Content-Disposition": f"inline; filename*=UTF-8''{quote(filename, safe='')}"},
    )
