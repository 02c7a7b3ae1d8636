from typing import Annotated

from fastapi import Depends, UploadFile

from schoolcrm.domains.files.storage import FileStorage, UploadedFile, get_file_storage

Storage = Annotated[FileStorage, Depends(get_file_storage)]


async def read_uploads(files: list[UploadFile]) -> list[UploadedFile]:
    """Read multipart uploads fully so services never touch ``UploadFile``."""
    uploads = []
    for file in files:
        data = await file.read()
        uploads.append(UploadedFile(filename=file.filename, content_type=file.content_type, data=data))
    return uploads
