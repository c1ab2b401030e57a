from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from teamchat.api.deps import get_storage, require_user
from teamchat.core.messages import generate_upload_url
from teamchat.core.principal import Principal
from teamchat.core.storage import BlobStorageError, LocalBlobStorage
from teamchat.db.session import get_db
from teamchat.schemas.messages import UploadedFileOut, UploadUrlOut

router = APIRouter(prefix="/files", tags=["files"])


@router.post("/upload-url", response_model=UploadUrlOut)
def upload_url(
    db: Session = Depends(get_db),
    principal: Principal = Depends(require_user),
    storage: LocalBlobStorage = Depends(get_storage),
):
    return UploadUrlOut(upload_url=generate_upload_url(db, principal, storage))


@router.post("/upload/{ticket}", response_model=UploadedFileOut)
async def upload(ticket: str, request: Request, storage: LocalBlobStorage = Depends(get_storage)):
    # the ticket itself is the credential, as with a presigned URL
    data = await request.body()
    try:
        storage_id = storage.store(ticket, data)
    except BlobStorageError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return UploadedFileOut(storage_id=storage_id)


@router.get("/{storage_id}")
def download(storage_id: str, storage: LocalBlobStorage = Depends(get_storage)):
    path = storage.path_for(storage_id)
    if path is None:
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse(path)
