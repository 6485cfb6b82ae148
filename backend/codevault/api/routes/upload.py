"""
Upload API route

Files are forwarded to the storage tier first; the ledger transaction runs
only for what the storage tier actually stored.
"""
import logging
from typing import Dict, List

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException

from codevault.api.helpers import BadRequestError, UPLOAD_REJECTED_MESSAGE, check_upload_total
from codevault.api.schemas import UploadResponse
from codevault.core.config import settings
from codevault.core.logging import get_logger, log_duration
from codevault.db.database import get_db
from codevault.models import generate_uuid
from codevault.services.ledger import LedgerError, LedgerService
from codevault.services.storage_client import (
    StorageResponseError,
    StorageServiceClient,
    StorageServiceError,
    get_storage_client,
)


logger = logging.getLogger(__name__)
audit = get_logger("codevault.upload")

router = APIRouter(tags=["Upload"])


@router.post("/upload", response_model=UploadResponse)
async def upload_codebase(
    request: Request,
    db: AsyncSession = Depends(get_db),
    storage: StorageServiceClient = Depends(get_storage_client),
):
    """
    Upload a batch of files as a new codebase.

    Form fields: repeated `files` parts and optional `path_<filename>`
    relative path overrides.
    """
    try:
        form = await request.form(
            max_files=settings.MAX_FILES_PER_UPLOAD,
            max_fields=settings.MAX_FILES_PER_UPLOAD * 2 + 10,
        )
    except StarletteHTTPException:
        raise BadRequestError(UPLOAD_REJECTED_MESSAGE)

    try:
        uploads: List[UploadFile] = [f for f in form.getlist("files") if isinstance(f, UploadFile)]
        if not uploads:
            raise BadRequestError("No files uploaded")
        check_upload_total(uploads, settings.max_upload_bytes)

        paths: Dict[str, str] = {}
        for upload in uploads:
            override = form.get(f"path_{upload.filename}")
            if isinstance(override, str) and override:
                paths[upload.filename] = override

        codebase_id = generate_uuid()
        parts = [(u.filename or "", u.file, u.content_type) for u in uploads]

        try:
            with log_duration("store_files", codebase_id=codebase_id, files=len(parts)):
                stored = await storage.store_files(codebase_id, parts, paths)
        except StorageResponseError as e:
            if e.status_code == 400 and "No valid files" in e.message:
                raise BadRequestError("No valid files were uploaded")
            if e.status_code < 500:
                raise
            raise StorageServiceError(f"Failed to store files: {e.message}", 500)
        except StorageServiceError as e:
            raise StorageServiceError(f"Failed to store files: {e.message}", 500)
    finally:
        await form.close()

    stored_files = stored.get("stored_files", [])
    if not stored_files:
        raise BadRequestError("No valid files were uploaded")

    try:
        await LedgerService.record_upload(db, codebase_id, stored_files)
    except LedgerError as e:
        # Blobs are already on the storage tier; reconciliation picks them up
        audit.error(
            "Ledger write failed, blobs orphaned",
            codebase_id=codebase_id,
            files=len(stored_files),
            error=str(e),
        )
        raise

    total_size = sum(int(f["size"]) for f in stored_files)
    return UploadResponse(
        success=True,
        message=f"Successfully uploaded {len(stored_files)} files ({total_size} bytes total)",
        directory_id=codebase_id,
        uploaded_files=[f["path"] for f in stored_files],
        skipped_files=stored.get("rejected", []),
    )
