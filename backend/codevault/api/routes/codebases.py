"""
Codebase browsing API routes

Listings come from the ledger; file trees, content and downloads come from
the storage tier, which is authoritative for what exists.
"""
import logging
from urllib.parse import quote

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.background import BackgroundTask

from codevault.api.helpers import require_codebase_id, require_file_param
from codevault.api.schemas import CodebaseFilesResponse, CodebaseListResponse
from codevault.db.database import get_db
from codevault.services.ledger import LedgerService
from codevault.services.storage_client import (
    StorageServiceClient,
    StorageUnavailableError,
    get_storage_client,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Codebases"])

# Headers relayed from the storage tier on streamed responses
RELAYED_HEADERS = ("content-type", "content-disposition", "content-length")


def public_download_url(codebase_id: str, file_path: str) -> str:
    return f"/codebases/{codebase_id}/download?file={quote(file_path)}"


async def _relay_stream(response) -> StreamingResponse:
    headers = {k: v for k, v in response.headers.items() if k.lower() in RELAYED_HEADERS}
    return StreamingResponse(
        response.aiter_raw(),
        status_code=response.status_code,
        headers=headers,
        background=BackgroundTask(response.aclose),
    )


@router.get("/codebases", response_model=CodebaseListResponse)
async def list_codebases(db: AsyncSession = Depends(get_db)):
    """List all codebases recorded in the ledger, newest first"""
    codebases = await LedgerService.list_codebases(db)
    return CodebaseListResponse(codebases=[c.to_dict() for c in codebases])


@router.get("/codebases/{codebase_id}", response_model=CodebaseFilesResponse)
async def get_codebase_files(
    codebase_id: str,
    storage: StorageServiceClient = Depends(get_storage_client),
):
    """File tree for one codebase"""
    codebase_id = require_codebase_id(codebase_id)
    try:
        body = await storage.list_files(codebase_id)
    except StorageUnavailableError:
        raise StorageUnavailableError("Failed to retrieve files from storage")
    return CodebaseFilesResponse(directory_id=codebase_id, files=body.get("files", []))


@router.get("/codebases/{codebase_id}/content")
async def read_file_content(
    codebase_id: str,
    file: str = Query(None),
    storage: StorageServiceClient = Depends(get_storage_client),
):
    """Read one file; text comes back inline, binary as a download link"""
    codebase_id = require_codebase_id(codebase_id)
    file_path = require_file_param(file)
    try:
        body = await storage.get_content(codebase_id, file_path)
    except StorageUnavailableError:
        raise StorageUnavailableError("Failed to retrieve file from storage")

    if "download_url" in body:
        body["download_url"] = public_download_url(codebase_id, body.get("file_path", file_path))
    return body


@router.get("/codebases/{codebase_id}/download")
async def download_file(
    codebase_id: str,
    file: str = Query(None),
    storage: StorageServiceClient = Depends(get_storage_client),
):
    """Raw bytes of one file as an attachment"""
    codebase_id = require_codebase_id(codebase_id)
    file_path = require_file_param(file)
    try:
        response = await storage.open_download(codebase_id, file_path)
    except StorageUnavailableError:
        raise StorageUnavailableError("Failed to retrieve file from storage")
    return await _relay_stream(response)


@router.get("/codebases/{codebase_id}/zip")
async def download_zip(
    codebase_id: str,
    storage: StorageServiceClient = Depends(get_storage_client),
):
    """Whole codebase as a ZIP archive"""
    codebase_id = require_codebase_id(codebase_id)
    try:
        response = await storage.open_zip(codebase_id)
    except StorageUnavailableError:
        raise StorageUnavailableError("Failed to retrieve ZIP from storage")
    logger.info(f"Relaying ZIP archive for codebase {codebase_id}")
    return await _relay_stream(response)
