"""
CodeVault Storage Service

Backend storage tier: persists codebase files on disk and serves them back
as listings, content, downloads and ZIP archives. Only the API tier talks
to it.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from functools import lru_cache, partial
from urllib.parse import quote

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import FileResponse, StreamingResponse
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException

from codevault.api.exception_handlers import setup_exception_handlers
from codevault.api.middleware import BodySizeLimitMiddleware
from codevault.api.helpers import (
    BadRequestError,
    UPLOAD_REJECTED_MESSAGE,
    check_upload_total,
    require_codebase_id,
    require_file_param,
)
from codevault.api.schemas import HealthResponse
from codevault.core.config import settings
from codevault.core.logging import configure_logging
from codevault.storage import (
    SNIFF_SIZE,
    ArchiveBuilder,
    BlobStore,
    CodebaseNotFoundError,
    UploadEntry,
    UploadIngestor,
    is_text,
)

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger("codevault.storage_server")

BINARY_PLACEHOLDER = "Binary file - use download endpoint to get the file"
TOO_LARGE_PLACEHOLDER = "File too large to display - use download endpoint to get the file"


@lru_cache()
def get_blob_store() -> BlobStore:
    """Blob store rooted at STORAGE_DIR (overridden in tests)"""
    return BlobStore(settings.STORAGE_DIR)


@asynccontextmanager
async def lifespan(app: FastAPI):
    store = get_blob_store()
    store.ensure_root()
    logger.info(f"Storage service starting, storage directory: {store.root}")
    yield
    logger.info("Storage service shutting down")


app = FastAPI(
    title=f"{settings.APP_NAME} Storage",
    description="Blob storage tier for uploaded codebases",
    version=settings.APP_VERSION,
    lifespan=lifespan,
)

app.add_middleware(BodySizeLimitMiddleware, max_bytes=lambda: settings.max_upload_bytes)

setup_exception_handlers(app)


async def run_blocking(func, *args):
    """Run filesystem walks and deletes off the event loop"""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, partial(func, *args))


def _download_path(codebase_id: str, file_path: str) -> str:
    return f"/download/{codebase_id}?file={quote(file_path)}"


@app.post("/store")
async def store_files(request: Request, store: BlobStore = Depends(get_blob_store)):
    """Store an upload batch under the given codebase_id"""
    try:
        form = await request.form(
            max_files=settings.MAX_FILES_PER_UPLOAD,
            max_fields=settings.MAX_FILES_PER_UPLOAD * 2 + 10,
        )
    except StarletteHTTPException:
        raise BadRequestError(UPLOAD_REJECTED_MESSAGE)

    try:
        codebase_id = form.get("codebase_id")
        if not isinstance(codebase_id, str) or not codebase_id:
            raise BadRequestError("Codebase ID is required")
        codebase_id = require_codebase_id(codebase_id)

        uploads = [f for f in form.getlist("files") if isinstance(f, UploadFile)]
        if not uploads:
            raise BadRequestError("No files provided")
        check_upload_total(uploads, settings.max_upload_bytes)

        entries = []
        for upload in uploads:
            override = form.get(f"path_{upload.filename}")
            entries.append(UploadEntry(
                name=upload.filename or "",
                relative_path=override if isinstance(override, str) and override else None,
                stream=upload,
            ))

        result = await UploadIngestor(store).ingest(codebase_id, entries)
    finally:
        await form.close()

    logger.info(
        f"Files stored for codebase {codebase_id}: "
        f"{len(result.accepted)} files, {result.total_size} bytes"
    )
    return {
        "success": True,
        "message": result.message,
        "directory_id": codebase_id,
        "stored_files": [f.to_dict() for f in result.accepted],
        "rejected": [r.to_dict() for r in result.rejected],
        "total_size": result.total_size,
    }


@app.get("/files/{codebase_id}")
async def list_files(codebase_id: str, store: BlobStore = Depends(get_blob_store)):
    """Every regular file of a codebase"""
    codebase_id = require_codebase_id(codebase_id)
    files = await run_blocking(store.list_files, codebase_id)
    return {
        "success": True,
        "directory_id": codebase_id,
        "files": [{"name": f.name, "size": f.size, "path": f.path} for f in files],
    }


@app.get("/content/{codebase_id}")
async def get_file_content(
    codebase_id: str,
    file: str = Query(None),
    store: BlobStore = Depends(get_blob_store),
):
    """One file with text/binary classification; text is inlined"""
    codebase_id = require_codebase_id(codebase_id)
    file_path = require_file_param(file)
    info = store.stat(codebase_id, file_path)

    response = {
        "success": True,
        "file_path": info.path,
        "size": info.size,
        "is_text": False,
        "modified": info.modified.isoformat(),
    }

    if info.size > settings.max_text_content_bytes:
        sample = await store.read_prefix(codebase_id, file_path, SNIFF_SIZE)
        response["is_text"] = is_text(sample, total_size=info.size)
        response["content"] = TOO_LARGE_PLACEHOLDER
        response["download_url"] = _download_path(codebase_id, info.path)
        return response

    content = await store.get(codebase_id, file_path)
    response["size"] = len(content)
    response["is_text"] = is_text(content)
    if response["is_text"]:
        response["content"] = content.decode("utf-8")
    else:
        response["content"] = BINARY_PLACEHOLDER
        response["download_url"] = _download_path(codebase_id, info.path)
    return response


@app.get("/download/{codebase_id}")
async def download_file(
    codebase_id: str,
    file: str = Query(None),
    store: BlobStore = Depends(get_blob_store),
):
    """Raw file bytes as an attachment"""
    codebase_id = require_codebase_id(codebase_id)
    file_path = require_file_param(file)
    info = store.stat(codebase_id, file_path)
    logger.info(f"Downloading file: {info.path} from codebase {codebase_id}")
    return FileResponse(
        info.absolute_path,
        media_type="application/octet-stream",
        filename=info.name,
    )


@app.get("/zip/{codebase_id}")
async def download_zip(codebase_id: str, store: BlobStore = Depends(get_blob_store)):
    """Whole codebase streamed as a ZIP archive"""
    codebase_id = require_codebase_id(codebase_id)
    # Raises before any header is sent when the codebase is missing
    chunks = ArchiveBuilder(store).iter_zip(codebase_id)
    return StreamingResponse(
        chunks,
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="codebase-{codebase_id}.zip"'},
    )


@app.get("/codebases")
async def list_codebases(store: BlobStore = Depends(get_blob_store)):
    """Codebases as found on disk"""
    codebases = await run_blocking(store.list_codebases)
    return {
        "success": True,
        "codebases": [c.to_dict() for c in codebases],
    }


@app.delete("/codebases/{codebase_id}")
async def delete_codebase(codebase_id: str, store: BlobStore = Depends(get_blob_store)):
    codebase_id = require_codebase_id(codebase_id)
    if not await run_blocking(store.remove, codebase_id):
        raise CodebaseNotFoundError(codebase_id)
    return {"success": True, "message": f"Codebase {codebase_id} removed"}


@app.get("/health", response_model=HealthResponse)
async def health_check():
    return HealthResponse(status="ok", service="codevault-storage", version=settings.APP_VERSION)


def run():
    """Console entry point: codevault-storage"""
    import uvicorn
    uvicorn.run(app, host=settings.STORAGE_HOST, port=settings.STORAGE_PORT)
