"""
Shared fixtures for CodeVault tests

Both services run in-process over httpx's ASGI transport: the API tier's
storage client is bound to the storage app, the Blob Store lives in a
temporary directory and the ledger in an in-memory SQLite database.
"""
import os

# Settings are read at import time; point them somewhere harmless first
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("STATIC_DIR", "")
os.environ.setdefault("RECONCILE_INTERVAL_SECONDS", "0")

import io
import zipfile

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from codevault.db.database import get_db
from codevault.main import app as api_app
from codevault.models import Base
from codevault.services.storage_client import StorageServiceClient, get_storage_client
from codevault.storage import BlobStore
from codevault.storage_server.main import app as storage_app, get_blob_store


@pytest.fixture
def storage_root(tmp_path):
    return tmp_path / "storage"


@pytest.fixture
def blob_store(storage_root) -> BlobStore:
    store = BlobStore(storage_root)
    store.ensure_root()
    return store


@pytest.fixture
def codebase_id() -> str:
    return "3f2b8c1e-9a4d-4e6f-8b2a-1c5d7e9f0a3b"


@pytest_asyncio.fixture
async def storage_http(blob_store):
    """httpx client talking straight to the storage tier"""
    storage_app.dependency_overrides[get_blob_store] = lambda: blob_store
    async with AsyncClient(transport=ASGITransport(app=storage_app), base_url="http://storage") as c:
        yield c
    storage_app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def session_maker():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_maker):
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def storage_service(blob_store):
    """StorageServiceClient bound to the in-process storage tier"""
    storage_app.dependency_overrides[get_blob_store] = lambda: blob_store
    service = StorageServiceClient(
        base_url="http://storage",
        transport=ASGITransport(app=storage_app),
    )
    yield service
    await service.close()
    storage_app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(storage_service, session_maker):
    """httpx client for the API tier"""

    async def override_get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    api_app.dependency_overrides[get_db] = override_get_db
    api_app.dependency_overrides[get_storage_client] = lambda: storage_service
    async with AsyncClient(transport=ASGITransport(app=api_app), base_url="http://test") as c:
        yield c
    api_app.dependency_overrides.clear()


def multipart_files(files: dict) -> list:
    """{name: bytes} -> httpx files list for repeated `files` parts"""
    return [("files", (name, io.BytesIO(data), "application/octet-stream")) for name, data in files.items()]


def zip_names(data: bytes) -> list:
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        return zf.namelist()


BOUNDARY = "codevault-test-boundary"


def chunked_multipart(fields: dict, files: dict, chunk_size: int = 64 * 1024):
    """
    Multipart body as an async generator, so httpx sends it chunked with no
    Content-Length header. Returns (content, headers).
    """
    body = b""
    for name, value in fields.items():
        body += (
            f"--{BOUNDARY}\r\n"
            f'Content-Disposition: form-data; name="{name}"\r\n\r\n'
            f"{value}\r\n"
        ).encode()
    for name, data in files.items():
        body += (
            f"--{BOUNDARY}\r\n"
            f'Content-Disposition: form-data; name="files"; filename="{name}"\r\n'
            f"Content-Type: application/octet-stream\r\n\r\n"
        ).encode() + data + b"\r\n"
    body += f"--{BOUNDARY}--\r\n".encode()

    async def stream():
        for start in range(0, len(body), chunk_size):
            yield body[start:start + chunk_size]

    return stream(), {"content-type": f"multipart/form-data; boundary={BOUNDARY}"}
