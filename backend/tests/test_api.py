"""
API endpoint tests for CodeVault

The API tier runs against the in-process storage tier and an in-memory
ledger; see conftest.py.
"""
import uuid

import pytest
from httpx import AsyncClient

from codevault.core.config import settings
from codevault.services.ledger import LedgerError, LedgerService
from conftest import chunked_multipart, multipart_files, zip_names


async def upload(client: AsyncClient, files: dict, paths: dict = None):
    data = {f"path_{name}": path for name, path in (paths or {}).items()}
    return await client.post("/upload", data=data, files=multipart_files(files))


class TestHealthEndpoint:
    """Tests for the health check endpoint"""

    @pytest.mark.asyncio
    async def test_health_check(self, client: AsyncClient):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "service": "codevault-api", "version": settings.APP_VERSION}


class TestUpload:
    """Tests for POST /upload"""

    @pytest.mark.asyncio
    async def test_upload_with_paths(self, client: AsyncClient):
        response = await upload(
            client,
            {"main.py": b"print('hi')\n", "util.py": b"x = 1\n"},
            {"util.py": "pkg/util.py"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["uploaded_files"] == ["main.py", "pkg/util.py"]
        assert data["message"] == "Successfully uploaded 2 files (18 bytes total)"
        assert str(uuid.UUID(data["directory_id"])) == data["directory_id"]

    @pytest.mark.asyncio
    async def test_each_upload_gets_fresh_id(self, client: AsyncClient):
        first = (await upload(client, {"a.txt": b"a"})).json()["directory_id"]
        second = (await upload(client, {"a.txt": b"a"})).json()["directory_id"]
        assert first != second

    @pytest.mark.asyncio
    async def test_traversal_entry_skipped(self, client: AsyncClient, storage_root):
        response = await upload(
            client,
            {"a.txt": b"A", "b.txt": b"B", "evil.txt": b"pwned"},
            {"evil.txt": "../../evil.txt"},
        )
        assert response.status_code == 200
        data = response.json()
        codebase_id = data["directory_id"]
        assert data["uploaded_files"] == ["a.txt", "b.txt"]
        assert [s["name"] for s in data["skipped_files"]] == ["evil.txt"]
        assert not (storage_root.parent / "evil.txt").exists()

        listing = (await client.get(f"/codebases/{codebase_id}")).json()
        assert sorted(f["path"] for f in listing["files"]) == ["a.txt", "b.txt"]

        response = await client.get(
            f"/codebases/{codebase_id}/content", params={"file": "evil.txt"}
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_all_rejected(self, client: AsyncClient, storage_root):
        response = await upload(client, {"a.txt": b"A"}, {"a.txt": "/etc/passwd"})
        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "No valid files were uploaded"}
        assert list(storage_root.iterdir()) == []
        assert (await client.get("/codebases")).json()["codebases"] == []

    @pytest.mark.asyncio
    async def test_no_files(self, client: AsyncClient):
        response = await client.post("/upload", data={"path_a.txt": "a.txt"})
        assert response.status_code == 400
        assert response.json()["error"] == "No files uploaded"

    @pytest.mark.asyncio
    async def test_declared_length_over_cap(self, client: AsyncClient):
        response = await client.post(
            "/upload",
            content=b"x",
            headers={
                "content-type": "multipart/form-data; boundary=xyz",
                "content-length": str(10 ** 12),
            },
        )
        assert response.status_code == 400
        assert response.json()["error"] == "File too large or invalid form data"

    @pytest.mark.asyncio
    async def test_chunked_body_over_cap(self, client: AsyncClient, storage_root, monkeypatch):
        monkeypatch.setattr(settings, "MAX_UPLOAD_SIZE_MB", 1)
        content, headers = chunked_multipart({}, {"big.bin": b"x" * (2 * 1024 * 1024)})

        response = await client.post("/upload", content=content, headers=headers)
        assert response.status_code == 400
        assert response.json()["error"] == "File too large or invalid form data"
        assert list(storage_root.iterdir()) == []
        assert (await client.get("/codebases")).json()["codebases"] == []

    @pytest.mark.asyncio
    async def test_ledger_failure_leaves_orphan(self, client: AsyncClient, storage_root, monkeypatch):
        async def failing_record(db, codebase_id, files):
            raise LedgerError("disk full")

        monkeypatch.setattr(LedgerService, "record_upload", staticmethod(failing_record))

        response = await upload(client, {"a.txt": b"A"})
        assert response.status_code == 500
        assert response.json() == {"success": False, "error": "Failed to save codebase metadata"}

        # Blobs stay behind for the reconciliation sweep
        orphans = [p.name for p in storage_root.iterdir()]
        assert len(orphans) == 1
        assert (storage_root / orphans[0] / "a.txt").read_bytes() == b"A"
        assert (await client.get("/codebases")).json()["codebases"] == []


class TestCodebases:
    """Tests for listing and reading codebases"""

    @pytest.mark.asyncio
    async def test_list_codebases(self, client: AsyncClient):
        codebase_id = (await upload(client, {"a.txt": b"A", "b.txt": b"B"})).json()["directory_id"]

        response = await client.get("/codebases")
        assert response.status_code == 200
        codebases = response.json()["codebases"]
        assert len(codebases) == 1
        assert codebases[0]["directory_id"] == codebase_id
        assert codebases[0]["file_count"] == 2
        assert codebases[0]["created_at"]

    @pytest.mark.asyncio
    async def test_file_tree(self, client: AsyncClient):
        codebase_id = (await upload(
            client, {"a.txt": b"A", "b.txt": b"BB"}, {"b.txt": "deep/er/b.txt"}
        )).json()["directory_id"]

        response = await client.get(f"/codebases/{codebase_id}")
        assert response.status_code == 200
        data = response.json()
        assert data["directory_id"] == codebase_id
        assert {f["path"]: f["size"] for f in data["files"]} == {"a.txt": 1, "deep/er/b.txt": 2}
        assert {f["name"] for f in data["files"]} == {"a.txt", "b.txt"}

    @pytest.mark.asyncio
    async def test_unknown_codebase(self, client: AsyncClient):
        response = await client.get(f"/codebases/{uuid.uuid4()}")
        assert response.status_code == 404
        assert response.json()["success"] is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad_id", ["not-a-uuid", "x" * 36, "3f2b8c1e9a4d4e6f8b2a1c5d7e9f0a3b"])
    async def test_malformed_id(self, client: AsyncClient, bad_id):
        response = await client.get(f"/codebases/{bad_id}")
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid codebase ID"

    @pytest.mark.asyncio
    async def test_text_content_round_trip(self, client: AsyncClient):
        source = "def f():\n    return 'héllo'\n".encode("utf-8")
        codebase_id = (await upload(client, {"f.py": source}, {"f.py": "src/f.py"})).json()["directory_id"]

        response = await client.get(f"/codebases/{codebase_id}/content", params={"file": "src/f.py"})
        assert response.status_code == 200
        data = response.json()
        assert data["is_text"] is True
        assert data["content"].encode("utf-8") == source
        assert data["size"] == len(source)
        assert data["file_path"] == "src/f.py"

    @pytest.mark.asyncio
    async def test_binary_content_points_at_api_download(self, client: AsyncClient):
        payload = b"\x00\x01\x02\x03" * 64
        codebase_id = (await upload(client, {"blob.bin": payload})).json()["directory_id"]

        data = (await client.get(
            f"/codebases/{codebase_id}/content", params={"file": "blob.bin"}
        )).json()
        assert data["is_text"] is False
        assert data["download_url"] == f"/codebases/{codebase_id}/download?file=blob.bin"

        response = await client.get(data["download_url"])
        assert response.status_code == 200
        assert response.content == payload

    @pytest.mark.asyncio
    async def test_content_requires_file(self, client: AsyncClient):
        codebase_id = (await upload(client, {"a.txt": b"A"})).json()["directory_id"]
        response = await client.get(f"/codebases/{codebase_id}/content")
        assert response.status_code == 400
        assert response.json()["error"] == "File path is required"

    @pytest.mark.asyncio
    async def test_content_traversal(self, client: AsyncClient):
        codebase_id = (await upload(client, {"a.txt": b"A"})).json()["directory_id"]
        response = await client.get(
            f"/codebases/{codebase_id}/content", params={"file": "../../../etc/passwd"}
        )
        assert response.status_code == 400


class TestDownloads:
    """Tests for single-file and ZIP downloads"""

    @pytest.mark.asyncio
    async def test_download_round_trip(self, client: AsyncClient):
        payload = bytes(range(256)) * 100
        codebase_id = (await upload(client, {"data.bin": payload}, {"data.bin": "x/data.bin"})).json()["directory_id"]

        response = await client.get(f"/codebases/{codebase_id}/download", params={"file": "x/data.bin"})
        assert response.status_code == 200
        assert response.content == payload
        assert "attachment" in response.headers["content-disposition"]
        assert "data.bin" in response.headers["content-disposition"]

    @pytest.mark.asyncio
    async def test_download_missing_file(self, client: AsyncClient):
        codebase_id = (await upload(client, {"a.txt": b"A"})).json()["directory_id"]
        response = await client.get(f"/codebases/{codebase_id}/download", params={"file": "nope.txt"})
        assert response.status_code == 404
        assert response.json() == {"success": False, "error": "File not found"}

    @pytest.mark.asyncio
    async def test_zip(self, client: AsyncClient):
        codebase_id = (await upload(
            client, {"a.txt": b"A", "b.txt": b"B"}, {"b.txt": "sub/b.txt"}
        )).json()["directory_id"]

        response = await client.get(f"/codebases/{codebase_id}/zip")
        assert response.status_code == 200
        assert response.headers["content-type"] == "application/zip"
        assert sorted(zip_names(response.content)) == ["a.txt", "sub/", "sub/b.txt"]

    @pytest.mark.asyncio
    async def test_zip_unknown_codebase(self, client: AsyncClient):
        response = await client.get(f"/codebases/{uuid.uuid4()}/zip")
        assert response.status_code == 404
