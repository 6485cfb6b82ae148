"""
Ledger/storage reconciliation tests
"""
import io

import pytest
from sqlalchemy import select

from codevault.models import CodebaseFile
from codevault.services.ledger import LedgerError, LedgerService
from codevault.services.reconciliation import reconcile

ORPHAN_ID = "0b7e4c2a-5d1f-4a8e-9c3b-2f6d8e1a4b7c"
STALE_ID = "9d8c7b6a-5e4f-4d3c-8b2a-1f0e9d8c7b6a"


async def file_rows(db, codebase_id):
    result = await db.execute(
        select(CodebaseFile).where(CodebaseFile.codebase_id == codebase_id).order_by(CodebaseFile.id)
    )
    return [(r.file_path, r.file_name, r.file_size) for r in result.scalars().all()]


async def make_orphan(blob_store, codebase_id=ORPHAN_ID):
    blob_store.create(codebase_id)
    await blob_store.put(codebase_id, "a.txt", io.BytesIO(b"A"))


class TestReconcile:

    @pytest.mark.asyncio
    async def test_clean_when_in_sync(self, db_session, storage_service, blob_store, codebase_id):
        await make_orphan(blob_store, codebase_id)
        await LedgerService.record_upload(db_session, codebase_id, [{"path": "a.txt", "name": "a.txt", "size": 1}])

        report = await reconcile(db_session, storage_service, min_age_seconds=0)
        assert report.clean
        assert report.to_dict() == {
            "orphaned_blobs": [],
            "missing_blobs": [],
            "deleted_blobs": [],
            "deleted_rows": [],
        }

    @pytest.mark.asyncio
    async def test_reports_drift_without_deleting(self, db_session, storage_service, blob_store):
        await make_orphan(blob_store)
        await LedgerService.record_upload(db_session, STALE_ID, [{"path": "x.txt", "name": "x.txt", "size": 3}])

        report = await reconcile(db_session, storage_service, min_age_seconds=0)
        assert report.orphaned_blobs == [ORPHAN_ID]
        assert report.missing_blobs == [STALE_ID]
        assert report.deleted_blobs == []
        assert blob_store.exists(ORPHAN_ID)
        assert await LedgerService.get_codebase(db_session, STALE_ID) is not None

    @pytest.mark.asyncio
    async def test_row_committed_after_listing_is_kept(self, db_session, storage_service, blob_store, monkeypatch):
        await make_orphan(blob_store)
        await LedgerService.record_upload(db_session, ORPHAN_ID, [{"path": "a.txt", "name": "a.txt", "size": 1}])

        async def stale_listing(db):
            return []

        monkeypatch.setattr(LedgerService, "list_codebases", staticmethod(stale_listing))

        report = await reconcile(db_session, storage_service, delete_orphans=True, min_age_seconds=0)
        assert report.orphaned_blobs == [ORPHAN_ID]
        assert report.deleted_blobs == []
        assert blob_store.exists(ORPHAN_ID)

    @pytest.mark.asyncio
    async def test_recent_orphans_left_alone(self, db_session, storage_service, blob_store):
        await make_orphan(blob_store)
        report = await reconcile(db_session, storage_service, delete_orphans=True, min_age_seconds=3600)
        assert report.orphaned_blobs == []
        assert blob_store.exists(ORPHAN_ID)

    @pytest.mark.asyncio
    async def test_deletes_drift(self, db_session, storage_service, blob_store):
        await make_orphan(blob_store)
        await LedgerService.record_upload(db_session, STALE_ID, [{"path": "x.txt", "name": "x.txt", "size": 3}])

        report = await reconcile(db_session, storage_service, delete_orphans=True, min_age_seconds=0)
        assert report.deleted_blobs == [ORPHAN_ID]
        assert report.deleted_rows == [STALE_ID]
        assert not blob_store.exists(ORPHAN_ID)
        assert await LedgerService.get_codebase(db_session, STALE_ID) is None
        assert await file_rows(db_session, STALE_ID) == []


class TestLedger:

    @pytest.mark.asyncio
    async def test_record_and_read(self, db_session, codebase_id):
        files = [
            {"path": "a.txt", "name": "a.txt", "size": 1},
            {"path": "src/b.py", "name": "b.py", "size": 20},
        ]
        await LedgerService.record_upload(db_session, codebase_id, files)

        codebase = await LedgerService.get_codebase(db_session, codebase_id)
        assert codebase.file_count == 2
        assert codebase.to_dict()["directory_id"] == codebase_id

        assert await file_rows(db_session, codebase_id) == [
            ("a.txt", "a.txt", 1),
            ("src/b.py", "b.py", 20),
        ]

    @pytest.mark.asyncio
    async def test_bad_file_record_rolls_back(self, db_session, codebase_id):
        with pytest.raises(LedgerError):
            await LedgerService.record_upload(db_session, codebase_id, [{"path": "a.txt"}])
        assert await LedgerService.list_codebases(db_session) == []
