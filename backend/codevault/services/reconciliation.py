"""
Ledger/storage reconciliation

Blobs are written before the ledger transaction, so a failed commit leaves
a codebase directory with no ledger row. The sweep finds both kinds of
drift and, when allowed, removes it.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from codevault.core.logging import get_logger
from codevault.services.ledger import LedgerService
from codevault.services.storage_client import StorageServiceClient, StorageServiceError

logger = logging.getLogger(__name__)
audit = get_logger("codevault.reconciliation")

# Uploads whose ledger commit may still be in flight are left alone
DEFAULT_MIN_AGE_SECONDS = 300


@dataclass
class ReconciliationReport:
    orphaned_blobs: List[str] = field(default_factory=list)    # directory, no ledger row
    missing_blobs: List[str] = field(default_factory=list)     # ledger row, no directory
    deleted_blobs: List[str] = field(default_factory=list)
    deleted_rows: List[str] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not self.orphaned_blobs and not self.missing_blobs

    def to_dict(self) -> Dict[str, Any]:
        return {
            "orphaned_blobs": self.orphaned_blobs,
            "missing_blobs": self.missing_blobs,
            "deleted_blobs": self.deleted_blobs,
            "deleted_rows": self.deleted_rows,
        }


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


async def reconcile(
    db: AsyncSession,
    storage: StorageServiceClient,
    delete_orphans: bool = False,
    min_age_seconds: int = DEFAULT_MIN_AGE_SECONDS,
) -> ReconciliationReport:
    """
    Compare ledger rows with the storage tier's codebase directories.

    Args:
        db: Database session
        storage: Storage tier client
        delete_orphans: Remove orphaned directories and stale ledger rows
        min_age_seconds: Directories younger than this are never reported

    Returns:
        ReconciliationReport describing what was found and removed
    """
    report = ReconciliationReport()
    stored = await storage.list_codebases()
    ledger_rows = await LedgerService.list_codebases(db)

    stored_ids = {entry["directory_id"] for entry in stored}
    ledger_ids = {row.id for row in ledger_rows}
    cutoff = datetime.now(timezone.utc) - timedelta(seconds=min_age_seconds)

    for entry in stored:
        codebase_id = entry["directory_id"]
        if codebase_id in ledger_ids:
            continue
        created_at = _parse_timestamp(entry.get("created_at"))
        if created_at is not None and created_at > cutoff:
            continue
        report.orphaned_blobs.append(codebase_id)

    report.missing_blobs = sorted(ledger_ids - stored_ids)

    for codebase_id in report.orphaned_blobs:
        audit.warning("Orphaned blob directory", codebase_id=codebase_id)
    for codebase_id in report.missing_blobs:
        audit.warning("Ledger row without blob directory", codebase_id=codebase_id)

    if delete_orphans:
        for codebase_id in report.orphaned_blobs:
            if await LedgerService.get_codebase(db, codebase_id) is not None:
                # Ledger row committed since the listing
                continue
            try:
                if await storage.delete_codebase(codebase_id):
                    report.deleted_blobs.append(codebase_id)
            except StorageServiceError as e:
                logger.error(f"Could not delete orphaned codebase {codebase_id}: {e.message}")
        for codebase_id in report.missing_blobs:
            if await LedgerService.delete_codebase(db, codebase_id):
                report.deleted_rows.append(codebase_id)

    if not report.clean:
        audit.info("Reconciliation finished", **report.to_dict())
    return report


async def reconciliation_loop(
    session_maker,
    storage: StorageServiceClient,
    interval_seconds: int,
    delete_orphans: bool = False,
):
    """Background task that reconciles every interval_seconds"""
    while True:
        try:
            await asyncio.sleep(interval_seconds)
            async with session_maker() as db:
                await reconcile(db, storage, delete_orphans=delete_orphans)
        except asyncio.CancelledError:
            logger.info("Reconciliation task stopped")
            break
        except Exception as e:
            logger.error(f"Reconciliation error: {e}")
