"""
Metadata ledger operations

Records codebases and their files after the storage tier has accepted an
upload. The ledger is an index over the storage tier, not the source of
truth for what exists.
"""
import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select, delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from codevault.models import Codebase, CodebaseFile

logger = logging.getLogger(__name__)


class LedgerError(Exception):
    """The ledger transaction failed and was rolled back"""
    pass


class LedgerService:
    """Read/write access to the codebases and files tables"""

    @staticmethod
    async def record_upload(
        db: AsyncSession,
        codebase_id: str,
        files: Sequence[Dict[str, Any]],
    ) -> Codebase:
        """
        Insert a codebase row and one row per stored file in one transaction.

        Args:
            db: Database session
            codebase_id: Id the storage tier stored the files under
            files: Dicts with path, name and size as reported by the storage tier

        Raises:
            LedgerError: Any failure; nothing is left committed
        """
        try:
            codebase = Codebase(id=codebase_id, file_count=len(files))
            db.add(codebase)
            for f in files:
                db.add(CodebaseFile(
                    codebase_id=codebase_id,
                    file_path=f["path"],
                    file_name=f["name"],
                    file_size=int(f["size"]),
                ))
            await db.commit()
        except (SQLAlchemyError, KeyError, TypeError, ValueError) as e:
            await db.rollback()
            raise LedgerError(f"Failed to save codebase metadata: {e}") from e

        await db.refresh(codebase)
        logger.info(f"Recorded codebase {codebase_id} with {len(files)} files")
        return codebase

    @staticmethod
    async def list_codebases(db: AsyncSession) -> List[Codebase]:
        result = await db.execute(
            select(Codebase).order_by(Codebase.created_at.desc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_codebase(db: AsyncSession, codebase_id: str) -> Optional[Codebase]:
        result = await db.execute(select(Codebase).where(Codebase.id == codebase_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def delete_codebase(db: AsyncSession, codebase_id: str) -> bool:
        """Remove a codebase row and its file rows; returns False if absent"""
        await db.execute(delete(CodebaseFile).where(CodebaseFile.codebase_id == codebase_id))
        result = await db.execute(delete(Codebase).where(Codebase.id == codebase_id))
        await db.commit()
        return result.rowcount > 0
