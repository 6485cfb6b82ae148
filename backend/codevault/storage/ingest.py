"""
Upload Ingestor

Applies per-entry validation to an upload batch, writes accepted entries
through the Blob Store and aggregates the outcome. A bad entry is skipped,
never fatal to the batch; a batch that stores nothing leaves nothing behind.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from ..core.logging import get_logger
from .blob_store import BlobStore, StoredFile
from .exceptions import BlobWriteError, InvalidPathError, NoValidFilesError
from .paths import validate_codebase_id, validate_file_name

logger = logging.getLogger(__name__)
audit = get_logger("codevault.ingest")


@dataclass
class UploadEntry:
    """One file of a batch as declared by the client"""
    name: str
    relative_path: Optional[str]
    stream: Any


@dataclass
class Rejection:
    name: str
    path: Optional[str]
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "path": self.path, "reason": self.reason}


@dataclass
class IngestResult:
    codebase_id: str
    accepted: List[StoredFile] = field(default_factory=list)
    rejected: List[Rejection] = field(default_factory=list)

    @property
    def total_size(self) -> int:
        return sum(f.size for f in self.accepted)

    @property
    def rejected_count(self) -> int:
        return len(self.rejected)

    @property
    def message(self) -> str:
        return f"Successfully stored {len(self.accepted)} files ({self.total_size} bytes total)"


class UploadIngestor:
    """Stores an upload batch into a fresh codebase"""

    def __init__(self, store: BlobStore):
        self.store = store

    def _reject(self, result: IngestResult, entry: UploadEntry, path: Optional[str], reason: str) -> None:
        result.rejected.append(Rejection(name=entry.name, path=path, reason=reason))
        audit.warning(
            "Upload entry skipped",
            codebase_id=result.codebase_id,
            name=entry.name,
            path=path,
            reason=reason,
        )

    async def ingest(self, codebase_id: str, entries: Iterable[UploadEntry]) -> IngestResult:
        """
        Store every acceptable entry of a batch, in the order given.

        Args:
            codebase_id: Freshly generated id; the codebase must not exist yet
            entries: Declared name, optional relative path and byte stream

        Returns:
            IngestResult with accepted files and rejection reasons

        Raises:
            InvalidCodebaseIdError: Malformed id, before any storage access
            CodebaseExistsError: The id was already used for a write
            NoValidFilesError: Nothing was stored; the codebase was removed
        """
        codebase_id = validate_codebase_id(codebase_id)
        self.store.create(codebase_id)
        result = IngestResult(codebase_id=codebase_id)

        try:
            for entry in entries:
                try:
                    base_name = validate_file_name(entry.name)
                except InvalidPathError as e:
                    self._reject(result, entry, entry.relative_path, e.reason)
                    continue

                declared = entry.relative_path or base_name
                try:
                    relative, _ = self.store.resolve(codebase_id, declared)
                except InvalidPathError as e:
                    self._reject(result, entry, declared, e.reason)
                    continue

                try:
                    written = await self.store.put(codebase_id, relative, entry.stream)
                except BlobWriteError as e:
                    self._reject(result, entry, relative, e.reason)
                    continue

                result.accepted.append(StoredFile(
                    path=relative,
                    name=relative.rsplit("/", 1)[-1],
                    size=written,
                ))
                logger.debug(f"Stored file: {relative} ({written} bytes)")
        except BaseException:
            # Batch aborted part-way (cancelled request, unexpected error)
            self.store.remove(codebase_id)
            raise

        if not result.accepted:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self.store.remove, codebase_id)
            audit.warning(
                "Upload batch stored no files",
                codebase_id=codebase_id,
                rejected=result.rejected_count,
            )
            raise NoValidFilesError(result.rejected_count)

        audit.info(
            "Upload batch stored",
            codebase_id=codebase_id,
            accepted=len(result.accepted),
            rejected=result.rejected_count,
            total_bytes=result.total_size,
        )
        return result
