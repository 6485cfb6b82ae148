"""
Blob Store

Owns the on-disk layout <root>/<codebase-id>/<relative-path>. The existence
of a codebase directory is the authoritative proof that the codebase exists.
"""
import inspect
import logging
import os
import shutil
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Union

import aiofiles

from .exceptions import (
    BlobNotFoundError,
    BlobWriteError,
    CodebaseExistsError,
    CodebaseNotFoundError,
    InvalidCodebaseIdError,
    NotAFileError,
)
from .paths import is_strict_descendant, sanitize_path, validate_codebase_id

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


@dataclass
class StoredFile:
    """A regular file inside a codebase"""
    path: str
    name: str
    size: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BlobInfo:
    """Resolved location and stat data for one stored blob"""
    path: str
    name: str
    size: int
    modified: datetime
    absolute_path: Path


@dataclass
class CodebaseSummary:
    directory_id: str
    created_at: datetime
    file_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "directory_id": self.directory_id,
            "created_at": self.created_at.isoformat(),
            "file_count": self.file_count,
        }


def _mtime(stat_result: os.stat_result) -> datetime:
    return datetime.fromtimestamp(stat_result.st_mtime, tz=timezone.utc)


class BlobStore:
    """
    Filesystem-backed store for codebase files.

    Every public method validates the codebase id and sanitizes the relative
    path before touching the filesystem.
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(os.path.abspath(root))

    def ensure_root(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def codebase_root(self, codebase_id: str) -> Path:
        return self.root / validate_codebase_id(codebase_id)

    def resolve(self, codebase_id: str, relative_path: str) -> tuple[str, Path]:
        """Return (sanitized relative path, absolute path) for a codebase file"""
        base = self.codebase_root(codebase_id)
        relative = sanitize_path(relative_path, base)
        return relative, base.joinpath(*relative.split("/"))

    def exists(self, codebase_id: str) -> bool:
        return self.codebase_root(codebase_id).is_dir()

    def create(self, codebase_id: str) -> Path:
        """Create the directory for a new codebase; ids are never reused"""
        base = self.codebase_root(codebase_id)
        self.ensure_root()
        try:
            base.mkdir()
        except FileExistsError:
            raise CodebaseExistsError(codebase_id)
        return base

    async def put(self, codebase_id: str, relative_path: str, stream: Any) -> int:
        """
        Write a stream to <codebase>/<relative_path>.

        The stream only needs a read(size) method, sync or async. Existing
        files are never overwritten. A failed write leaves nothing behind.

        Returns:
            Number of bytes actually written
        """
        relative, target = self.resolve(codebase_id, relative_path)

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise BlobWriteError(relative, f"cannot create parent directory ({e})") from e

        written = 0
        created = False
        completed = False
        try:
            async with aiofiles.open(target, "xb") as out:
                created = True
                while True:
                    chunk = stream.read(CHUNK_SIZE)
                    if inspect.isawaitable(chunk):
                        chunk = await chunk
                    if not chunk:
                        break
                    await out.write(chunk)
                    written += len(chunk)
            completed = True
        except FileExistsError as e:
            raise BlobWriteError(relative, "duplicate path") from e
        except IsADirectoryError as e:
            raise BlobWriteError(relative, "path is a directory") from e
        except Exception as e:
            raise BlobWriteError(relative, str(e) or type(e).__name__) from e
        finally:
            if created and not completed:
                try:
                    target.unlink()
                except OSError as e:
                    logger.warning(f"Could not remove partial file {target}: {e}")

        return written

    def stat(self, codebase_id: str, relative_path: str) -> BlobInfo:
        """
        Locate a stored regular file.

        Raises:
            CodebaseNotFoundError: The codebase directory does not exist
            BlobNotFoundError: No such file
            NotAFileError: The path names a directory
        """
        relative, target = self.resolve(codebase_id, relative_path)
        base = self.codebase_root(codebase_id)
        if not base.is_dir():
            raise CodebaseNotFoundError(codebase_id)

        try:
            st = target.stat()
        except FileNotFoundError:
            raise BlobNotFoundError(relative)
        except NotADirectoryError:
            raise BlobNotFoundError(relative)

        if target.is_dir():
            raise NotAFileError(relative)
        # Symlinks are never written by the store; refuse anything resolving elsewhere
        if target.is_symlink() or not is_strict_descendant(os.path.realpath(base), os.path.realpath(target)):
            raise BlobNotFoundError(relative)

        return BlobInfo(
            path=relative,
            name=target.name,
            size=st.st_size,
            modified=_mtime(st),
            absolute_path=target,
        )

    async def get(self, codebase_id: str, relative_path: str) -> bytes:
        """Read the full content of a single file"""
        info = self.stat(codebase_id, relative_path)
        async with aiofiles.open(info.absolute_path, "rb") as f:
            return await f.read()

    async def read_prefix(self, codebase_id: str, relative_path: str, size: int) -> bytes:
        info = self.stat(codebase_id, relative_path)
        async with aiofiles.open(info.absolute_path, "rb") as f:
            return await f.read(size)

    def list_files(self, codebase_id: str) -> List[StoredFile]:
        """
        Recursively list every regular file of a codebase.

        Directories are not entries of their own. Order is a sorted
        depth-first walk, so repeated calls without writes agree.
        """
        base = self.codebase_root(codebase_id)
        if not base.is_dir():
            raise CodebaseNotFoundError(codebase_id)

        files: List[StoredFile] = []
        for dirpath, dirnames, filenames in os.walk(base):
            dirnames[:] = sorted(d for d in dirnames if not os.path.islink(os.path.join(dirpath, d)))
            for filename in sorted(filenames):
                full = os.path.join(dirpath, filename)
                if os.path.islink(full) or not os.path.isfile(full):
                    continue
                try:
                    size = os.stat(full).st_size
                except OSError as e:
                    logger.warning(f"Skipping unreadable file {full}: {e}")
                    continue
                relative = Path(full).relative_to(base).as_posix()
                files.append(StoredFile(path=relative, name=filename, size=size))
        return files

    def list_codebases(self) -> List[CodebaseSummary]:
        """Summarize every codebase directory under the root, newest first"""
        if not self.root.is_dir():
            return []

        summaries = []
        for entry in self.root.iterdir():
            if not entry.is_dir() or entry.is_symlink():
                continue
            try:
                codebase_id = validate_codebase_id(entry.name)
            except InvalidCodebaseIdError:
                # Not a codebase directory
                continue
            try:
                created_at = _mtime(entry.stat())
                file_count = len(self.list_files(codebase_id))
            except (CodebaseNotFoundError, FileNotFoundError):
                # Removed while listing
                continue
            summaries.append(CodebaseSummary(
                directory_id=codebase_id,
                created_at=created_at,
                file_count=file_count,
            ))
        summaries.sort(key=lambda s: s.created_at, reverse=True)
        return summaries

    def remove(self, codebase_id: str) -> bool:
        """
        Delete a codebase directory and everything below it.

        Returns:
            True if a directory was removed
        """
        base = self.codebase_root(codebase_id)
        if not base.exists():
            return False
        shutil.rmtree(base)
        logger.info(f"Removed codebase directory {base}")
        return True

