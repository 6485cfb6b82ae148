"""
Archive Builder

Streams a codebase's file tree as a ZIP archive without buffering the
archive in memory. Entries are written with data descriptors so the output
sink never needs to be seekable.
"""
import io
import logging
import os
import zipfile
from pathlib import Path
from typing import BinaryIO, Iterator, List, Optional, Tuple

from ..core.logging import get_logger
from .blob_store import BlobStore
from .exceptions import CodebaseNotFoundError

logger = logging.getLogger(__name__)
audit = get_logger("codevault.archive")

CHUNK_SIZE = 64 * 1024


class _ChunkSink(io.RawIOBase):
    """Write-only, non-seekable buffer drained by the generator between writes"""

    def __init__(self):
        super().__init__()
        self._chunks: List[bytes] = []

    def writable(self) -> bool:
        return True

    def write(self, b) -> int:
        self._chunks.append(bytes(b))
        return len(b)

    def drain(self) -> bytes:
        data = b"".join(self._chunks)
        self._chunks.clear()
        return data


def walk_tree(root: Path) -> Iterator[Tuple[str, Path, bool]]:
    """
    Depth-first walk of a codebase root.

    Yields (archive name, absolute path, is_directory). Directory names end
    in '/'; the root itself is never yielded; symlinks are skipped.
    """
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if not os.path.islink(os.path.join(dirpath, d)))
        current = Path(dirpath)
        if current != root:
            yield current.relative_to(root).as_posix() + "/", current, True
        for filename in sorted(filenames):
            full = current / filename
            if full.is_symlink() or not full.is_file():
                continue
            yield full.relative_to(root).as_posix(), full, False


class ArchiveBuilder:
    """Builds ZIP archives of codebases held by a BlobStore"""

    def __init__(self, store: BlobStore, compression: int = zipfile.ZIP_DEFLATED):
        self.store = store
        self.compression = compression

    def _require_root(self, codebase_id: str) -> Path:
        root = self.store.codebase_root(codebase_id)
        if not root.is_dir():
            raise CodebaseNotFoundError(codebase_id)
        return root

    def _write_entries(self, zf: zipfile.ZipFile, root: Path, sink: Optional[_ChunkSink] = None) -> Iterator[bytes]:
        for arcname, path, is_dir in walk_tree(root):
            if is_dir:
                zf.writestr(zipfile.ZipInfo.from_file(path, arcname, strict_timestamps=False), b"")
            else:
                zinfo = zipfile.ZipInfo.from_file(path, arcname, strict_timestamps=False)
                zinfo.compress_type = self.compression
                with open(path, "rb") as src, zf.open(zinfo, "w") as dst:
                    while True:
                        chunk = src.read(CHUNK_SIZE)
                        if not chunk:
                            break
                        dst.write(chunk)
                        if sink is not None:
                            data = sink.drain()
                            if data:
                                yield data
            if sink is not None:
                data = sink.drain()
                if data:
                    yield data

    def build_zip(self, codebase_id: str, output: BinaryIO) -> None:
        """
        Write a complete ZIP of the codebase into output.

        Raises:
            CodebaseNotFoundError: Before anything is written, if the codebase
                directory does not exist
        """
        root = self._require_root(codebase_id)
        try:
            with zipfile.ZipFile(output, "w", compression=self.compression) as zf:
                for _ in self._write_entries(zf, root):
                    pass
        except Exception as e:
            audit.error("Archive aborted", codebase_id=codebase_id, error=str(e))
            raise

    def iter_zip(self, codebase_id: str) -> Iterator[bytes]:
        """
        Return an iterator of ZIP bytes for a streaming response.

        The existence check runs eagerly, so a missing codebase surfaces
        before any header or byte is sent.
        """
        root = self._require_root(codebase_id)
        return self._stream(codebase_id, root)

    def _stream(self, codebase_id: str, root: Path) -> Iterator[bytes]:
        sink = _ChunkSink()
        try:
            with zipfile.ZipFile(sink, "w", compression=self.compression) as zf:
                for data in self._write_entries(zf, root, sink):
                    yield data
            tail = sink.drain()
            if tail:
                yield tail
        except Exception as e:
            # Bytes may already be on the wire; all that is left is to record it
            audit.error("Archive stream aborted", codebase_id=codebase_id, error=str(e))
            raise
        logger.info(f"Streamed ZIP archive for codebase {codebase_id}")
