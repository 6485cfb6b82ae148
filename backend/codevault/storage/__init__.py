"""
Codebase storage core shared by the API and storage services.

Module Structure:
- paths.py: codebase id validation and path sanitization
- classifier.py: text/binary detection
- blob_store.py: on-disk layout, reads, writes, listings
- archive.py: streaming ZIP construction
- ingest.py: upload batch processing
- exceptions.py: StorageError hierarchy
"""

from .exceptions import (
    StorageError,
    InvalidCodebaseIdError,
    InvalidPathError,
    CodebaseNotFoundError,
    BlobNotFoundError,
    NotAFileError,
    CodebaseExistsError,
    BlobWriteError,
    NoValidFilesError,
)
from .paths import (
    validate_codebase_id,
    validate_file_name,
    normalize_relative_path,
    sanitize_path,
    is_strict_descendant,
)
from .classifier import is_text, SNIFF_SIZE
from .blob_store import BlobStore, BlobInfo, StoredFile, CodebaseSummary
from .archive import ArchiveBuilder
from .ingest import UploadIngestor, UploadEntry, IngestResult, Rejection

__all__ = [
    "StorageError",
    "InvalidCodebaseIdError",
    "InvalidPathError",
    "CodebaseNotFoundError",
    "BlobNotFoundError",
    "NotAFileError",
    "CodebaseExistsError",
    "BlobWriteError",
    "NoValidFilesError",
    "validate_codebase_id",
    "validate_file_name",
    "normalize_relative_path",
    "sanitize_path",
    "is_strict_descendant",
    "is_text",
    "SNIFF_SIZE",
    "BlobStore",
    "BlobInfo",
    "StoredFile",
    "CodebaseSummary",
    "ArchiveBuilder",
    "UploadIngestor",
    "UploadEntry",
    "IngestResult",
    "Rejection",
]
