"""
Storage errors

Raised by the storage library and mapped to HTTP responses by each
service's exception handlers.
"""
from typing import Optional


class StorageError(Exception):
    """Base class for all storage-layer failures"""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidCodebaseIdError(StorageError):
    """Codebase identifier is not a canonical UUID"""
    status_code = 400

    def __init__(self, codebase_id: Optional[str] = None):
        super().__init__("Invalid codebase ID")
        self.codebase_id = codebase_id


class InvalidPathError(StorageError):
    """Client-supplied relative path was rejected by the sanitizer"""
    status_code = 400

    def __init__(self, path: Optional[str], reason: str):
        super().__init__("Invalid file path")
        self.path = path
        self.reason = reason


class CodebaseNotFoundError(StorageError):
    status_code = 404

    def __init__(self, codebase_id: str):
        super().__init__("Codebase not found")
        self.codebase_id = codebase_id


class BlobNotFoundError(StorageError):
    status_code = 404

    def __init__(self, path: str):
        super().__init__("File not found")
        self.path = path


class NotAFileError(StorageError):
    """A directory was requested where a regular file is required"""
    status_code = 400

    def __init__(self, path: str, message: str = "Cannot read directory as file"):
        super().__init__(message)
        self.path = path


class CodebaseExistsError(StorageError):
    """Codebase identifiers are never reused for writes"""
    status_code = 409

    def __init__(self, codebase_id: str):
        super().__init__("Codebase already exists")
        self.codebase_id = codebase_id


class BlobWriteError(StorageError):
    status_code = 500

    def __init__(self, path: str, reason: str):
        super().__init__(f"Failed to write {path}: {reason}")
        self.path = path
        self.reason = reason


class NoValidFilesError(StorageError):
    """Every entry of an upload batch was rejected"""
    status_code = 400

    def __init__(self, rejected: int = 0):
        super().__init__("No valid files were stored")
        self.rejected = rejected
