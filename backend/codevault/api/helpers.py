"""
Shared route helpers for both services

- Standardized bad-request exception
- Codebase id / file parameter validation
- Upload total size check
"""
from typing import Iterable, Optional

from fastapi import HTTPException, status
from starlette.datastructures import UploadFile

from codevault.storage import normalize_relative_path, validate_codebase_id


class BadRequestError(HTTPException):
    """400 with the message exactly as given"""
    def __init__(self, message: str):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=message)


UPLOAD_REJECTED_MESSAGE = "File too large or invalid form data"


def require_codebase_id(codebase_id: str) -> str:
    """Validate a path parameter before any storage or database access"""
    return validate_codebase_id(codebase_id)


def require_file_param(file: Optional[str]) -> str:
    """Validate the ?file= query parameter, returning the normalized path"""
    if not file:
        raise BadRequestError("File path is required")
    return normalize_relative_path(file)


def check_upload_total(uploads: Iterable[UploadFile], max_bytes: int) -> None:
    """Reject a parsed batch whose files add up to more than the cap"""
    if sum(u.size or 0 for u in uploads) > max_bytes:
        raise BadRequestError(UPLOAD_REJECTED_MESSAGE)
