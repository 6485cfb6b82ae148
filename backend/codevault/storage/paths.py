"""
Path sanitization for client-supplied relative paths and codebase ids.

Normalization is purely lexical; nothing here touches the filesystem.
"""
import os
import posixpath
import uuid
from pathlib import PurePath
from typing import Union

from .exceptions import InvalidCodebaseIdError, InvalidPathError

# Maximum nesting and segment length accepted for stored paths
MAX_PATH_DEPTH = 50
MAX_PATH_COMPONENT_LENGTH = 255


def validate_codebase_id(codebase_id: str) -> str:
    """
    Validate a codebase identifier and return its canonical text form.

    Only the canonical 8-4-4-4-12 hex layout is accepted (either case);
    urn, braced and bare-hex spellings are rejected so that one codebase
    can never map to two storage directories.

    Raises:
        InvalidCodebaseIdError: If the value is not UUID-shaped
    """
    if not isinstance(codebase_id, str) or len(codebase_id) != 36:
        raise InvalidCodebaseIdError(codebase_id)
    try:
        parsed = uuid.UUID(codebase_id)
    except ValueError:
        raise InvalidCodebaseIdError(codebase_id)
    canonical = str(parsed)
    if canonical != codebase_id.lower():
        raise InvalidCodebaseIdError(codebase_id)
    return canonical


def validate_file_name(name: str) -> str:
    """Return the base name of a declared file name, rejecting empty, '.' and '..'"""
    base = posixpath.basename((name or "").replace("\\", "/"))
    if base in ("", ".", ".."):
        raise InvalidPathError(name, "invalid file name")
    return base


def normalize_relative_path(path: str) -> str:
    """
    Lexically normalize a client-supplied relative path.

    Backslashes are treated as separators, '.' segments and repeated
    separators collapse. Any '..' segment, absolute path, drive prefix or
    NUL byte is a rejection.

    Returns:
        The normalized path using forward slashes
    """
    if not path:
        raise InvalidPathError(path, "empty path")
    if "\x00" in path:
        raise InvalidPathError(path, "null byte in path")

    candidate = path.replace("\\", "/")
    if candidate.startswith("/"):
        raise InvalidPathError(path, "absolute path not allowed")
    if len(candidate) > 1 and candidate[1] == ":":
        raise InvalidPathError(path, "drive-qualified path not allowed")

    # Check before normpath so "a/../../b" cannot fold into something innocent
    if ".." in candidate.split("/"):
        raise InvalidPathError(path, "directory traversal not allowed")

    normalized = posixpath.normpath(candidate)
    segments = normalized.split("/")
    if normalized in ("", ".") or ".." in segments:
        raise InvalidPathError(path, "directory traversal not allowed")
    if segments[-1] in ("", ".", ".."):
        raise InvalidPathError(path, "invalid file name")
    if len(segments) > MAX_PATH_DEPTH:
        raise InvalidPathError(path, f"path too deep ({len(segments)} levels)")
    for segment in segments:
        if len(segment) > MAX_PATH_COMPONENT_LENGTH:
            raise InvalidPathError(path, "path component too long")
    return normalized


def is_strict_descendant(root: Union[str, PurePath], target: Union[str, PurePath]) -> bool:
    """
    True when target lies strictly below root, compared segment by segment.

    /data/ab is not an ancestor of /data/abc, and a path is never its own
    descendant.
    """
    root_parts = PurePath(os.path.abspath(root)).parts
    target_parts = PurePath(os.path.abspath(target)).parts
    return len(target_parts) > len(root_parts) and target_parts[:len(root_parts)] == root_parts


def sanitize_path(path: str, root: Union[str, PurePath]) -> str:
    """
    Sanitize a client path against a trusted root.

    Args:
        path: Relative path as supplied by the client
        root: Trusted directory the path must stay inside

    Returns:
        The accepted, normalized relative path (forward slashes)

    Raises:
        InvalidPathError: With a reason, if the path is rejected
    """
    relative = normalize_relative_path(path)
    joined = os.path.normpath(os.path.join(os.fspath(root), *relative.split("/")))
    if not is_strict_descendant(root, joined):
        raise InvalidPathError(path, "path escapes codebase root")
    return relative
