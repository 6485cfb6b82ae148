"""
Text/binary classification of file content.
"""
import codecs
from typing import Optional

# Bytes inspected for null/control characters
SNIFF_SIZE = 8192

# Content at or below this length is text once it decodes as UTF-8
MIN_RATIO_LENGTH = 100

MAX_NULL_RATIO = 0.01
MAX_CONTROL_RATIO = 0.05

_ALLOWED_CONTROL = {9, 10, 13}  # tab, line feed, carriage return


def _is_valid_utf8(content: bytes, truncated: bool) -> bool:
    decoder = codecs.getincrementaldecoder("utf-8")()
    try:
        # A truncated sample may end inside a multibyte sequence
        decoder.decode(content, final=not truncated)
    except UnicodeDecodeError:
        return False
    return True


def is_text(content: bytes, total_size: Optional[int] = None) -> bool:
    """
    Decide whether content is text.

    Args:
        content: The full content, or a leading sample of it
        total_size: Full length of the file when content is only a sample;
            ratios are computed against this length

    Returns:
        True for text, False for binary
    """
    size = len(content) if total_size is None else total_size
    if size == 0:
        return True

    if not _is_valid_utf8(content, truncated=size > len(content)):
        return False

    null_bytes = 0
    control_chars = 0
    for byte in content[:SNIFF_SIZE]:
        if byte == 0:
            null_bytes += 1
        if byte < 32 and byte not in _ALLOWED_CONTROL:
            control_chars += 1

    if size > MIN_RATIO_LENGTH:
        if null_bytes / size > MAX_NULL_RATIO:
            return False
        if control_chars / size > MAX_CONTROL_RATIO:
            return False

    return True
