"""
Security utilities for QuickDrop.
Provides filename normalization and path traversal protection for stored uploads.
"""
import re
import logging
from pathlib import Path

security_logger = logging.getLogger('security')

# Characters that are illegal or dangerous in a filename on common filesystems
INVALID_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')

MAX_NAME_LENGTH = 100  # stem only
MAX_TOTAL_LENGTH = 150  # stem + extension
# Stored as "tmp_<code>_<name>", which must stay under the 255-byte NAME_MAX
MAX_TOTAL_BYTES = 200
FALLBACK_NAME = "unnamed_file"


def validate_path_traversal(base_path: Path, requested_path: str) -> Path:
    """
    Validate that a file path doesn't escape the base directory.

    Args:
        base_path: The allowed base directory
        requested_path: The storage filename derived from user input

    Returns:
        Safe resolved path

    Raises:
        ValueError: If path traversal detected
    """
    full_path = (base_path / requested_path).resolve()

    try:
        full_path.relative_to(base_path.resolve())
    except ValueError:
        log_security_event("path_traversal_attempt", {"path": requested_path})
        raise ValueError("Invalid file path")

    if full_path.parent != base_path.resolve():
        log_security_event("nested_path_attempt", {"path": requested_path})
        raise ValueError("Invalid file path")

    return full_path


def _split_extension(filename: str) -> tuple[str, str]:
    # "archive.tar.gz" -> ("archive.tar", ".gz"); ".txt" -> ("", ".txt")
    dot = filename.rfind('.')
    if dot == -1:
        return filename, ''
    return filename[:dot], filename[dot:]


def sanitize_filename(filename: str) -> str:
    """
    Sanitize an uploaded filename into a safe, bounded display name.

    Illegal characters are replaced with "_", surrounding spaces and dots
    are trimmed from the stem, and the stem and total length are capped.
    The result is never empty.

    Args:
        filename: Original filename as sent by the client

    Returns:
        Safe filename
    """
    if not filename:
        return FALLBACK_NAME

    name, ext = _split_extension(filename)
    # The extension can carry illegal characters too ("a.t/xt")
    ext = INVALID_CHARS.sub('_', ext)

    name = INVALID_CHARS.sub('_', name)
    name = name.strip(' .')
    if not name:
        name = FALLBACK_NAME

    if len(name) > MAX_NAME_LENGTH:
        name = name[:MAX_NAME_LENGTH]

    cleaned = name + ext
    if len(cleaned) > MAX_TOTAL_LENGTH:
        available = MAX_TOTAL_LENGTH - len(ext)
        if available > 0:
            name = name[:available]
        else:
            name = "file"
            ext = ext[:MAX_TOTAL_LENGTH - len(name)]
        cleaned = name + ext

    if len(cleaned.encode("utf-8")) > MAX_TOTAL_BYTES:
        ext_bytes = len(ext.encode("utf-8"))
        if ext_bytes < MAX_TOTAL_BYTES - len("file"):
            name = truncate_utf8(name, MAX_TOTAL_BYTES - ext_bytes) or "file"
        else:
            name = "file"
            ext = truncate_utf8(ext, MAX_TOTAL_BYTES - len(name))
        cleaned = name + ext

    return cleaned


def truncate_utf8(text: str, max_bytes: int) -> str:
    """Cut ``text`` to at most ``max_bytes`` of UTF-8 without splitting a character."""
    return text.encode("utf-8")[:max(0, max_bytes)].decode("utf-8", "ignore")


def fit_filename(name: str, suffix: str = "", max_bytes: int = MAX_TOTAL_BYTES) -> str:
    """
    Insert ``suffix`` before the extension of ``name``, shortening the stem
    so the result fits in ``max_bytes`` of UTF-8.

    A leading dot is part of the stem (".env" has no extension).
    """
    dot = name.rfind(".")
    stem, ext = (name[:dot], name[dot:]) if dot > 0 else (name, "")
    room = max_bytes - len((suffix + ext).encode("utf-8"))
    if room <= 0:
        return truncate_utf8(name, max_bytes - len(suffix.encode("utf-8"))) + suffix
    return truncate_utf8(stem, room) + suffix + ext


def log_security_event(event_type: str, details: dict):
    """Log a security-relevant event."""
    security_logger.warning(f"SECURITY_EVENT: {event_type} - {details}")
