from __future__ import annotations

import re
import secrets
import time
from pathlib import Path

MAX_SANITIZED_LENGTH = 200

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9._-]")
_REPEATED_UNDERSCORES = re.compile(r"_{2,}")


def sanitize_filename(filename: str) -> str:
    """Replace characters outside [A-Za-z0-9._-] and cap the length."""
    sanitized = _UNSAFE_CHARS.sub("_", filename)
    sanitized = _REPEATED_UNDERSCORES.sub("_", sanitized)
    return sanitized[:MAX_SANITIZED_LENGTH]


def build_stored_name(original_filename: str) -> str:
    """Build a unique on-disk name that keeps a readable stem and the original extension."""
    ext = Path(original_filename).suffix.lower()
    if not re.fullmatch(r"\.[a-z0-9]{1,10}", ext):
        ext = ""
    stem = Path(sanitize_filename(Path(original_filename).name)).stem or "file"
    unique_suffix = f"{int(time.time() * 1000)}-{secrets.randbelow(10**9):09d}"
    return f"{stem}-{unique_suffix}{ext}"


def strip_extension(filename: str) -> str:
    """Return the filename without its last extension."""
    return re.sub(r"\.[^/.]+$", "", filename)
