"""
Utility functions for file system operations and string sanitization.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Optional

# Characters that are not safe in a download filename
SANITIZE_PATTERN = re.compile(r"[^a-zA-Z0-9._-]+")

DEFAULT_PDF_FILENAME = "apostila.pdf"


def sanitize_label(label: str, fallback: str) -> str:
    """
    Generate a filesystem-safe label from user input.

    Example:
        >>> sanitize_label("Minha Apostila!", "apostila")
        "minha-apostila"
        >>> sanitize_label("@#$", "apostila")
        "apostila"
    """
    cleaned = SANITIZE_PATTERN.sub("-", label.strip())
    cleaned = cleaned.strip("-_.").lower()
    return cleaned or fallback


def pdf_filename(requested: Optional[str]) -> str:
    """
    Build the attachment filename for a rendered PDF.

    The requested name is sanitized and always ends in ".pdf"; with no
    usable name the default "apostila.pdf" is returned.
    """
    if not requested:
        return DEFAULT_PDF_FILENAME
    stem = Path(requested).stem if requested.lower().endswith(".pdf") else requested
    safe_stem = sanitize_label(stem, fallback="")
    if not safe_stem:
        return DEFAULT_PDF_FILENAME
    return f"{safe_stem}.pdf"


def ensure_directory(path: Path) -> Path:
    """
    Create a directory if it doesn't exist, including parent directories.

    Returns:
        The same path object for chaining
    """
    path.mkdir(parents=True, exist_ok=True)
    return path
