"""Utility functions and helpers."""

from __future__ import annotations

import re
import secrets
import string
from datetime import datetime, timezone

ID_ALPHABET = string.ascii_lowercase + string.digits
ID_LENGTH = 12


def generate_id(length: int = ID_LENGTH) -> str:
    """Generate an opaque random identifier.

    Lowercase letters and digits only, so the id is safe inside container
    names, hostnames and repository names.

    Args:
        length: Number of characters

    Returns:
        Random identifier
    """
    return "".join(secrets.choice(ID_ALPHABET) for _ in range(length))


def slugify(name: str, fallback: str = "sandbox") -> str:
    """Turn a display name into a URL-safe slug.

    Lowercases, collapses every run of characters outside ``[a-z0-9]``
    into a single ``-`` and trims leading/trailing dashes.

    Args:
        name: Display name
        fallback: Slug used when nothing survives normalisation

    Returns:
        Slug such as ``my-project``
    """
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or fallback


def utcnow() -> datetime:
    """Get current UTC datetime (naive, as stored in the database).

    Returns:
        Current UTC datetime
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def truncate_string(text: str, max_length: int = 100, suffix: str = "...") -> str:
    """Truncate string to maximum length.

    Args:
        text: Text to truncate
        max_length: Maximum length including suffix
        suffix: Suffix to add if truncated

    Returns:
        Truncated string
    """
    if len(text) <= max_length:
        return text
    return text[:max_length - len(suffix)] + suffix
