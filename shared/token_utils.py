"""
Identifier and Access-Code Utilities

Record identifiers are UUID4 strings. Access codes are the sole user
credential, so they are drawn from the OS CSPRNG (secrets) only.
Uses stdlib only - no external crypto libraries.
"""

from __future__ import annotations

import re
import secrets
import uuid
from typing import Callable, Iterable

ACCESS_CODE_BYTES = 12  # 96 bits -> 24 hex chars
ACCESS_CODE_LENGTH = ACCESS_CODE_BYTES * 2

_ACCESS_CODE_RE = re.compile(r"[0-9a-f]{24}")


def new_id() -> str:
    """Generate unique record ID (UUID4)"""
    return str(uuid.uuid4())


def new_access_code() -> str:
    """
    Generate a 24-character lowercase hex access code.

    Raises:
        RuntimeError: If the OS randomness source is unavailable
    """
    try:
        return secrets.token_hex(ACCESS_CODE_BYTES)
    except NotImplementedError as e:
        raise RuntimeError(f"No strong randomness source available: {e}") from e


def is_valid_access_code(code: str) -> bool:
    """Check code shape (24 lowercase hex chars)"""
    return bool(code) and _ACCESS_CODE_RE.fullmatch(code) is not None


def unique_access_code(
    existing: Iterable[str],
    max_attempts: int = 8,
    generator: Callable[[], str] = new_access_code,
) -> str | None:
    """
    Draw access codes until one is not in `existing`.

    Args:
        existing: Codes already issued
        max_attempts: How many draws before giving up
        generator: Code source (injectable for tests)

    Returns:
        A fresh code, or None if every attempt collided
    """
    taken = set(existing)
    for _ in range(max_attempts):
        code = generator()
        if code not in taken:
            return code
    return None
