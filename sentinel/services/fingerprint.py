"""
Stable, privacy-scrubbed identity for incoming errors.

Errors that differ only by embedded IDs (numbers, hex tokens) collapse onto
the same fingerprint; the user is reduced to a user/anonymous bucket.
"""

import hashlib
import re
from collections.abc import Mapping
from typing import Any

from sentinel.domain.models import ErrorReport

FINGERPRINT_LENGTH = 16

# A hex token needs at least one letter; all-digit runs belong to _DIGITS.
_HEX = re.compile(r"(?=[0-9a-fA-F]*[a-fA-F])[0-9a-fA-F]{8,}")
_DIGITS = re.compile(r"\d+")


def normalize_message(message: str) -> str:
    return _DIGITS.sub("N", _HEX.sub("HEX", message or ""))


def generate_fingerprint(
    error: ErrorReport, context: Mapping[str, Any] | None = None, user_id: str | None = None
) -> str:
    context = context or {}
    has_user = bool(user_id or context.get("userId"))
    components = [
        error.name or "",
        normalize_message(error.message),
        str(context.get("path") or ""),
        "user" if has_user else "anonymous",
    ]
    digest = hashlib.sha256("|".join(components).encode("utf-8")).hexdigest()
    return digest[:FINGERPRINT_LENGTH]
