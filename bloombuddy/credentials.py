"""
Credential Shape Check
======================
Format-only sanity checks for the completion-service API key.

These heuristics catch pasted whitespace, truncated keys and keys for the
wrong service before a request is made. They do not verify the key with
the remote service.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

KEY_PREFIX = "sk-"
MIN_KEY_LENGTH = 20
MAX_KEY_LENGTH = 200

_KEY_BODY_PATTERN = re.compile(r"^[A-Za-z0-9_\-]+$")


class CredentialError(ValueError):
    """Raised when an API key fails the shape check."""


@dataclass(frozen=True)
class CredentialCheck:
    valid: bool
    reason: str = ""


def check_api_key(key: Optional[str]) -> CredentialCheck:
    """
    Check that an API key looks like a completion-service secret key.

    Rules (applied to the key with surrounding whitespace removed):
        - non-empty
        - starts with "sk-"
        - between MIN_KEY_LENGTH and MAX_KEY_LENGTH characters
        - only letters, digits, '-' and '_' after the prefix
    """
    if key is None:
        return CredentialCheck(False, "API key is missing")

    key = key.strip()
    if not key:
        return CredentialCheck(False, "API key is empty")

    if not key.startswith(KEY_PREFIX):
        return CredentialCheck(False, f"API key must start with '{KEY_PREFIX}'")

    if len(key) < MIN_KEY_LENGTH:
        return CredentialCheck(
            False, f"API key is too short ({len(key)} < {MIN_KEY_LENGTH} characters)"
        )

    if len(key) > MAX_KEY_LENGTH:
        return CredentialCheck(
            False, f"API key is too long ({len(key)} > {MAX_KEY_LENGTH} characters)"
        )

    body = key[len(KEY_PREFIX):]
    if any(c.isspace() for c in body):
        return CredentialCheck(False, "API key contains whitespace")

    if not _KEY_BODY_PATTERN.match(body):
        return CredentialCheck(False, "API key contains invalid characters")

    return CredentialCheck(True)


def require_valid_api_key(key: Optional[str]) -> str:
    """Return the stripped key, or raise CredentialError with the reason."""
    result = check_api_key(key)
    if not result.valid:
        raise CredentialError(result.reason)
    return key.strip()


def mask_api_key(key: Optional[str]) -> str:
    """Render a key safely for logs: 'sk-abc…wxyz'."""
    if not key:
        return "(not set)"
    key = key.strip()
    if len(key) <= 10:
        return "*" * len(key)
    return f"{key[:6]}…{key[-4:]}"
