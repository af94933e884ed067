# src/track_core/tracks/track_ids.py

from __future__ import annotations

import secrets

# Alphanumeric only, so ids survive double-click selection and shell quoting.
ID_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789"
ID_LENGTH = 8


def generate_id() -> str:
    """Return a new random 8-character track id (62**8 possible values)."""
    return "".join(secrets.choice(ID_ALPHABET) for _ in range(ID_LENGTH))


def is_valid_id(value: str) -> bool:
    return len(value) == ID_LENGTH and all(ch in ID_ALPHABET for ch in value)
