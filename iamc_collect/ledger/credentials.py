"""PIN hashing for agent credentials."""

from __future__ import annotations

import hashlib

DEFAULT_AGENT_PIN = "0000"


def hash_pin(society_id: str, pin: str) -> str:
    """SHA-256 hex digest of ``"{society_id}:{pin}"``."""
    return hashlib.sha256(f"{society_id}:{pin}".encode("utf-8")).hexdigest()


def verify_pin(society_id: str, pin: str, expected_hash: str) -> bool:
    return bool(expected_hash) and hash_pin(society_id, pin) == expected_hash
