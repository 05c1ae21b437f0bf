"""
cadence-engine: hashing utilities

File: src/cadence_engine/utils/hashing.py

Purpose
- Provide deterministic SHA-256 helpers for bytes, text, and JSON-compatible payloads.
- Derive short content digests used as opaque candidate hashes and fingerprints.

Functional requirements
- Equal payloads produce equal digests regardless of mapping key order.

Non-functional requirements
- Standard library only; behavior is cross-platform deterministic.
"""

from __future__ import annotations

import hashlib
import json
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cadence_engine.domain.models import JSONValue

_DEFAULT_DIGEST_LENGTH = 16

__all__ = [
    "content_digest",
    "sha256_bytes",
    "sha256_json",
    "sha256_text",
]


def sha256_bytes(data: bytes) -> str:
    """Return SHA-256 hex digest for raw bytes."""

    return hashlib.sha256(data).hexdigest()


def sha256_text(text: str, *, encoding: str = "utf-8") -> str:
    """Return SHA-256 hex digest for text encoded with ``encoding``."""

    return sha256_bytes(text.encode(encoding))


def sha256_json(value: JSONValue) -> str:
    """Return SHA-256 hex digest of the canonical JSON rendering of ``value``."""

    rendered = json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return sha256_text(rendered)


def content_digest(value: JSONValue, *, prefix: str = "", length: int = _DEFAULT_DIGEST_LENGTH) -> str:
    """
    Return a truncated canonical digest, optionally prefixed.

    ``length`` is the number of hex characters kept (1..64).
    """

    if not 1 <= length <= 64:
        raise ValueError("length must be between 1 and 64")
    digest = sha256_json(value)[:length]
    return f"{prefix}{digest}" if prefix else digest
