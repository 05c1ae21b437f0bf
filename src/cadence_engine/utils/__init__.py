"""Utility exports for hashing helpers."""

from cadence_engine.utils.hashing import content_digest, sha256_bytes, sha256_json, sha256_text

__all__ = [
    "content_digest",
    "sha256_bytes",
    "sha256_json",
    "sha256_text",
]
