"""Canonical hashing helpers for content addressing and the revision seal."""

from __future__ import annotations

import hashlib
import json
import re
from typing import Any

_DIGEST_RE = re.compile(r"^[0-9a-f]{64}$")


def canonical_json_bytes(obj: Any) -> bytes:
    """Produce canonical JSON bytes for hashing.

    - sorted keys
    - no whitespace separators (",", ":")
    - ensure_ascii=True
    - UTF-8 encoding
    """
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True
    ).encode("utf-8")


def sha256_hex(data: bytes) -> str:
    """Return the SHA-256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def normalize_digest(content_hash: str) -> str:
    """Lowercase the digest and strip surrounding space and any ``sha256:`` prefix."""
    return content_hash.strip().lower().removeprefix("sha256:")


def is_valid_digest(content_hash: str) -> bool:
    """Return True if *content_hash* is a well-formed SHA-256 hex digest."""
    return bool(_DIGEST_RE.match(normalize_digest(content_hash)))


def compute_revision_hash(revision_dict: dict[str, Any]) -> str:
    """SHA-256 of a revision's metadata (excluding ``revision_hash`` and content).

    This is the seal that makes each log row tamper-evident.
    """
    d = {
        k: v
        for k, v in revision_dict.items()
        if k not in ("revision_hash", "content")
    }
    return sha256_hex(canonical_json_bytes(d))
