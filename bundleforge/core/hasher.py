"""Canonical hashing helpers for manifest digests and descriptor output.

The bundle descriptor and the manifest digest both rely on the same
canonical JSON form so that identical inputs always hash identically.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any


def canonical_json_bytes(obj: Any) -> bytes:
    """Produce canonical JSON bytes: deterministic, sorted, compact.

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


def content_address(data: bytes) -> str:
    """Return "sha256:<hex>" for raw bytes."""
    return f"sha256:{sha256_hex(data)}"


def compute_manifest_digest(manifest_bytes: bytes, version: str, commit: str) -> str:
    """SHA-256 of the raw manifest bytes followed by canonical(version, commit).

    The tool identity is appended as a canonical JSON object rather than
    concatenated raw, so ``("ab", "c")`` and ``("a", "bc")`` never collide.
    """
    identity = canonical_json_bytes({"version": version, "commit": commit})
    return sha256_hex(manifest_bytes + identity)
