"""Provenance stamp: generate, embed, load, and check for staleness.

A stamp records which manifest (by digest, and verbatim as base64), which
mixins, and which build of this tool produced a bundle.  The digest folds
in the tool's version and commit: the same manifest built by a different
tool build is a different bundle.
"""

from __future__ import annotations

import base64
import logging
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import ValidationError

from bundleforge.core.hasher import compute_manifest_digest
from bundleforge.errors import StampDecodeError, StampDecodeReason, StampNotFoundError
from bundleforge.models.bundle import CUSTOM_STAMP_KEY, Bundle
from bundleforge.models.manifest import Manifest
from bundleforge.models.stamp import MixinRecord, Stamp

logger = logging.getLogger(__name__)


def generate_stamp(
    manifest_bytes: bytes,
    version: str,
    commit: str,
    mixins: Iterable[str],
) -> Stamp:
    """Build the stamp for a manifest and the tool build producing it."""
    return Stamp(
        manifest_digest=compute_manifest_digest(manifest_bytes, version, commit),
        encoded_manifest=base64.b64encode(manifest_bytes).decode("ascii"),
        mixins={name: MixinRecord() for name in mixins},
        version=version,
        commit=commit,
    )


def stamp_manifest(manifest: Manifest, version: str, commit: str) -> Stamp:
    """Convenience wrapper over ``generate_stamp`` for a parsed manifest."""
    return generate_stamp(manifest.raw, version, commit, manifest.mixins)


def embed_stamp(stamp: Stamp) -> dict[str, Any]:
    """Custom-metadata entry carrying *stamp*."""
    return {CUSTOM_STAMP_KEY: stamp.model_dump(mode="json", by_alias=True)}


def load_stamp(bundle: Bundle | Mapping[str, Any]) -> Stamp:
    """Read the stamp back out of a bundle's custom metadata.

    *bundle* may be a ``Bundle`` or just its ``custom`` mapping.

    Raises
    ------
    StampNotFoundError
        If the custom metadata has no stamp entry.
    StampDecodeError
        With reason ``SHAPE_MISMATCH`` if the entry is not a key/value
        structure matching the stamp.
    """
    custom = bundle.custom if isinstance(bundle, Bundle) else bundle
    if CUSTOM_STAMP_KEY not in custom:
        raise StampNotFoundError(
            f"bundle has no provenance stamp (custom.{CUSTOM_STAMP_KEY})"
        )

    raw = custom[CUSTOM_STAMP_KEY]
    if not isinstance(raw, Mapping):
        raise StampDecodeError(
            f"could not unmarshal the stamp: expected a mapping, got {type(raw).__name__}",
            reason=StampDecodeReason.SHAPE_MISMATCH,
        )
    try:
        return Stamp.model_validate(dict(raw))
    except ValidationError as exc:
        raise StampDecodeError(
            f"could not unmarshal the stamp: {exc}",
            reason=StampDecodeReason.SHAPE_MISMATCH,
        ) from exc


def is_bundle_stale(
    manifest: Manifest,
    bundle: Bundle,
    version: str,
    commit: str,
) -> bool:
    """Whether *bundle* was built from something other than *manifest*.

    A bundle without a readable stamp is always stale.
    """
    try:
        stamp = load_stamp(bundle)
    except (StampNotFoundError, StampDecodeError) as exc:
        logger.info("Treating bundle %s as stale: %s", bundle.name, exc)
        return True

    current = compute_manifest_digest(manifest.raw, version, commit)
    if stamp.manifest_digest != current:
        logger.info(
            "Manifest digest changed: stamped=%s current=%s",
            stamp.manifest_digest[:12],
            current[:12],
        )
        return True
    return False
