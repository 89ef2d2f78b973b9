"""Provenance stamp model (carried in the bundle's custom metadata)."""

from __future__ import annotations

import base64
import binascii

from pydantic import BaseModel, ConfigDict, Field

from bundleforge.errors import StampDecodeError, StampDecodeReason


class MixinRecord(BaseModel):
    """Per-mixin metadata; reserved for version and capability info."""

    model_config = ConfigDict(frozen=True)


class Stamp(BaseModel):
    """Where a bundle came from: manifest digest, manifest, mixins, tool build.

    Wire names match the descriptor's camelCase convention::

        {"manifestDigest": "...", "manifest": "<base64>",
         "mixins": {"exec": {}}, "version": "v1.2.3", "commit": "abc123"}
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    manifest_digest: str = Field(default="", alias="manifestDigest")
    encoded_manifest: str = Field(default="", alias="manifest")
    mixins: dict[str, MixinRecord] = Field(default_factory=dict)
    version: str = ""
    commit: str = ""

    def decode_manifest(self) -> bytes:
        """Return the raw manifest bytes embedded in the stamp.

        Raises ``StampDecodeError`` with reason ``NO_MANIFEST`` when nothing
        was embedded, or ``INVALID_ENCODING`` when it is not valid base64.
        """
        if not self.encoded_manifest:
            raise StampDecodeError(
                "no manifest was embedded in the bundle",
                reason=StampDecodeReason.NO_MANIFEST,
            )
        try:
            return base64.b64decode(self.encoded_manifest, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise StampDecodeError(
                f"could not base64 decode the manifest in the stamp: {exc}",
                reason=StampDecodeReason.INVALID_ENCODING,
            ) from exc
