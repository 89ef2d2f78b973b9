"""Tests for the provenance stamp: generation, embedding, loading, staleness."""

from __future__ import annotations

import base64

import pytest

from bundleforge.core.hasher import compute_manifest_digest
from bundleforge.core.stamp import (
    embed_stamp,
    generate_stamp,
    is_bundle_stale,
    load_stamp,
    stamp_manifest,
)
from bundleforge.errors import StampDecodeError, StampDecodeReason, StampNotFoundError
from bundleforge.models.bundle import CUSTOM_STAMP_KEY, Bundle
from bundleforge.models.manifest import parse_manifest
from bundleforge.models.stamp import MixinRecord, Stamp

MANIFEST = b"name: hello\nimage: registry/hello:v1\nmixins:\n  - exec\n"


def _bundle(custom: dict) -> Bundle:
    return Bundle(name="hello", version="0.1.0", custom=custom)


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------


class TestGenerateStamp:
    def test_single_mixin(self):
        stamp = generate_stamp(MANIFEST, "v1.2.3", "abc123", ["exec"])
        assert stamp.mixins == {"exec": MixinRecord()}
        assert stamp.version == "v1.2.3"
        assert stamp.commit == "abc123"

    def test_two_mixins(self):
        stamp = generate_stamp(MANIFEST, "v1.2.3", "abc123", ["exec", "kubernetes"])
        assert set(stamp.mixins) == {"exec", "kubernetes"}

    def test_no_mixins(self):
        stamp = generate_stamp(MANIFEST, "v1.2.3", "abc123", [])
        assert stamp.mixins == {}

    def test_digest_matches_hasher(self):
        stamp = generate_stamp(MANIFEST, "v1.2.3", "abc123", ["exec"])
        assert stamp.manifest_digest == compute_manifest_digest(MANIFEST, "v1.2.3", "abc123")

    def test_manifest_embedded_verbatim(self):
        stamp = generate_stamp(MANIFEST, "v1.2.3", "abc123", ["exec"])
        assert base64.b64decode(stamp.encoded_manifest) == MANIFEST
        assert stamp.decode_manifest() == MANIFEST

    def test_stamp_manifest_uses_raw_bytes_and_mixins(self):
        manifest = parse_manifest(MANIFEST)
        stamp = stamp_manifest(manifest, "v1.2.3", "abc123")
        assert stamp.decode_manifest() == MANIFEST
        assert list(stamp.mixins) == ["exec"]


# ---------------------------------------------------------------------------
# Embedding and loading
# ---------------------------------------------------------------------------


class TestEmbedAndLoad:
    def test_embed_uses_wire_names(self):
        stamp = generate_stamp(MANIFEST, "v1.2.3", "abc123", ["exec"])
        custom = embed_stamp(stamp)
        assert list(custom) == [CUSTOM_STAMP_KEY]
        entry = custom[CUSTOM_STAMP_KEY]
        assert entry["manifestDigest"] == stamp.manifest_digest
        assert entry["manifest"] == stamp.encoded_manifest
        assert entry["mixins"] == {"exec": {}}

    def test_round_trip_through_bundle_json(self):
        stamp = generate_stamp(MANIFEST, "v1.2.3", "abc123", ["exec", "kubernetes"])
        bundle = _bundle(embed_stamp(stamp))
        reloaded = Bundle.from_json_bytes(bundle.to_json_bytes())
        assert load_stamp(reloaded) == stamp

    def test_load_from_custom_mapping(self):
        stamp = generate_stamp(MANIFEST, "v1.2.3", "abc123", ["exec"])
        assert load_stamp(embed_stamp(stamp)) == stamp

    def test_missing_entry_raises_not_found(self):
        with pytest.raises(StampNotFoundError):
            load_stamp(_bundle({}))

    def test_list_entry_is_shape_mismatch(self):
        with pytest.raises(StampDecodeError) as excinfo:
            load_stamp(_bundle({CUSTOM_STAMP_KEY: ["not", "a", "stamp"]}))
        assert excinfo.value.reason is StampDecodeReason.SHAPE_MISMATCH
        assert "could not unmarshal the stamp" in excinfo.value.message

    def test_wrongly_typed_field_is_shape_mismatch(self):
        with pytest.raises(StampDecodeError) as excinfo:
            load_stamp({CUSTOM_STAMP_KEY: {"mixins": "exec"}})
        assert excinfo.value.reason is StampDecodeReason.SHAPE_MISMATCH


# ---------------------------------------------------------------------------
# Embedded manifest decoding
# ---------------------------------------------------------------------------


class TestDecodeManifest:
    def test_valid(self):
        stamp = Stamp(encoded_manifest="bmFtZTogaGVsbG8=")
        assert stamp.decode_manifest() == b"name: hello"

    def test_empty_is_no_manifest(self):
        with pytest.raises(StampDecodeError) as excinfo:
            Stamp().decode_manifest()
        assert excinfo.value.reason is StampDecodeReason.NO_MANIFEST
        assert excinfo.value.message == "no manifest was embedded in the bundle"

    def test_invalid_base64(self):
        with pytest.raises(StampDecodeError) as excinfo:
            Stamp(encoded_manifest="not base64!!").decode_manifest()
        assert excinfo.value.reason is StampDecodeReason.INVALID_ENCODING
        assert excinfo.value.message.startswith(
            "could not base64 decode the manifest in the stamp"
        )


# ---------------------------------------------------------------------------
# Staleness
# ---------------------------------------------------------------------------


class TestBundleStaleness:
    def test_fresh_bundle(self):
        manifest = parse_manifest(MANIFEST)
        bundle = _bundle(embed_stamp(stamp_manifest(manifest, "v1.2.3", "abc123")))
        assert is_bundle_stale(manifest, bundle, "v1.2.3", "abc123") is False

    def test_edited_manifest_is_stale(self):
        manifest = parse_manifest(MANIFEST)
        bundle = _bundle(embed_stamp(stamp_manifest(manifest, "v1.2.3", "abc123")))
        edited = parse_manifest(MANIFEST + b"description: changed\n")
        assert is_bundle_stale(edited, bundle, "v1.2.3", "abc123") is True

    def test_new_tool_build_is_stale(self):
        manifest = parse_manifest(MANIFEST)
        bundle = _bundle(embed_stamp(stamp_manifest(manifest, "v1.2.3", "abc123")))
        assert is_bundle_stale(manifest, bundle, "v1.2.4", "abc123") is True

    def test_unstamped_bundle_is_stale(self):
        manifest = parse_manifest(MANIFEST)
        assert is_bundle_stale(manifest, _bundle({}), "v1.2.3", "abc123") is True

    def test_unreadable_stamp_is_stale(self):
        manifest = parse_manifest(MANIFEST)
        bundle = _bundle({CUSTOM_STAMP_KEY: "garbage"})
        assert is_bundle_stale(manifest, bundle, "v1.2.3", "abc123") is True
