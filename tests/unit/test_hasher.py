"""Tests for canonical hashing and the manifest digest."""

from __future__ import annotations

from bundleforge.core.hasher import (
    canonical_json_bytes,
    compute_manifest_digest,
    content_address,
    sha256_hex,
)


class TestCanonicalJson:
    def test_sorted_and_compact(self):
        assert canonical_json_bytes({"b": 1, "a": [1, 2]}) == b'{"a":[1,2],"b":1}'

    def test_key_order_does_not_matter(self):
        assert canonical_json_bytes({"x": 1, "y": 2}) == canonical_json_bytes({"y": 2, "x": 1})

    def test_non_ascii_is_escaped(self):
        assert canonical_json_bytes({"name": "café"}) == b'{"name":"caf\\u00e9"}'


class TestContentAddress:
    def test_prefix_and_length(self):
        address = content_address(b"hello")
        assert address.startswith("sha256:")
        assert len(address) == len("sha256:") + 64

    def test_matches_sha256_hex(self):
        assert content_address(b"hello") == "sha256:" + sha256_hex(b"hello")


class TestManifestDigest:
    """The digest covers the manifest bytes and the tool identity."""

    MANIFEST = b"name: hello\nimage: registry/hello:v1\n"

    def test_deterministic(self):
        first = compute_manifest_digest(self.MANIFEST, "v1.0.0", "abc123")
        second = compute_manifest_digest(self.MANIFEST, "v1.0.0", "abc123")
        assert first == second
        assert len(first) == 64

    def test_manifest_change_changes_digest(self):
        before = compute_manifest_digest(self.MANIFEST, "v1.0.0", "abc123")
        after = compute_manifest_digest(self.MANIFEST + b"# edit\n", "v1.0.0", "abc123")
        assert before != after

    def test_version_change_changes_digest(self):
        old = compute_manifest_digest(self.MANIFEST, "v1.0.0", "abc123")
        new = compute_manifest_digest(self.MANIFEST, "v1.0.1", "abc123")
        assert old != new

    def test_commit_change_changes_digest(self):
        old = compute_manifest_digest(self.MANIFEST, "v1.0.0", "abc123")
        new = compute_manifest_digest(self.MANIFEST, "v1.0.0", "def456")
        assert old != new

    def test_identity_fields_do_not_run_together(self):
        """Moving a character between version and commit is a different build."""
        left = compute_manifest_digest(self.MANIFEST, "ab", "c")
        right = compute_manifest_digest(self.MANIFEST, "a", "bc")
        assert left != right
