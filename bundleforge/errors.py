"""Error taxonomy for the bundle build pipeline.

Every failure raised by the pipeline derives from ``BundleForgeError`` and
names the stage it came from, so the CLI can report *which* stage failed
and *why*.  Lower-level exceptions (subprocess, Docker SDK, filesystem) are
always chained with ``raise ... from exc`` rather than discarded.
"""

from __future__ import annotations

from enum import Enum


class BundleForgeError(RuntimeError):
    """Base class for every pipeline failure."""

    stage: str = "build"

    def __init__(self, message: str, *, stage: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if stage is not None:
            self.stage = stage


class ConfigurationError(BundleForgeError):
    """The manifest or tool configuration is missing or invalid."""

    stage = "configuration"


class ScriptGenerationError(BundleForgeError):
    """The Dockerfile could not be composed (base file or mixin failure)."""

    stage = "dockerfile"


class MixinExecutionError(ScriptGenerationError):
    """A mixin failed its readiness check, exited non-zero or wrote bad output."""

    def __init__(
        self,
        mixin: str,
        message: str,
        *,
        exit_code: int | None = None,
        stderr: str = "",
    ) -> None:
        super().__init__(f"mixin {mixin!r}: {message}")
        self.mixin = mixin
        self.exit_code = exit_code
        self.stderr = stderr


class StagingError(BundleForgeError):
    """A dependency, mixin or runtime source could not be copied."""

    stage = "filesystem"


class ImageBuildError(BundleForgeError):
    """The engine rejected the build or reported an error frame."""

    stage = "image-build"


class ImagePushError(BundleForgeError):
    """Pushing the invocation image failed."""

    stage = "image-push"


class ImageAuthError(ImagePushError):
    """The registry denied the push."""


class DigestResolutionError(BundleForgeError):
    """The registry could not report the pushed image's digest."""

    stage = "image-inspect"


class ReferenceParseError(BundleForgeError):
    """An image reference is not well formed."""

    stage = "reference"


class StampNotFoundError(BundleForgeError):
    """The bundle carries no provenance stamp."""

    stage = "stamp"


class StampDecodeReason(str, Enum):
    """Why a stamp could not be decoded."""

    NO_MANIFEST = "no_manifest"
    INVALID_ENCODING = "invalid_encoding"
    SHAPE_MISMATCH = "shape_mismatch"


class StampDecodeError(BundleForgeError):
    """A stamp, or the manifest embedded in it, could not be decoded."""

    stage = "stamp"

    def __init__(self, message: str, *, reason: StampDecodeReason) -> None:
        super().__init__(message)
        self.reason = reason


class BundleWriteError(BundleForgeError):
    """The bundle descriptor could not be persisted."""

    stage = "bundle"


class BuildCancelledError(BundleForgeError):
    """The caller cancelled the build or its deadline passed."""


class BuildLockedError(BundleForgeError):
    """Another build already owns the build directory."""


class StageExecutionError(BundleForgeError):
    """An unexpected exception escaped a stage's ``execute()``."""
