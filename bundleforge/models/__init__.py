"""BundleForge data models: all Pydantic v2, all frozen (immutable)."""

from bundleforge.models.build import BuildResult
from bundleforge.models.bundle import (
    CUSTOM_STAMP_KEY,
    IMAGE_TYPE_DOCKER,
    Bundle,
    BundleLocation,
    BundleParameter,
    InvocationImage,
    ParameterMetadata,
)
from bundleforge.models.manifest import (
    CredentialDefinition,
    Location,
    Manifest,
    ParameterDefinition,
    load_manifest,
    parse_manifest,
)
from bundleforge.models.stamp import MixinRecord, Stamp

__all__ = [
    # manifest
    "Manifest",
    "ParameterDefinition",
    "CredentialDefinition",
    "Location",
    "load_manifest",
    "parse_manifest",
    # stamp
    "Stamp",
    "MixinRecord",
    # bundle
    "Bundle",
    "BundleParameter",
    "BundleLocation",
    "InvocationImage",
    "ParameterMetadata",
    "CUSTOM_STAMP_KEY",
    "IMAGE_TYPE_DOCKER",
    # build
    "BuildResult",
]
