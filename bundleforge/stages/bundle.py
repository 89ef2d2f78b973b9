"""Bundle descriptor assembly.

Converts manifest parameters and credentials into descriptor form, pins the
invocation image to its digest, embeds the provenance stamp, and publishes
``bundle.json`` atomically.  Nothing is written unless every step before
the final rename succeeded.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any, TextIO

from bundleforge.core.context import BuildContext
from bundleforge.core.reference import pin_digest
from bundleforge.core.stamp import embed_stamp, stamp_manifest
from bundleforge.errors import BundleWriteError
from bundleforge.models.bundle import (
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
)
from bundleforge.stages.base import BaseStage

logger = logging.getLogger(__name__)

DEBUG_PARAMETER = ParameterDefinition(
    name="bundleforge-debug",
    data_type="bool",
    default=False,
    destination=Location(env="BUNDLEFORGE_DEBUG"),
    description="Print debug information from BundleForge when executing the bundle",
)


def implicit_parameters() -> list[ParameterDefinition]:
    """Parameters every bundle carries whether or not the manifest asks."""
    return [DEBUG_PARAMETER]


def convert_parameter(param: ParameterDefinition) -> BundleParameter:
    """Descriptor form of one manifest parameter.

    Required iff there is no default; destination defaults to an
    environment variable named after the upper-cased parameter.
    """
    if param.destination is not None:
        destination = BundleLocation(
            env=param.destination.env, path=param.destination.path
        )
    else:
        destination = BundleLocation(env=param.name.upper())

    return BundleParameter(
        data_type=param.data_type,
        default=param.default,
        allowed_values=param.allowed_values,
        min_value=param.minimum,
        max_value=param.maximum,
        min_length=param.min_length,
        max_length=param.max_length,
        required=param.default is None,
        metadata=ParameterMetadata(description=param.description) if param.description else None,
        destination=destination,
    )


def generate_parameters(
    manifest: Manifest, out: TextIO | None = None
) -> dict[str, BundleParameter]:
    params: dict[str, BundleParameter] = {}
    for param in [*manifest.parameters, *implicit_parameters()]:
        if out is not None:
            out.write(f"Generating parameter definition {param.name} ====>\n")
        params[param.name] = convert_parameter(param)
    return params


def convert_credential(cred: CredentialDefinition) -> BundleLocation:
    return BundleLocation(env=cred.env, path=cred.path)


def generate_credentials(
    manifest: Manifest, out: TextIO | None = None
) -> dict[str, BundleLocation]:
    creds: dict[str, BundleLocation] = {}
    for cred in manifest.credentials:
        if out is not None:
            out.write(f"Generating credential {cred.name} ====>\n")
        creds[cred.name] = convert_credential(cred)
    return creds


def write_bundle(bundle: Bundle, path: Path) -> None:
    """Write *bundle* to *path* atomically (create-or-replace)."""
    data = bundle.to_json_bytes()
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = None
    try:
        with tempfile.NamedTemporaryFile(
            "wb", dir=path.parent, prefix=f".{path.name}.", delete=False
        ) as handle:
            tmp_path = Path(handle.name)
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(tmp_path, 0o644)
        os.replace(tmp_path, path)
    except OSError as exc:
        if tmp_path is not None and tmp_path.exists():
            tmp_path.unlink()
        raise BundleWriteError(f"error writing {path}: {exc}") from exc


class BundleStage(BaseStage):
    """Assembles the descriptor and writes ``bundle.json``."""

    @property
    def stage_id(self) -> str:
        return "bundle"

    @property
    def display_name(self) -> str:
        return "Generating Bundle File"

    def execute(self, ctx: BuildContext) -> dict[str, Any]:
        digest: str = ctx.result("image", "digest")
        bundle = self.assemble(ctx, digest)
        stamp = stamp_manifest(
            ctx.manifest, ctx.config.build_version, ctx.config.build_commit
        )
        bundle = bundle.model_copy(update={"custom": embed_stamp(stamp)})

        # last chance to abort before anything is published
        ctx.token.raise_if_cancelled(self.stage_id)
        write_bundle(bundle, ctx.bundle_path)
        logger.info("Wrote bundle %s to %s", bundle.name, ctx.bundle_path)
        return {
            "bundle_path": str(ctx.bundle_path),
            "image": bundle.invocation_images[0].image,
            "stamp": stamp,
        }

    def assemble(self, ctx: BuildContext, digest: str) -> Bundle:
        """Build the descriptor (without stamp) for a pushed *digest*."""
        manifest = ctx.manifest
        pinned = pin_digest(manifest.image, digest)
        ctx.out.write(f"Using invocation image {pinned} ===>\n")
        return Bundle(
            name=manifest.name,
            description=manifest.description,
            version=manifest.version,
            invocation_images=[
                InvocationImage(image=pinned, image_type=IMAGE_TYPE_DOCKER, digest=digest)
            ],
            parameters=generate_parameters(manifest, ctx.out),
            credentials=generate_credentials(manifest, ctx.out),
        )
