"""Manifest models: the parsed form of ``bundleforge.yaml``.

The manifest schema itself is owned elsewhere; these models carry exactly
the fields the build pipeline consumes.  The raw bytes the manifest was
parsed from travel with it because the provenance stamp digests and embeds
them verbatim.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from bundleforge.errors import ConfigurationError


class Location(BaseModel):
    """Where a parameter or credential is delivered inside the image."""

    model_config = ConfigDict(frozen=True)

    env: str = ""
    path: str = ""


class ParameterDefinition(BaseModel):
    """A manifest parameter, before conversion to descriptor format."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    data_type: str = Field(default="string", alias="type")
    default: Any = None
    allowed_values: list[Any] | None = Field(default=None, alias="allowedValues")
    minimum: int | float | None = None
    maximum: int | float | None = None
    min_length: int | None = Field(default=None, alias="minLength")
    max_length: int | None = Field(default=None, alias="maxLength")
    destination: Location | None = None
    description: str = ""


class CredentialDefinition(BaseModel):
    """A manifest credential; converted 1:1 into a descriptor location."""

    model_config = ConfigDict(frozen=True)

    name: str
    env: str = ""
    path: str = ""


class Manifest(BaseModel):
    """The application description a bundle is built from.

    ``mixins`` and ``dependencies`` are ordered: their order is the order in
    which mixin output appears in the Dockerfile and in which files are
    staged into the build context.

    Examples
    --------
    >>> m = Manifest(name="hello", image="registry/hello:v1", mixins=["exec"])
    >>> m.mixins
    ['exec']
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    description: str = ""
    version: str = "0.1.0"
    image: str
    dockerfile: str = ""
    mixins: list[str] = Field(default_factory=list)
    dependencies: list[str] = Field(default_factory=list)
    parameters: list[ParameterDefinition] = Field(default_factory=list)
    credentials: list[CredentialDefinition] = Field(default_factory=list)

    raw: bytes = Field(default=b"", exclude=True, repr=False)


def parse_manifest(data: bytes) -> Manifest:
    """Parse manifest YAML bytes into a ``Manifest``.

    Raises ``ConfigurationError`` if the document is not valid YAML or does
    not describe a manifest.
    """
    try:
        document = yaml.safe_load(data) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"manifest is not valid YAML: {exc}") from exc
    if not isinstance(document, dict):
        raise ConfigurationError("manifest must be a mapping at the top level")

    try:
        return Manifest.model_validate({**document, "raw": data})
    except ValidationError as exc:
        raise ConfigurationError(f"invalid manifest: {exc}") from exc


def load_manifest(path: Path) -> Manifest:
    """Read and parse the manifest at *path*."""
    if not path.is_file():
        raise ConfigurationError(f"manifest not found: {path}")
    return parse_manifest(path.read_bytes())
