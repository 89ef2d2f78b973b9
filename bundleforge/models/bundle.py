"""Bundle descriptor models (``bundle.json`` wire format).

Field names are snake_case in Python and camelCase on the wire; optional
fields that were never set are omitted from the serialised document.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from bundleforge.core.hasher import canonical_json_bytes

IMAGE_TYPE_DOCKER = "docker"

# Custom-metadata key under which the provenance stamp is stored.
CUSTOM_STAMP_KEY = "sh.bundleforge.v1"


class BundleLocation(BaseModel):
    """Delivery location of a parameter or credential inside the image."""

    model_config = ConfigDict(frozen=True)

    env: str = ""
    path: str = ""


class ParameterMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    description: str = ""


class BundleParameter(BaseModel):
    """Descriptor-format parameter definition."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    data_type: str = Field(alias="type")
    default: Any = None
    allowed_values: list[Any] | None = Field(default=None, alias="allowedValues")
    min_value: int | float | None = Field(default=None, alias="minValue")
    max_value: int | float | None = Field(default=None, alias="maxValue")
    min_length: int | None = Field(default=None, alias="minLength")
    max_length: int | None = Field(default=None, alias="maxLength")
    required: bool = False
    metadata: ParameterMetadata | None = None
    destination: BundleLocation | None = None


class InvocationImage(BaseModel):
    """The digest-pinned image the execution engine runs."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    image: str
    image_type: str = Field(default=IMAGE_TYPE_DOCKER, alias="imageType")
    digest: str


class Bundle(BaseModel):
    """The bundle descriptor handed to the execution engine."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    description: str = ""
    version: str
    invocation_images: list[InvocationImage] = Field(
        default_factory=list, alias="invocationImages"
    )
    parameters: dict[str, BundleParameter] = Field(default_factory=dict)
    credentials: dict[str, BundleLocation] = Field(default_factory=dict)
    custom: dict[str, Any] = Field(default_factory=dict)

    def to_wire(self) -> dict[str, Any]:
        """Serialisable dict using wire names, unset optionals dropped."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def to_json_bytes(self) -> bytes:
        """Canonical JSON form of the descriptor."""
        return canonical_json_bytes(self.to_wire())

    @classmethod
    def from_json_bytes(cls, data: bytes) -> Bundle:
        return cls.model_validate_json(data)
