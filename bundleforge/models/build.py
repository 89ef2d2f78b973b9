"""Result of a completed build."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict

from bundleforge.models.stamp import Stamp


class BuildResult(BaseModel):
    """What a successful pipeline run published."""

    model_config = ConfigDict(frozen=True)

    bundle_path: Path
    dockerfile_path: Path
    image: str  # digest-pinned, name@digest
    digest: str
    stamp: Stamp
