"""BundleForge build stages, run in this order by ``BuildPipeline``:

filesystem -> dockerfile -> image -> bundle
"""

from __future__ import annotations

from bundleforge.stages.base import BaseStage
from bundleforge.stages.bundle import BundleStage
from bundleforge.stages.dockerfile import DockerfileStage
from bundleforge.stages.filesystem import FilesystemStage
from bundleforge.stages.image import ImageStage

__all__ = [
    "BaseStage",
    "BundleStage",
    "DockerfileStage",
    "FilesystemStage",
    "ImageStage",
]
