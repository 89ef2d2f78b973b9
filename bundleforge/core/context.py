"""Per-build state shared by the pipeline stages."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TextIO

from bundleforge.config import ProdConfig
from bundleforge.core.cancellation import CancellationToken
from bundleforge.core.home import HomeLayout
from bundleforge.models.manifest import Manifest

# Held in the build directory while a build owns it.
LOCK_NAME = ".bundleforge.lock"


@dataclass
class BuildContext:
    """Everything one build needs, plus what its stages have produced.

    ``out`` is the progress stream shown to the user; ``err`` receives
    diagnostics (mixin stderr).  ``stage_results`` is filled in by each
    stage as it completes, keyed by ``stage_id``.
    """

    manifest: Manifest
    workdir: Path
    config: ProdConfig
    layout: HomeLayout
    out: TextIO = field(default_factory=lambda: sys.stdout)
    err: TextIO = field(default_factory=lambda: sys.stderr)
    token: CancellationToken = field(default_factory=CancellationToken.none)
    stage_results: dict[str, dict[str, Any]] = field(default_factory=dict)

    @property
    def dockerfile_path(self) -> Path:
        return self.workdir / self.config.dockerfile_name

    @property
    def bundle_path(self) -> Path:
        return self.workdir / self.config.bundle_file

    def result(self, stage_id: str, key: str) -> Any:
        """Fetch *key* from an earlier stage's result."""
        return self.stage_results[stage_id][key]
