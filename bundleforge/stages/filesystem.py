"""Filesystem staging: copy everything the image needs into the build context.

Order is fixed: dependency bundles, then the runtime executable, then
each mixin's install directory.  A missing source aborts the build before
anything is handed to the engine.

Context layout::

    cnab/app/bundles/{dependency}/...
    cnab/app/bundleforge-runtime
    cnab/app/mixins/{mixin}/...
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Any

from bundleforge.core.context import BuildContext
from bundleforge.core.home import RUNTIME_NAME
from bundleforge.errors import StagingError
from bundleforge.stages.base import BaseStage

logger = logging.getLogger(__name__)

APP_DIR = Path("cnab") / "app"
BUNDLES_DIR = APP_DIR / "bundles"
MIXINS_DIR = APP_DIR / "mixins"
RUNTIME_PATH = APP_DIR / RUNTIME_NAME


class FilesystemStage(BaseStage):
    """Stages dependencies, the runtime and mixins into the build directory."""

    @property
    def stage_id(self) -> str:
        return "filesystem"

    @property
    def display_name(self) -> str:
        return "Preparing build context"

    def execute(self, ctx: BuildContext) -> dict[str, Any]:
        manifest = ctx.manifest
        staged: list[str] = []

        ctx.out.write("Copying dependencies ===>\n")
        for dep in manifest.dependencies:
            ctx.token.raise_if_cancelled(self.stage_id)
            ctx.out.write(f"Copying bundle dependency {dep} ===>\n")
            src = ctx.layout.bundle_dir(dep)
            staged.append(self._copy_tree(src, ctx.workdir / BUNDLES_DIR / dep, dep))

        ctx.out.write("Copying runtime ===>\n")
        runtime = ctx.layout.runtime_path()
        dest = ctx.workdir / RUNTIME_PATH
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(runtime, dest)
        except OSError as exc:
            raise StagingError(f"could not copy runtime {runtime}: {exc}") from exc
        staged.append(str(RUNTIME_PATH))

        ctx.out.write("Copying mixins ===>\n")
        for mixin in manifest.mixins:
            ctx.token.raise_if_cancelled(self.stage_id)
            ctx.out.write(f"Copying mixin {mixin} ===>\n")
            src = ctx.layout.mixin_dir(mixin)
            staged.append(self._copy_tree(src, ctx.workdir / MIXINS_DIR / mixin, mixin))

        logger.info("Staged %d entries into %s", len(staged), ctx.workdir)
        return {"staged": staged}

    @staticmethod
    def _copy_tree(src: Path, dest: Path, name: str) -> str:
        """Copy the whole tree at *src* to *dest*, merging over old content."""
        try:
            shutil.copytree(src, dest, dirs_exist_ok=True)
        except OSError as exc:
            raise StagingError(
                f"could not copy directory contents for {name}: {exc}"
            ) from exc
        return str(dest)
