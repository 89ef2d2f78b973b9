"""Build pipeline: the single entry point that turns a manifest into a bundle.

Runs the stages strictly in order (filesystem -> dockerfile -> image ->
bundle) in one build directory, holding an exclusive lock on that
directory for the whole run.  Any stage failure aborts the build; the
bundle descriptor is only published by the last stage.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Callable
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, TextIO

from bundleforge.config import ProdConfig
from bundleforge.core.cancellation import CancellationToken
from bundleforge.core.context import LOCK_NAME, BuildContext
from bundleforge.errors import BuildLockedError
from bundleforge.mixins.provider import MixinProvider
from bundleforge.models.build import BuildResult
from bundleforge.models.manifest import Manifest, load_manifest
from bundleforge.stages.base import BaseStage
from bundleforge.stages.bundle import BundleStage
from bundleforge.stages.dockerfile import DockerfileStage
from bundleforge.stages.filesystem import FilesystemStage
from bundleforge.stages.image import EngineClient, ImageStage

logger = logging.getLogger(__name__)


@contextmanager
def build_lock(workdir: Path) -> Iterator[Path]:
    """Hold an exclusive lock file in *workdir* for the duration of a build."""
    lock_path = workdir / LOCK_NAME
    try:
        fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
    except FileExistsError as exc:
        raise BuildLockedError(
            f"another build is using {workdir} (remove {lock_path} if it is stale)"
        ) from exc
    try:
        os.write(fd, str(os.getpid()).encode("ascii"))
        os.close(fd)
        yield lock_path
    finally:
        lock_path.unlink(missing_ok=True)


class BuildPipeline:
    """Builds one bundle from the manifest in a build directory.

    Parameters
    ----------
    workdir:
        The build directory; holds the manifest and receives ``Dockerfile``
        and ``bundle.json``.
    config:
        Tool configuration.  Defaults to ``ProdConfig()``.
    engine_factory:
        Returns the container engine client.  Defaults to Docker from the
        environment.
    out, err:
        Progress and diagnostic streams.

    Examples
    --------
    >>> pipeline = BuildPipeline(Path("."))              # doctest: +SKIP
    >>> result = pipeline.run(CancellationToken(600))    # doctest: +SKIP
    >>> result.bundle_path                               # doctest: +SKIP
    PosixPath('bundle.json')
    """

    def __init__(
        self,
        workdir: Path,
        config: ProdConfig | None = None,
        *,
        engine_factory: Callable[[], EngineClient] | None = None,
        out: TextIO | None = None,
        err: TextIO | None = None,
    ) -> None:
        self.workdir = Path(workdir)
        self.config = config or ProdConfig()
        self.layout = self.config.home_layout()
        self.out = out or sys.stdout
        self.err = err or sys.stderr
        self.stages: list[BaseStage] = [
            FilesystemStage(),
            DockerfileStage(MixinProvider(self.layout)),
            ImageStage(engine_factory),
            BundleStage(),
        ]

    @property
    def manifest_path(self) -> Path:
        return self.workdir / self.config.manifest_name

    def load_manifest(self) -> Manifest:
        return load_manifest(self.manifest_path)

    def run(
        self,
        token: CancellationToken | None = None,
        manifest: Manifest | None = None,
    ) -> BuildResult:
        """Run every stage in order and return what was published.

        Raises the failing stage's ``BundleForgeError``; on any failure or
        cancellation, ``bundle.json`` is left untouched.
        """
        manifest = manifest or self.load_manifest()
        ctx = BuildContext(
            manifest=manifest,
            workdir=self.workdir,
            config=self.config,
            layout=self.layout,
            out=self.out,
            err=self.err,
            token=token or CancellationToken.none(),
        )
        logger.info(
            "Building bundle %s v%s in %s", manifest.name, manifest.version, self.workdir
        )

        with build_lock(self.workdir):
            for stage in self.stages:
                stage.run_stage(ctx)

        return BuildResult(
            bundle_path=Path(ctx.result("bundle", "bundle_path")),
            dockerfile_path=Path(ctx.result("dockerfile", "dockerfile")),
            image=ctx.result("bundle", "image"),
            digest=ctx.result("image", "digest"),
            stamp=ctx.result("bundle", "stamp"),
        )
