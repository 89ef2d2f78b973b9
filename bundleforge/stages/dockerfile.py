"""Dockerfile composition.

The generated Dockerfile is, in order:

    1. the base lines: the manifest's ``dockerfile`` if set, otherwise the
       built-in template;
    2. each mixin's ``build`` output, in manifest order, verbatim;
    3. the copy section (``cnab/`` and the manifest);
    4. the entrypoint section (``chmod`` + ``CMD``).

The copy and entrypoint lines go last because they change most often and
so invalidate the fewest cached layers.
"""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Any

from bundleforge.core.context import BuildContext
from bundleforge.core.hasher import content_address
from bundleforge.errors import ScriptGenerationError, StagingError
from bundleforge.mixins.provider import MixinProvider
from bundleforge.mixins.runner import BUILD_COMMAND, MixinStreams
from bundleforge.stages.base import BaseStage

logger = logging.getLogger(__name__)

ENTRYPOINT = "/cnab/app/run"
DEFAULT_TEMPLATE = "Dockerfile.tmpl"
TEMPLATES_DIR = Path(__file__).resolve().parents[1] / "templates"


def load_default_template() -> str:
    """Return the built-in base Dockerfile."""
    return (TEMPLATES_DIR / DEFAULT_TEMPLATE).read_text(encoding="utf-8")


class DockerfileStage(BaseStage):
    """Composes the Dockerfile from base, mixin output and fixed trailers."""

    def __init__(self, provider: MixinProvider | None = None) -> None:
        self._provider = provider

    @property
    def stage_id(self) -> str:
        return "dockerfile"

    @property
    def display_name(self) -> str:
        return "Generating Dockerfile"

    def execute(self, ctx: BuildContext) -> dict[str, Any]:
        lines = self.build_lines(ctx)

        contents = "\n".join(lines)
        path = ctx.dockerfile_path
        try:
            path.write_text(contents, encoding="utf-8")
        except OSError as exc:
            raise ScriptGenerationError(f"couldn't write the Dockerfile: {exc}") from exc

        ctx.out.write(f"\nWriting Dockerfile to {path} =======>\n")
        logger.info("Wrote %s (%s)", path, content_address(contents.encode("utf-8")))
        return {"dockerfile": str(path), "lines": lines}

    def build_lines(self, ctx: BuildContext) -> list[str]:
        """Compose the full Dockerfile as a list of lines."""
        lines: list[str] = []
        sections = (
            ("base", self._base_lines),
            ("mixins", self._mixin_lines),
            ("copy", self._copy_lines),
            ("entrypoint", self._cmd_lines),
        )
        for section, produce in sections:
            ctx.token.raise_if_cancelled(self.stage_id)
            produced = produce(ctx)
            for line in produced:
                ctx.out.write(line + "\n")
            logger.debug("Dockerfile section %s: %d lines", section, len(produced))
            lines.extend(produced)
        return lines

    # ------------------------------------------------------------------
    # Sections
    # ------------------------------------------------------------------

    @staticmethod
    def _base_lines(ctx: BuildContext) -> list[str]:
        custom = ctx.manifest.dockerfile
        if not custom:
            try:
                return load_default_template().splitlines()
            except OSError as exc:
                raise ScriptGenerationError(
                    f"error loading default Dockerfile template: {exc}"
                ) from exc

        path = Path(custom)
        if not path.is_absolute():
            path = ctx.workdir / path
        if not path.is_file():
            raise ScriptGenerationError(
                f"the Dockerfile specified in the manifest doesn't exist: {custom!r}"
            )
        try:
            return path.read_text(encoding="utf-8").splitlines()
        except OSError as exc:
            raise ScriptGenerationError(f"could not read {custom!r}: {exc}") from exc

    def _mixin_lines(self, ctx: BuildContext) -> list[str]:
        provider = self._provider or MixinProvider(ctx.layout)
        lines: list[str] = []
        for name in ctx.manifest.mixins:
            # stdout -> Dockerfile lines, stderr -> diagnostics
            streams = MixinStreams(primary=io.StringIO(), diagnostics=ctx.err, progress=ctx.out)
            try:
                runner = provider.get_runner(
                    name,
                    command=BUILD_COMMAND,
                    input="",
                    streams=streams,
                    cwd=ctx.workdir,
                    timeout=ctx.config.mixin_timeout_seconds,
                    token=ctx.token,
                )
            except StagingError as exc:
                raise ScriptGenerationError(str(exc)) from exc
            runner.validate()
            lines.extend(runner.run())
        return lines

    @staticmethod
    def _copy_lines(ctx: BuildContext) -> list[str]:
        manifest_name = ctx.config.manifest_name
        return [
            "COPY cnab/ /cnab/",
            f"COPY {manifest_name} /cnab/app/{manifest_name}",
        ]

    @staticmethod
    def _cmd_lines(ctx: BuildContext) -> list[str]:
        return [
            f'RUN chmod 755 "{ENTRYPOINT}"',
            f'CMD ["{ENTRYPOINT}"]',
        ]

