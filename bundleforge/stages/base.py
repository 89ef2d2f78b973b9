"""Abstract base stage with an enforced lifecycle.

Every concrete stage inherits from BaseStage and implements only
``execute()``.  The ``run_stage()`` wrapper is **not overridable**: it
enforces the canonical lifecycle ordering:

    check cancellation -> announce -> execute -> record

Pipeline errors raised by ``execute()`` already name their stage and
propagate unchanged; anything else is wrapped in ``StageExecutionError``.
"""

from __future__ import annotations

import abc
import logging
import time
from typing import Any, final

from bundleforge.core.context import BuildContext
from bundleforge.errors import BundleForgeError, StageExecutionError

logger = logging.getLogger(__name__)


class BaseStage(abc.ABC):
    """Abstract base for all BundleForge build stages.

    Subclasses **must** implement:
        * ``stage_id``    : unique identifier (e.g. ``"dockerfile"``).
        * ``display_name``: heading printed to the progress stream.
        * ``execute(ctx)``: the stage's core logic.

    Subclasses **must not** override ``run_stage()``.
    """

    @property
    @abc.abstractmethod
    def stage_id(self) -> str:
        """Unique stage identifier."""
        ...

    @property
    @abc.abstractmethod
    def display_name(self) -> str:
        """Heading printed when the stage starts."""
        ...

    @abc.abstractmethod
    def execute(self, ctx: BuildContext) -> dict[str, Any]:
        """Run the stage and return its result dict."""
        ...

    @final
    def run_stage(self, ctx: BuildContext) -> dict[str, Any]:
        """Execute the full stage lifecycle.  **Do not override.**"""
        ctx.token.raise_if_cancelled(self.stage_id)
        ctx.out.write(f"\n{self.display_name} =======>\n")
        logger.info("%s [%s] starting", self.display_name, self.stage_id)
        started = time.monotonic()

        try:
            result = self.execute(ctx)
        except BundleForgeError as exc:
            logger.error(
                "%s [%s] failed: %s", self.display_name, self.stage_id, exc
            )
            raise
        except Exception as exc:
            logger.error(
                "%s [%s] failed: %s", self.display_name, self.stage_id, exc
            )
            raise StageExecutionError(
                f"Stage {self.stage_id} failed: {exc}", stage=self.stage_id
            ) from exc

        ctx.stage_results[self.stage_id] = result
        logger.info(
            "%s [%s] done in %.2fs",
            self.display_name,
            self.stage_id,
            time.monotonic() - started,
        )
        return result

    def __repr__(self) -> str:
        return f"<{type(self).__name__} stage_id={self.stage_id!r}>"
