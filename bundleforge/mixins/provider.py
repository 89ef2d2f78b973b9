"""Mixin provider: resolves installed mixins by name."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from bundleforge.core.home import HomeLayout
from bundleforge.mixins.runner import MixinRunner

logger = logging.getLogger(__name__)


class MixinProvider:
    """Looks up installed mixins and builds runners for them.

    Parameters
    ----------
    layout:
        Home directory resolver.
    """

    def __init__(self, layout: HomeLayout) -> None:
        self._layout = layout

    def mixin_dir(self, name: str) -> Path:
        return self._layout.mixin_dir(name)

    def get_runner(self, name: str, **kwargs: Any) -> MixinRunner:
        """Return a ``MixinRunner`` for *name*; kwargs pass through."""
        mixin_dir = self.mixin_dir(name)
        logger.debug("Resolved mixin %s -> %s", name, mixin_dir)
        return MixinRunner(name, mixin_dir, **kwargs)
