"""Home directory layout: resolves mixins, dependency bundles and the runtime.

Layout::

    {home}/
        mixins/{name}/{name}      : mixin install directory and executable
        bundles/{name}/           : dependency bundle contents
        runtime/bundleforge-runtime
"""

from __future__ import annotations

from pathlib import Path

from bundleforge.errors import StagingError

RUNTIME_NAME = "bundleforge-runtime"


class HomeLayout:
    """Resolves install locations beneath the tool's home directory.

    Parameters
    ----------
    home:
        Root of the installation (``BUNDLEFORGE_HOME``).
    """

    def __init__(self, home: Path) -> None:
        self._home = Path(home)

    @property
    def home(self) -> Path:
        return self._home

    @property
    def mixins_dir(self) -> Path:
        return self._home / "mixins"

    @property
    def bundles_dir(self) -> Path:
        return self._home / "bundles"

    def mixin_dir(self, name: str) -> Path:
        """Return the install directory of mixin *name*.

        Raises ``StagingError`` if the mixin is not installed.
        """
        path = self.mixins_dir / name
        if not path.is_dir():
            raise StagingError(f"mixin {name!r} is not installed: {path} does not exist")
        return path

    def bundle_dir(self, name: str) -> Path:
        """Return the directory holding dependency bundle *name*."""
        path = self.bundles_dir / name
        if not path.is_dir():
            raise StagingError(
                f"dependency bundle {name!r} is not installed: {path} does not exist"
            )
        return path

    def runtime_path(self) -> Path:
        """Return the runtime executable copied into every invocation image."""
        path = self._home / "runtime" / RUNTIME_NAME
        if not path.is_file():
            raise StagingError(f"runtime executable not found: {path}")
        return path
