"""Tool configuration: env-driven via pydantic-settings.

Reads from a ``.env`` file and ``BUNDLEFORGE_*`` environment variables.
The build version and commit live here and are handed to the stamp
generator explicitly, so nothing in the pipeline reads process globals.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from bundleforge import __version__
from bundleforge.core.home import HomeLayout


class ProdConfig(BaseSettings):
    """BundleForge configuration with environment variable overrides.

    Examples
    --------
    Override via environment::

        export BUNDLEFORGE_HOME=/opt/bundleforge
        export BUNDLEFORGE_LOG_LEVEL=DEBUG
        export BUNDLEFORGE_BUILD_COMMIT=3f2a9c1

    Or via .env file::

        BUNDLEFORGE_MIXIN_TIMEOUT_SECONDS=120
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="BUNDLEFORGE_",
        env_file_encoding="utf-8",
    )

    # Installed mixins, dependency bundles and the runtime binary
    home: Path = Field(default_factory=lambda: Path.home() / ".bundleforge")

    log_level: str = "INFO"
    debug: bool = False

    # Identity of this build tool, folded into every manifest digest
    build_version: str = __version__
    build_commit: str = ""

    # Build directory file names
    manifest_name: str = "bundleforge.yaml"
    dockerfile_name: str = "Dockerfile"
    bundle_file: str = "bundle.json"

    # Blocking call limits; 0 disables the limit
    mixin_timeout_seconds: float = 300
    engine_timeout_seconds: float = 0

    def home_layout(self) -> HomeLayout:
        """Directory resolver rooted at ``home``."""
        return HomeLayout(self.home)
