"""BundleForge mixins: out-of-process build tools that contribute
Dockerfile fragments and files to the invocation image.
"""

from bundleforge.mixins.provider import MixinProvider
from bundleforge.mixins.runner import BUILD_COMMAND, MixinRunner, MixinStreams

__all__ = ["MixinProvider", "MixinRunner", "MixinStreams", "BUILD_COMMAND"]
