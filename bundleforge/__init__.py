"""BundleForge: build digest-pinned invocation images and stamped bundles.

Turns a ``bundleforge.yaml`` manifest plus its mixins into:
  - a generated Dockerfile (base + mixin fragments + fixed trailers)
  - an invocation image, built, pushed and pinned by content digest
  - a ``bundle.json`` descriptor carrying a provenance stamp
"""

__version__ = "0.1.0"
__description__ = "Build digest-pinned invocation images and provenance-stamped bundles"

from bundleforge.core.cancellation import CancellationToken
from bundleforge.core.pipeline import BuildPipeline
from bundleforge.cli.app import app as cli

__all__ = ["BuildPipeline", "CancellationToken", "cli", "__version__"]
