"""Shared test fixtures for BundleForge."""

from __future__ import annotations

import io
import shlex
import tarfile
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from bundleforge.config import ProdConfig
from bundleforge.core.context import BuildContext
from bundleforge.core.home import RUNTIME_NAME, HomeLayout
from bundleforge.models.manifest import Manifest, parse_manifest

MANIFEST_YAML = """\
name: hello
description: An example bundle
version: 0.1.0
image: registry.example.com/hello:v1
mixins:
  - exec
dependencies:
  - mysql
parameters:
  - name: greeting
    type: string
    description: What to say
  - name: port
    type: integer
    default: 8080
    minimum: 1
    maximum: 65535
  - name: config
    type: string
    default: ""
    destination:
      path: /etc/hello/config
credentials:
  - name: kubeconfig
    path: /root/.kube/config
  - name: token
    env: API_TOKEN
"""

TEST_DIGEST = "sha256:" + "ab" * 32


# ---------------------------------------------------------------------------
# Home directory: mixins, dependency bundles, runtime
# ---------------------------------------------------------------------------


def write_mixin(
    home: Path,
    name: str,
    lines: list[str],
    *,
    stderr: str = "",
    exit_code: int = 0,
    body: str = "",
) -> Path:
    """Install a fake mixin: a shell script answering the ``build`` command."""
    mixin_dir = home / "mixins" / name
    mixin_dir.mkdir(parents=True, exist_ok=True)
    script = [
        "#!/bin/sh",
        'if [ "$1" != "build" ]; then echo "unknown command: $1" >&2; exit 2; fi',
    ]
    if body:
        script.append(body)
    script.extend(f"printf '%s\\n' {shlex.quote(line)}" for line in lines)
    if stderr:
        script.append(f"printf '%s\\n' {shlex.quote(stderr)} >&2")
    script.append(f"exit {exit_code}")
    exe = mixin_dir / name
    exe.write_text("\n".join(script) + "\n", encoding="utf-8")
    exe.chmod(0o755)
    (mixin_dir / "schema.json").write_text('{"mixin": "%s"}' % name, encoding="utf-8")
    return mixin_dir


@pytest.fixture
def home(tmp_path: Path) -> Path:
    """A home directory with the exec mixin, one dependency and the runtime."""
    root = tmp_path / "home"
    write_mixin(root, "exec", ["RUN apt-get update && apt-get install -y curl"])

    dep = root / "bundles" / "mysql"
    (dep / "cnab").mkdir(parents=True)
    (dep / "bundle.json").write_text('{"name": "mysql"}', encoding="utf-8")
    (dep / "cnab" / "run").write_text("#!/bin/sh\n", encoding="utf-8")

    runtime = root / "runtime" / RUNTIME_NAME
    runtime.parent.mkdir(parents=True)
    runtime.write_text("#!/bin/sh\necho runtime\n", encoding="utf-8")
    runtime.chmod(0o755)
    return root


@pytest.fixture
def mixin_factory(home: Path) -> Callable[..., Path]:
    """Factory fixture: install another fake mixin into the test home."""

    def _factory(name: str, lines: list[str], **kwargs: Any) -> Path:
        return write_mixin(home, name, lines, **kwargs)

    return _factory


@pytest.fixture
def layout(home: Path) -> HomeLayout:
    return HomeLayout(home)


@pytest.fixture
def config(home: Path) -> ProdConfig:
    """Config pointing at the test home with a fixed tool identity."""
    return ProdConfig(
        home=home,
        build_version="v1.2.3",
        build_commit="abc123",
        mixin_timeout_seconds=10,
    )


# ---------------------------------------------------------------------------
# Build directory and context
# ---------------------------------------------------------------------------


@pytest.fixture
def workdir(tmp_path: Path) -> Path:
    """A build directory holding ``bundleforge.yaml``."""
    path = tmp_path / "build"
    path.mkdir()
    (path / "bundleforge.yaml").write_text(MANIFEST_YAML, encoding="utf-8")
    return path


@pytest.fixture
def manifest(workdir: Path) -> Manifest:
    return parse_manifest((workdir / "bundleforge.yaml").read_bytes())


@pytest.fixture
def make_context(
    workdir: Path, config: ProdConfig, layout: HomeLayout, manifest: Manifest
) -> Callable[..., BuildContext]:
    """Factory fixture: a BuildContext with in-memory streams."""

    def _factory(**overrides: Any) -> BuildContext:
        defaults: dict[str, Any] = {
            "manifest": manifest,
            "workdir": workdir,
            "config": config,
            "layout": layout,
            "out": io.StringIO(),
            "err": io.StringIO(),
        }
        defaults.update(overrides)
        return BuildContext(**defaults)

    return _factory


# ---------------------------------------------------------------------------
# Fake container engine
# ---------------------------------------------------------------------------


class FakeEngine:
    """In-memory stand-in for ``docker.APIClient``.

    Records every call.  Frames returned by ``build``/``push`` and the
    distribution descriptor are configurable per test.  ``hang_on`` names
    a call that blocks, like a silent build step, until ``close()``.
    """

    def __init__(
        self,
        *,
        build_frames: list[dict[str, Any]] | None = None,
        push_frames: list[dict[str, Any]] | None = None,
        digest: str = TEST_DIGEST,
        inspect_error: Exception | None = None,
        hang_on: str | None = None,
    ) -> None:
        self.build_frames = build_frames if build_frames is not None else [
            {"stream": "Step 1/4 : FROM debian:stretch-slim\n"},
            {"stream": "Successfully built 0123456789ab\n"},
            {"aux": {"ID": "sha256:0123456789ab"}},
        ]
        self.push_frames = push_frames if push_frames is not None else [
            {"status": "The push refers to repository [registry.example.com/hello]"},
            {"status": "Pushed", "id": "5f70bf18a086"},
            {"status": "v1: digest: " + digest + " size: 1234"},
        ]
        self.digest = digest
        self.inspect_error = inspect_error
        self.hang_on = hang_on
        self.closed = False
        self._released = threading.Event()
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.context_names: list[str] = []

    def build(self, **kwargs: Any):
        fileobj = kwargs["fileobj"]
        with tarfile.open(fileobj=fileobj, mode="r") as archive:
            self.context_names = archive.getnames()
        self.calls.append(("build", kwargs))
        return self._stream("build", self.build_frames)

    def push(self, repository: str, tag: str | None = None, **kwargs: Any):
        self.calls.append(("push", {"repository": repository, "tag": tag, **kwargs}))
        return self._stream("push", self.push_frames)

    def inspect_distribution(self, image: str, auth_config: dict | None = None):
        self.calls.append(("inspect_distribution", {"image": image}))
        if self.hang_on == "inspect_distribution":
            self._hang("inspect_distribution")
        if self.inspect_error is not None:
            raise self.inspect_error
        return {"Descriptor": {"digest": self.digest, "size": 1234}, "Platforms": []}

    def close(self) -> None:
        self.closed = True
        self._released.set()

    def _stream(self, call: str, frames: list[dict[str, Any]]):
        if self.hang_on != call:
            return iter(frames)
        return self._hanging_stream(call, frames)

    def _hanging_stream(self, call: str, frames: list[dict[str, Any]]):
        # First frame arrives, then the daemon goes quiet.
        yield from frames[:1]
        self._hang(call)
        yield from frames[1:]

    def _hang(self, call: str) -> None:
        self._released.wait(30)
        raise ConnectionError(f"{call}: connection closed")


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def make_engine() -> Callable[..., FakeEngine]:
    """Factory fixture: a FakeEngine with custom frames or errors."""

    def _factory(**kwargs: Any) -> FakeEngine:
        return FakeEngine(**kwargs)

    return _factory
