"""Invocation image build, push and digest resolution.

Talks to the Docker engine through the ``docker`` SDK's low-level
``APIClient``.  The sequence is strictly ordered:

    archive build dir -> build (stream) -> push (stream) -> inspect digest

Every engine stream is drained to the end.  An ``error`` frame inside an
otherwise successful HTTP response is a failure, never swallowed.  Registry
credentials are resolved by the SDK from the ambient docker config.

Engine calls block on the daemon for as long as a build step runs, so each
one runs on a worker thread.  Cancelling the build closes the client and
returns at once instead of waiting for the next frame.
"""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable, Iterable, Iterator
from pathlib import Path
from typing import Any, Protocol, TextIO

import docker
from docker.errors import DockerException
from docker.utils import tar

from bundleforge.core.cancellation import CancellationToken
from bundleforge.core.context import LOCK_NAME, BuildContext
from bundleforge.core.reference import parse_reference, split_repository_tag
from bundleforge.errors import (
    BuildCancelledError,
    BundleForgeError,
    DigestResolutionError,
    ImageAuthError,
    ImageBuildError,
    ImagePushError,
)
from bundleforge.stages.base import BaseStage

logger = logging.getLogger(__name__)

# Push error frames with this prefix mean the registry refused our credentials.
DENIED_PREFIX = "denied"

# How often a blocked engine call is checked for cancellation.
_POLL_INTERVAL_SECONDS = 0.2

_END = object()


class EngineClient(Protocol):
    """The subset of ``docker.APIClient`` the image stage uses."""

    def build(self, **kwargs: Any) -> Iterable[dict[str, Any]]: ...

    def push(self, repository: str, tag: str | None = None, **kwargs: Any) -> Iterable[dict[str, Any]]: ...

    def inspect_distribution(self, image: str, auth_config: dict | None = None) -> dict[str, Any]: ...


def docker_engine_client(timeout: float | None = None) -> EngineClient:
    """Low-level Docker client configured from the environment."""
    if timeout:
        return docker.from_env(timeout=int(timeout)).api
    return docker.from_env().api


def read_dockerignore(workdir: Path) -> list[str]:
    """Exclusion patterns from ``.dockerignore``, as the engine would apply them."""
    path = workdir / ".dockerignore"
    if not path.is_file():
        return []
    patterns = []
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            patterns.append(line)
    return patterns


def abort_engine_call(client: EngineClient) -> None:
    """Close *client*'s connections so a call still in flight gives up."""
    close = getattr(client, "close", None)
    if close is None:
        return
    try:
        close()
    except (DockerException, OSError) as exc:
        logger.debug("Closing engine client after cancel failed: %s", exc)


def cancellable_frames(
    open_stream: Callable[[], Iterable[Any]],
    token: CancellationToken,
    *,
    during: str,
    on_cancel: Callable[[], None],
) -> Iterator[Any]:
    """Yield what ``open_stream()`` yields, giving up as soon as *token* trips.

    The engine call runs on a daemon thread feeding a queue; this side
    polls the queue and the token.  On cancel, *on_cancel* runs and
    ``BuildCancelledError`` is raised without waiting for the engine to
    answer.  Exceptions from the call are re-raised here.
    """
    frames: queue.Queue = queue.Queue()

    def _pump() -> None:
        try:
            for frame in open_stream():
                frames.put((frame, None))
        except Exception as exc:
            frames.put((_END, exc))
        else:
            frames.put((_END, None))

    threading.Thread(target=_pump, name=f"engine-{during}", daemon=True).start()
    while True:
        try:
            frame, error = frames.get(timeout=_POLL_INTERVAL_SECONDS)
        except queue.Empty:
            if token.cancelled:
                logger.info("Aborting engine call during %s", during)
                on_cancel()
                token.raise_if_cancelled(during)
            continue
        if frame is _END:
            if error is not None:
                raise error
            return
        yield frame


def call_cancellable(
    call: Callable[[], Any],
    token: CancellationToken,
    *,
    during: str,
    on_cancel: Callable[[], None],
) -> Any:
    """Run one blocking engine *call*, giving up when *token* trips."""
    results = list(
        cancellable_frames(lambda: [call()], token, during=during, on_cancel=on_cancel)
    )
    return results[0]


def display_stream(
    frames: Iterable[dict[str, Any]],
    out: TextIO,
    token: CancellationToken,
    *,
    during: str,
    error_cls: type[BundleForgeError],
) -> dict[str, Any]:
    """Write engine progress frames to *out* until the stream ends.

    Raises *error_cls* on the first error frame and ``BuildCancelledError``
    if *token* trips mid-stream (the stream is closed first).  Returns the
    last ``aux`` payload seen, if any.
    """
    aux: dict[str, Any] = {}
    iterator: Iterator[dict[str, Any]] = iter(frames)
    try:
        for frame in iterator:
            if token.cancelled:
                raise BuildCancelledError(f"{during} cancelled", stage=during)

            if "errorDetail" in frame or "error" in frame:
                detail = frame.get("errorDetail") or {}
                message = detail.get("message") or frame.get("error") or "unknown error"
                raise error_cls(message.strip())

            if "stream" in frame:
                out.write(frame["stream"])
            elif "status" in frame:
                prefix = f"{frame['id']}: " if frame.get("id") else ""
                progress = f" {frame['progress']}" if frame.get("progress") else ""
                out.write(f"{prefix}{frame['status']}{progress}\n")
            if "aux" in frame and isinstance(frame["aux"], dict):
                aux = frame["aux"]
    finally:
        close = getattr(iterator, "close", None)
        if close is not None:
            close()
    return aux


class ImageStage(BaseStage):
    """Builds and pushes the invocation image, then resolves its digest.

    Parameters
    ----------
    client_factory:
        Returns the engine client.  Defaults to ``docker_engine_client``;
        tests pass a fake.
    """

    def __init__(
        self,
        client_factory: Callable[[], EngineClient] | None = None,
    ) -> None:
        self._client_factory = client_factory

    @property
    def stage_id(self) -> str:
        return "image"

    @property
    def display_name(self) -> str:
        return "Starting Invocation Image Build"

    def execute(self, ctx: BuildContext) -> dict[str, Any]:
        image = ctx.manifest.image
        parse_reference(image)
        client = self._client(ctx)

        try:
            image_id = self.build_image(client, ctx, image)
            ctx.token.raise_if_cancelled("image-push")
            self.push_image(client, ctx, image)
            ctx.token.raise_if_cancelled("image-inspect")
            digest = self.resolve_digest(client, ctx, image)
        except BuildCancelledError:
            abort_engine_call(client)
            raise

        logger.info("Pushed %s with digest %s", image, digest)
        return {"image": image, "image_id": image_id, "digest": digest}

    # ------------------------------------------------------------------
    # Engine operations
    # ------------------------------------------------------------------

    def build_image(self, client: EngineClient, ctx: BuildContext, image: str) -> str:
        """Archive the build directory and build *image* from it."""
        dockerfile = ctx.config.dockerfile_name
        try:
            context = tar(
                str(ctx.workdir),
                exclude=[*read_dockerignore(ctx.workdir), LOCK_NAME],
                dockerfile=(dockerfile, None),
            )
        except OSError as exc:
            raise ImageBuildError(f"could not archive build context: {exc}") from exc

        try:
            try:
                frames = cancellable_frames(
                    lambda: client.build(
                        fileobj=context,
                        custom_context=True,
                        tag=image,
                        dockerfile=dockerfile,
                        decode=True,
                        rm=True,
                        pull=False,
                    ),
                    ctx.token,
                    during="image-build",
                    on_cancel=lambda: abort_engine_call(client),
                )
                aux = display_stream(
                    frames, ctx.out, ctx.token,
                    during="image-build", error_cls=ImageBuildError,
                )
            except DockerException as exc:
                raise ImageBuildError(f"docker build failed: {exc}") from exc
        finally:
            context.close()
        return str(aux.get("ID", ""))

    def push_image(self, client: EngineClient, ctx: BuildContext, image: str) -> None:
        """Push *image* to its registry; a denial raises ``ImageAuthError``."""
        ctx.out.write(f"\nPushing {image} =======>\n")
        repository, tag = split_repository_tag(image)
        try:
            frames = cancellable_frames(
                lambda: client.push(repository, tag=tag, stream=True, decode=True),
                ctx.token,
                during="image-push",
                on_cancel=lambda: abort_engine_call(client),
            )
            display_stream(
                frames, ctx.out, ctx.token,
                during="image-push", error_cls=ImagePushError,
            )
        except ImageAuthError:
            raise
        except ImagePushError as exc:
            if exc.message.startswith(DENIED_PREFIX):
                raise ImageAuthError(
                    f"docker push authentication failed: {exc.message}"
                ) from exc
            raise ImagePushError(f"failed to stream docker push output: {exc.message}") from exc
        except DockerException as exc:
            raise ImagePushError(f"docker push failed: {exc}") from exc

    def resolve_digest(self, client: EngineClient, ctx: BuildContext, image: str) -> str:
        """Ask the registry for the content digest of the pushed *image*."""
        try:
            dist = call_cancellable(
                lambda: client.inspect_distribution(image),
                ctx.token,
                during="image-inspect",
                on_cancel=lambda: abort_engine_call(client),
            )
        except DockerException as exc:
            raise DigestResolutionError(f"unable to inspect docker image: {exc}") from exc

        digest = (dist.get("Descriptor") or {}).get("digest", "")
        if not digest:
            raise DigestResolutionError(f"registry returned no digest for {image}")
        return digest

    def _client(self, ctx: BuildContext) -> EngineClient:
        try:
            if self._client_factory is not None:
                return self._client_factory()
            return docker_engine_client(ctx.config.engine_timeout_seconds)
        except DockerException as exc:
            raise ImageBuildError(f"could not create docker client: {exc}") from exc
