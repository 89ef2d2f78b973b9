"""Out-of-process mixin invocation.

A mixin is an executable installed at ``{mixins_dir}/{name}/{name}``.  The
pipeline runs it as::

    {name} {command...}      (stdin <- input payload)

Its stdout is build-script text, captured as bytes, decoded as strict UTF-8
and split on line feeds only; carriage returns pass through untouched.
Its stderr is diagnostics, forwarded to the caller's diagnostic stream and
never mixed into the script.  Each call gets its own ``MixinStreams`` value;
no shared I/O state is rewired.

The protocol never retries: mixin output is not idempotent in general.
"""

from __future__ import annotations

import io
import logging
import os
import shlex
import signal
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import TextIO

from bundleforge.core.cancellation import CancellationToken
from bundleforge.errors import BuildCancelledError, MixinExecutionError

logger = logging.getLogger(__name__)

BUILD_COMMAND = "build"

# How often a running mixin is checked for cancellation.
_POLL_INTERVAL_SECONDS = 0.2


@dataclass(frozen=True)
class MixinStreams:
    """Where one mixin call's streams go.

    ``primary`` receives stdout (script text), ``diagnostics`` receives
    stderr, ``progress`` receives the pipeline's own status lines.
    """

    primary: TextIO = field(default_factory=io.StringIO)
    diagnostics: TextIO = field(default_factory=io.StringIO)
    progress: TextIO = field(default_factory=io.StringIO)


def split_script_lines(text: str) -> list[str]:
    """Split mixin stdout on newlines; a terminating newline adds no line."""
    if not text:
        return []
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return lines


class MixinRunner:
    """Runs one mixin executable with a command and input payload.

    Parameters
    ----------
    name:
        Mixin name; also the executable's file name.
    mixin_dir:
        Install directory containing the executable.
    command:
        Command string passed as arguments, e.g. ``"build"``.
    input:
        Payload written to the mixin's stdin.  May be empty.
    streams:
        Per-call stream destinations.
    cwd:
        Working directory of the subprocess (the build directory).
    timeout:
        Seconds before the mixin is killed.  ``None`` or ``0`` disables it.
    token:
        Pipeline cancellation token.

    Examples
    --------
    >>> runner = MixinRunner("exec", Path("/opt/mixins/exec"))
    >>> runner.executable
    PosixPath('/opt/mixins/exec/exec')
    """

    def __init__(
        self,
        name: str,
        mixin_dir: Path,
        *,
        command: str = BUILD_COMMAND,
        input: str = "",
        streams: MixinStreams | None = None,
        cwd: Path | None = None,
        timeout: float | None = None,
        token: CancellationToken | None = None,
    ) -> None:
        self.name = name
        self.mixin_dir = Path(mixin_dir)
        self.command = command
        self.input = input
        self.streams = streams or MixinStreams()
        self.cwd = cwd
        self.timeout = timeout or None
        self.token = token or CancellationToken.none()

    @property
    def executable(self) -> Path:
        return self.mixin_dir / self.name

    # -- Public API ---------------------------------------------------------

    def validate(self) -> None:
        """Check the mixin is runnable.  Must pass before ``run()``."""
        if not self.mixin_dir.is_dir():
            raise MixinExecutionError(
                self.name, f"install directory does not exist: {self.mixin_dir}"
            )
        if not self.executable.is_file():
            raise MixinExecutionError(
                self.name, f"executable not found: {self.executable}"
            )
        if not os.access(self.executable, os.X_OK):
            raise MixinExecutionError(
                self.name, f"executable is not executable: {self.executable}"
            )

    def run(self) -> list[str]:
        """Run the mixin and return its stdout as build-script lines.

        Raises ``MixinExecutionError`` if the process cannot start or exits
        non-zero, and ``BuildCancelledError`` if the token trips or the
        timeout passes while it runs.
        """
        self.token.raise_if_cancelled(f"mixin {self.name}")
        args = [str(self.executable), *shlex.split(self.command)]
        logger.debug("Running mixin %s: %s", self.name, args)
        self.streams.progress.write(f"Running mixin {self.name} {self.command} ===>\n")

        try:
            proc = subprocess.Popen(
                args,
                cwd=self.cwd,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as exc:
            raise MixinExecutionError(self.name, f"could not start: {exc}") from exc

        raw_stdout, raw_stderr = self._communicate(proc)
        stderr = raw_stderr.decode("utf-8", errors="replace")
        if stderr:
            self.streams.diagnostics.write(stderr)

        if proc.returncode != 0:
            raise MixinExecutionError(
                self.name,
                f"{self.command} exited with status {proc.returncode}: {stderr.strip()}",
                exit_code=proc.returncode,
                stderr=stderr,
            )

        try:
            stdout = raw_stdout.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MixinExecutionError(
                self.name, f"{self.command} output is not valid UTF-8: {exc}", stderr=stderr
            ) from exc
        self.streams.primary.write(stdout)
        return split_script_lines(stdout)

    # -- Internal helpers ---------------------------------------------------

    def _communicate(self, proc: subprocess.Popen) -> tuple[bytes, bytes]:
        """Wait for *proc*, killing it on cancellation or timeout."""
        limit = CancellationToken(self.timeout) if self.timeout else None
        payload: bytes | None = self.input.encode("utf-8")
        while True:
            try:
                return proc.communicate(payload, timeout=_POLL_INTERVAL_SECONDS)
            except subprocess.TimeoutExpired:
                # stdin is only written on the first call
                payload = None
                if self.token.cancelled or (limit is not None and limit.expired):
                    _kill_group(proc)
                    proc.communicate()
                    reason = "timed out" if not self.token.cancelled else "cancelled"
                    raise BuildCancelledError(
                        f"mixin {self.name} {reason}", stage="dockerfile"
                    ) from None


def _kill_group(proc: subprocess.Popen) -> None:
    """Kill *proc* and anything it spawned; children may hold its pipes open."""
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass  # already exited
