"""
External process execution for hlskit.

Every tool invocation (ghcup, the server wrapper, ghc) goes through
:class:`ProcessRunner`. It merges the inherited environment with the user's
server environment and per-call overrides, logs the command line, working
directory and exit status, and supports cooperative cancellation: a cancelled
invocation kills the child together with everything it spawned (children run
in their own process group) and raises :class:`ProcessCancelledError` instead
of waiting for it.

The runner does not interpret failures. Callers that need to turn stderr into a
structured error run :meth:`ProcessRunner.execute` and pass the result to
:func:`hlskit.toolchain.diagnostics.classify_failure`.

Usage:
    from hlskit.core.process import ProcessRunner, CancellationToken

    runner = ProcessRunner()
    version = runner.run("ghc", ["--numeric-version"])

    token = CancellationToken()
    runner.run("ghcup", ["install", "ghc", "9.4.8"], cancellation=token)
    # from another thread: token.cancel()
"""

import logging
import os
import signal
import subprocess
import sys
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Union

from hlskit.core.exceptions import (
    ProcessCancelledError,
    ProcessExecutionError,
    ProcessSpawnError,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, Optional[float]], None]

if sys.platform == "win32":
    _SPAWN_OPTIONS = {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
else:
    _SPAWN_OPTIONS = {"start_new_session": True}


@dataclass(frozen=True)
class ProcessResult:
    """Outcome of a finished process."""

    command: str
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        """Whether the process exited with status zero."""
        return self.returncode == 0

    def check(self) -> "ProcessResult":
        """
        Raise if the process failed.

        Returns:
            self, for chaining

        Raises:
            ProcessExecutionError: If the exit status is non-zero
        """
        if not self.ok:
            raise ProcessExecutionError(
                self.command, self.returncode, self.stdout, self.stderr
            )
        return self


class CancellationToken:
    """Cooperative cancellation flag shared between a caller and the runner."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request cancellation of the invocation holding this token."""
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()


def build_environment(
    base: Optional[Mapping[str, str]] = None,
    overrides: Optional[Mapping[str, str]] = None,
) -> Dict[str, str]:
    """
    Build the environment for a child process.

    Args:
        base: User-configured environment block (e.g. a PATH override)
        overrides: Per-call variables; these win over ``base``

    Returns:
        Inherited environment updated with ``base`` then ``overrides``
    """
    env = dict(os.environ)
    if base:
        env.update(base)
    if overrides:
        env.update(overrides)
    return env


class ProcessRunner:
    """
    Run external programs with logging, progress and cancellation.

    Args:
        base_environment: Variables applied on top of ``os.environ`` for every call
        logger: Logger receiving the invocation log; defaults to this module's logger
        progress_callback: Optional sink called as ``callback(title, percentage)``
        poll_interval: Seconds between cancellation checks
        kill_timeout: Seconds to drain output after killing a cancelled process
    """

    def __init__(
        self,
        base_environment: Optional[Mapping[str, str]] = None,
        logger: Optional[logging.Logger] = None,
        progress_callback: Optional[ProgressCallback] = None,
        poll_interval: float = 0.1,
        kill_timeout: float = 5.0,
    ):
        self.base_environment = dict(base_environment or {})
        self.logger = logger if logger is not None else logging.getLogger(__name__)
        self.progress_callback = progress_callback
        self.poll_interval = poll_interval
        self.kill_timeout = kill_timeout

    def execute(
        self,
        binary: Union[str, Path],
        args: Sequence[str] = (),
        cwd: Optional[Union[str, Path]] = None,
        env: Optional[Mapping[str, str]] = None,
        title: Optional[str] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> ProcessResult:
        """
        Run a program to completion and capture its output.

        Args:
            binary: Executable to run
            args: Command-line arguments
            cwd: Working directory (defaults to the current one)
            env: Per-call environment overrides
            title: Progress title; nothing is reported without one
            cancellation: Token that makes the invocation cancellable

        Returns:
            ProcessResult, whatever the exit status

        Raises:
            ProcessSpawnError: If the executable cannot be started
            ProcessCancelledError: If cancellation was requested while running
        """
        argv: List[str] = [str(binary), *args]
        command = " ".join(argv)
        working_dir = str(cwd) if cwd is not None else os.getcwd()
        environment = build_environment(self.base_environment, env)

        self.logger.info(f"Executing '{command}' in cwd '{working_dir}'")
        self.logger.debug(
            f"Environment overrides: {dict(self.base_environment, **(env or {}))}"
        )
        if title:
            self._report(title, None)

        try:
            proc = subprocess.Popen(
                argv,
                cwd=working_dir,
                env=environment,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                **_SPAWN_OPTIONS,
            )
        except OSError as e:
            self.logger.error(f"Error executing '{command}': {e}")
            raise ProcessSpawnError(command, str(e)) from e

        stdout, stderr = self._wait(proc, command, cancellation)

        self.logger.info(
            f"Execution of '{command}' terminated with code {proc.returncode}"
        )
        if proc.returncode != 0:
            self.logger.error(
                f"'{command}' failed:\nstdout: {stdout}\nstderr: {stderr}"
            )
        else:
            self.logger.debug(f"stdout: {stdout}")
        if title:
            self._report(title, 100.0)

        return ProcessResult(command, proc.returncode, stdout, stderr)

    def run(
        self,
        binary: Union[str, Path],
        args: Sequence[str] = (),
        cwd: Optional[Union[str, Path]] = None,
        env: Optional[Mapping[str, str]] = None,
        title: Optional[str] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> str:
        """
        Run a program and return its trimmed standard output.

        Raises:
            ProcessExecutionError: If the program exits non-zero
            ProcessSpawnError: If the executable cannot be started
            ProcessCancelledError: If cancellation was requested while running
        """
        result = self.execute(binary, args, cwd, env, title, cancellation)
        return result.check().stdout.strip()

    def _wait(
        self,
        proc: subprocess.Popen,
        command: str,
        cancellation: Optional[CancellationToken],
    ):
        """Wait for ``proc``, killing it if ``cancellation`` fires first."""
        try:
            if cancellation is None:
                return proc.communicate()

            while True:
                if cancellation.is_cancelled:
                    self.logger.warning(f"User cancelled the execution of '{command}'")
                    _kill_tree(proc)
                    stdout, stderr = self._drain(proc, command)
                    raise ProcessCancelledError(
                        command, proc.returncode, stdout, stderr
                    )
                try:
                    return proc.communicate(timeout=self.poll_interval)
                except subprocess.TimeoutExpired:
                    continue
        except KeyboardInterrupt:
            # The child runs in its own group and does not see the interrupt
            _kill_tree(proc)
            raise

    def _drain(self, proc: subprocess.Popen, command: str):
        """Collect what a killed process wrote, giving up after ``kill_timeout``."""
        try:
            stdout, stderr = proc.communicate(timeout=self.kill_timeout)
        except subprocess.TimeoutExpired:
            # Something outside the process group still holds the pipes
            self.logger.warning(
                f"Output of '{command}' still open {self.kill_timeout}s after kill"
            )
            for stream in (proc.stdout, proc.stderr):
                if stream is not None:
                    stream.close()
            proc.poll()
            return "", ""
        return stdout or "", stderr or ""

    def _report(self, title: str, percentage: Optional[float]) -> None:
        if self.progress_callback is not None:
            self.progress_callback(title, percentage)


def _kill_tree(proc: subprocess.Popen) -> None:
    """Kill ``proc`` and every process it started."""
    if sys.platform == "win32":
        subprocess.run(
            ["taskkill", "/T", "/F", "/PID", str(proc.pid)],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
        proc.kill()
        return
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        proc.kill()


__all__ = [
    "ProcessResult",
    "ProcessRunner",
    "CancellationToken",
    "ProgressCallback",
    "build_environment",
]
