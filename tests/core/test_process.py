"""
Unit tests for external process execution.

These tests spawn the running Python interpreter as a stand-in for ghcup and
the server wrapper.
"""

import logging
import shutil
import subprocess
import sys
import threading
import time
from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from hlskit.core.exceptions import (
    ProcessCancelledError,
    ProcessExecutionError,
    ProcessSpawnError,
)
from hlskit.core.process import (
    CancellationToken,
    ProcessResult,
    ProcessRunner,
    build_environment,
)


def python_args(code):
    return ["-c", code]


class TestProcessResult:
    """Test ProcessResult."""

    def test_ok(self):
        assert ProcessResult("ghc --version", 0, "9.2.5", "").ok

    def test_check_raises_on_failure(self):
        """Test check() raises with the captured output."""
        result = ProcessResult("ghc --version", 2, "out", "boom")

        with pytest.raises(ProcessExecutionError) as exc_info:
            result.check()

        assert exc_info.value.returncode == 2
        assert exc_info.value.stderr == "boom"


class TestBuildEnvironment:
    """Test build_environment()."""

    def test_layers(self, monkeypatch):
        """Test overrides win over base, base over the process environment."""
        monkeypatch.setenv("HLSKIT_TEST_VAR", "inherited")
        monkeypatch.setenv("HLSKIT_OTHER_VAR", "kept")

        env = build_environment(
            {"HLSKIT_TEST_VAR": "base", "HLSKIT_BASE_ONLY": "1"},
            {"HLSKIT_TEST_VAR": "override"},
        )

        assert env["HLSKIT_TEST_VAR"] == "override"
        assert env["HLSKIT_BASE_ONLY"] == "1"
        assert env["HLSKIT_OTHER_VAR"] == "kept"


class TestProcessRunner:
    """Test ProcessRunner."""

    def test_execute_captures_output(self, tmp_path):
        """Test stdout, stderr and exit code are captured."""
        runner = ProcessRunner()

        result = runner.execute(
            sys.executable,
            python_args(
                "import sys; print('9.2.5'); print('warn', file=sys.stderr); sys.exit(3)"
            ),
            cwd=tmp_path,
        )

        assert result.returncode == 3
        assert result.stdout.strip() == "9.2.5"
        assert result.stderr.strip() == "warn"
        assert not result.ok

    def test_run_returns_trimmed_stdout(self):
        runner = ProcessRunner()
        assert runner.run(sys.executable, python_args("print('  1.8.0  ')")) == "1.8.0"

    def test_run_raises_on_non_zero_exit(self):
        runner = ProcessRunner()
        with pytest.raises(ProcessExecutionError):
            runner.run(sys.executable, python_args("import sys; sys.exit(1)"))

    def test_runs_in_cwd(self, tmp_path):
        """Test the working directory is honoured."""
        runner = ProcessRunner()
        output = runner.run(
            sys.executable, python_args("import os; print(os.getcwd())"), cwd=tmp_path
        )
        assert Path(output).resolve() == tmp_path.resolve()

    def test_environment_is_merged(self):
        """Test base environment and per-call overrides reach the child."""
        runner = ProcessRunner(base_environment={"HLSKIT_A": "base", "HLSKIT_B": "b"})

        output = runner.run(
            sys.executable,
            python_args(
                "import os; print(os.environ['HLSKIT_A'] + os.environ['HLSKIT_B'])"
            ),
            env={"HLSKIT_A": "call"},
        )

        assert output == "callb"

    def test_spawn_error(self, tmp_path):
        """Test a missing binary raises ProcessSpawnError."""
        runner = ProcessRunner()

        with pytest.raises(ProcessSpawnError) as exc_info:
            runner.execute(tmp_path / "does-not-exist")

        assert exc_info.value.returncode is None

    def test_progress_reported_for_titled_calls(self):
        """Test start and end progress is reported when a title is given."""
        events = []
        runner = ProcessRunner(progress_callback=lambda t, p: events.append((t, p)))

        runner.execute(sys.executable, python_args("pass"), title="Installing")
        runner.execute(sys.executable, python_args("pass"))

        assert events == [("Installing", None), ("Installing", 100.0)]

    def test_uses_injected_logger(self):
        """Test invocations are logged to the given logger."""
        log = Mock(spec=logging.Logger)
        runner = ProcessRunner(logger=log)

        runner.execute(sys.executable, python_args("pass"))

        messages = [call.args[0] for call in log.info.call_args_list]
        assert any("Executing" in message for message in messages)
        assert any("terminated with code 0" in message for message in messages)


class TestCancellation:
    """Test cooperative cancellation."""

    def test_token(self):
        token = CancellationToken()
        assert not token.is_cancelled
        token.cancel()
        assert token.is_cancelled

    @pytest.mark.slow
    def test_cancel_kills_running_process(self):
        """Test cancelling stops the child instead of waiting for it."""
        runner = ProcessRunner(poll_interval=0.05)
        token = CancellationToken()
        timer = threading.Timer(0.3, token.cancel)
        timer.start()

        started = time.monotonic()
        try:
            with pytest.raises(ProcessCancelledError):
                runner.execute(
                    sys.executable,
                    python_args("import time; time.sleep(30)"),
                    cancellation=token,
                )
        finally:
            timer.cancel()

        assert time.monotonic() - started < 10

    @pytest.mark.slow
    @pytest.mark.skipif(
        sys.platform == "win32" or shutil.which("sh") is None,
        reason="needs a POSIX shell",
    )
    def test_cancel_kills_grandchildren(self):
        """Test cancelling does not wait for processes the child spawned."""
        runner = ProcessRunner(poll_interval=0.05)
        token = CancellationToken()
        timer = threading.Timer(0.5, token.cancel)
        timer.start()

        started = time.monotonic()
        try:
            with pytest.raises(ProcessCancelledError):
                runner.run("sh", ["-c", "sleep 20; echo done"], cancellation=token)
        finally:
            timer.cancel()

        assert time.monotonic() - started < 5

    def test_drain_gives_up_when_pipes_stay_open(self):
        """Test a cancelled call settles even if the output never closes."""
        runner = ProcessRunner(poll_interval=0.05, kill_timeout=0.2)
        token = CancellationToken()
        token.cancel()
        proc = Mock(spec=subprocess.Popen)
        proc.returncode = None
        proc.pid = 4242
        proc.stdout = Mock()
        proc.stderr = Mock()
        proc.communicate.side_effect = subprocess.TimeoutExpired("sh", 0.2)

        with patch("hlskit.core.process._kill_tree") as kill_tree:
            with pytest.raises(ProcessCancelledError) as exc_info:
                runner._wait(proc, "sh -c 'sleep 20'", token)

        kill_tree.assert_called_once_with(proc)
        proc.stdout.close.assert_called_once()
        proc.stderr.close.assert_called_once()
        assert exc_info.value.stdout == ""

    def test_already_cancelled_token(self):
        """Test a pre-cancelled token aborts immediately."""
        runner = ProcessRunner()
        token = CancellationToken()
        token.cancel()

        with pytest.raises(ProcessCancelledError, match="User cancelled"):
            runner.execute(
                sys.executable, python_args("import time; time.sleep(30)"), cancellation=token
            )

    def test_uncancelled_token_completes(self):
        """Test a token that never fires does not affect the result."""
        runner = ProcessRunner(poll_interval=0.05)
        result = runner.execute(
            sys.executable,
            python_args("import time; time.sleep(0.2); print('done')"),
            cancellation=CancellationToken(),
        )
        assert result.stdout.strip() == "done"
