import subprocess
import sys

import pytest

from graphqltiers.errors import CommandTimeoutError, ExternalToolError
from graphqltiers.services.command_runner import CommandRunner


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None


def test_command_runner_raises_with_stderr():
    runner = CommandRunner(logger=DummyLogger())

    with pytest.raises(ExternalToolError, match="boom"):
        runner.run(
            [sys.executable, "-c", "import sys; sys.stderr.write('boom'); sys.exit(1)"],
            check=True,
            capture_output=True,
        )


def test_command_runner_returns_when_check_disabled():
    runner = CommandRunner(logger=DummyLogger())

    result = runner.run(
        [sys.executable, "-c", "import sys; sys.exit(3)"],
        check=False,
        capture_output=True,
    )

    assert result.returncode == 3


def test_command_runner_timeout_raises_error():
    runner = CommandRunner(logger=DummyLogger())

    with pytest.raises(CommandTimeoutError, match="timed out"):
        runner.run(
            [sys.executable, "-c", "import time; time.sleep(2)"],
            check=True,
            capture_output=True,
            timeout=0.1,
        )


def test_command_runner_uses_default_timeout():
    runner = CommandRunner(logger=DummyLogger(), default_timeout=0.1)

    with pytest.raises(CommandTimeoutError):
        runner.run([sys.executable, "-c", "import time; time.sleep(2)"], capture_output=True)


def test_command_runner_reports_missing_command():
    runner = CommandRunner(logger=DummyLogger())

    with pytest.raises(ExternalToolError, match="Required command not found"):
        runner.run(["graphqltiers-command-that-does-not-exist"], check=True)


def test_command_runner_passes_stdin():
    runner = CommandRunner(logger=DummyLogger())

    result = runner.run(
        [sys.executable, "-c", "import sys; print(repr(sys.stdin.read()))"],
        check=True,
        capture_output=True,
        stdin=subprocess.DEVNULL,
    )

    assert result.stdout.strip() == "''"
