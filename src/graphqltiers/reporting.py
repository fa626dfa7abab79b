"""Exhaustive command testing and result tallying."""

import subprocess
import sys
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

from graphqltiers.constants import DEFAULT_TEST_TIMEOUT, EXIT_TIMEOUT
from graphqltiers.errors import CommandTimeoutError, ExternalToolError

TIERS = ("admin", "operator", "member")
ENVIRONMENTS = ("development", "production")


@dataclass
class ResultTally:
    passed: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.passed + self.failed

    @property
    def success_rate(self) -> int:
        if self.total == 0:
            return 0
        return self.passed * 100 // self.total

    def record_pass(self):
        self.passed += 1

    def record_failure(self, description: str, exit_code: int):
        self.failed += 1
        self.errors.append(f"{description} (exit: {exit_code})")


@dataclass(frozen=True)
class PlannedCommand:
    command: str
    args: Tuple[str, ...] = ()

    @property
    def description(self) -> str:
        return " ".join((self.command,) + self.args)


def default_plan() -> List[Tuple[str, List[PlannedCommand]]]:
    """Sections of the exhaustive run, in execution order."""
    every = [(tier, env) for tier in TIERS for env in ENVIRONMENTS]
    development = [(tier, "development") for tier in TIERS]

    def over(command, targets):
        return [PlannedCommand(command, target) for target in targets]

    return [
        ("compare-environments", over("compare-environments", [(tier,) for tier in TIERS])),
        ("status-all", [PlannedCommand("status-all")]),
        ("docker-status", over("docker-status", every)),
        ("test-health", over("test-health", every)),
        ("fast-refresh", over("fast-refresh", every)),
        ("verify-tables", over("verify-tables", every)),
        ("verify-setup", over("verify-setup", every)),
        ("track-tables", over("track-tables", development)),
        ("track-relationships", over("track-relationships", development)),
        ("restart", over("restart", development)),
        ("docker-start", over("docker-start", development)),
        ("docker-stop", over("docker-stop", development)),
        ("docker-start (restart after stop)", over("docker-start", development)),
        ("rebuild-docker", over("rebuild-docker", development)),
        ("deploy", over("deploy", development)),
    ]


class ExhaustiveTestDriver:
    """Runs every planned command as a subprocess and tallies pass/fail by exit code.

    A failing or timed-out command never stops the run.
    """

    def __init__(
        self,
        console,
        logger,
        run_cmd: Callable,
        timeout: float = DEFAULT_TEST_TIMEOUT,
        base_cmd: Optional[Sequence[str]] = None,
        extra_args: Sequence[str] = (),
    ):
        self.console = console
        self.logger = logger
        self.run_cmd = run_cmd
        self.timeout = timeout
        self.base_cmd = list(base_cmd) if base_cmd else [sys.executable, "-m", "graphqltiers"]
        self.extra_args = list(extra_args)

    def _execute(self, planned: PlannedCommand) -> Tuple[int, str]:
        cmd = self.base_cmd + self.extra_args + [planned.command] + list(planned.args)
        try:
            result = self.run_cmd(
                cmd,
                check=False,
                capture_output=True,
                timeout=self.timeout,
                stdin=subprocess.DEVNULL,
            )
        except CommandTimeoutError as exc:
            return EXIT_TIMEOUT, str(exc)
        except ExternalToolError as exc:
            return 127, str(exc)
        output = (result.stdout or "") + (result.stderr or "")
        return result.returncode, output

    def run_command(self, planned: PlannedCommand, tally: ResultTally) -> bool:
        exit_code, output = self._execute(planned)
        if exit_code == 0:
            self.console.print(f"Testing {planned.description}... [green]PASSED[/green]")
            tally.record_pass()
            return True

        self.console.print(f"Testing {planned.description}... [red]FAILED (exit: {exit_code})[/red]")
        tally.record_failure(planned.description, exit_code)
        for line in output.strip().splitlines()[-5:]:
            self.console.print(f"    {line}", markup=False)
        self.logger.debug("%s failed with exit %s", planned.description, exit_code)
        return False

    def run(self, plan=None) -> ResultTally:
        tally = ResultTally()
        sections = plan if plan is not None else default_plan()

        for index, (title, commands) in enumerate(sections, start=1):
            self.console.rule(f"{index}. TESTING {title}")
            for planned in commands:
                self.run_command(planned, tally)

        self.print_summary(tally)
        return tally

    def print_summary(self, tally: ResultTally):
        self.console.rule("TEST SUMMARY")
        self.console.print(f"PASSED: {tally.passed}")
        self.console.print(f"FAILED: {tally.failed}")
        self.console.print(f"Total: {tally.total}")
        if tally.errors:
            self.console.print("Failed commands:")
            for error in tally.errors:
                self.console.print(f"  - {error}", markup=False)
        self.console.print(f"Success rate: {tally.success_rate}%")
