"""Ordered, fail-fast execution of named operation steps."""

import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from graphqltiers.errors import TierToolError

SUCCESS = "success"
FAILED = "failed"
WARNING = "warning"
SKIPPED = "skipped"


@dataclass
class Step:
    name: str
    action: Callable[[], Any]
    effect: str = ""
    required: bool = True


@dataclass
class StepRecord:
    name: str
    effect: str
    status: str
    duration_seconds: float = 0.0
    error: Optional[str] = None
    result: Any = None


@dataclass
class PipelineResult:
    operation: str
    steps: List[StepRecord] = field(default_factory=list)
    error: Optional[TierToolError] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @property
    def failed_step(self) -> Optional[str]:
        for record in self.steps:
            if record.status == FAILED:
                return record.name
        return None

    @property
    def warnings(self) -> List[StepRecord]:
        return [record for record in self.steps if record.status == WARNING]

    def result_of(self, name: str) -> Any:
        for record in self.steps:
            if record.name == name:
                return record.result
        return None

    def raise_for_failure(self):
        if self.error is not None:
            raise self.error


class Pipeline:
    """Runs steps in order; the first failing required step stops the run.

    Failures of non-required steps are recorded as warnings. Nothing already
    done is rolled back.
    """

    def __init__(self, operation: str, logger, console, clock=time.monotonic):
        self.operation = operation
        self.logger = logger
        self.console = console
        self.clock = clock
        self.steps: List[Step] = []

    def add(self, name: str, action: Callable[[], Any], effect: str = "", required: bool = True) -> "Pipeline":
        self.steps.append(Step(name=name, action=action, effect=effect, required=required))
        return self

    def run(self) -> PipelineResult:
        result = PipelineResult(operation=self.operation)

        for index, step in enumerate(self.steps):
            self.logger.debug("Step %s: %s", step.name, step.effect or "-")
            started = self.clock()
            try:
                value = step.action()
            except TierToolError as exc:
                duration = self.clock() - started
                if step.required:
                    result.steps.append(StepRecord(step.name, step.effect, FAILED, duration, str(exc)))
                    result.error = exc
                    for pending in self.steps[index + 1 :]:
                        result.steps.append(StepRecord(pending.name, pending.effect, SKIPPED))
                    return result

                self.logger.warning("Step '%s' failed, continuing: %s", step.name, exc)
                self.console.print(f"[yellow]Warning: {step.name} failed: {exc}[/yellow]")
                result.steps.append(StepRecord(step.name, step.effect, WARNING, duration, str(exc)))
                continue

            result.steps.append(
                StepRecord(step.name, step.effect, SUCCESS, self.clock() - started, result=value)
            )

        return result
