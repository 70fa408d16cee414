"""Ordered step runner with reverse-order compensation.

A saga makes several dependent writes look atomic to the caller without a
spanning database transaction. Each step returns its output together with a
compensation token; when a later step raises, the completed steps are undone
in reverse order using their own tokens, and the original error is re-raised.
"""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class StepResponse:
    """What a step hands back: its output and the token its compensation needs."""

    output: Any = None
    compensation: Any = None


@dataclass
class SagaContext:
    """Input of the saga plus the outputs of the steps completed so far."""

    input: Any
    results: dict[str, Any] = field(default_factory=dict)

    def result(self, step_name: str) -> Any:
        return self.results[step_name]


StepInvoke = Callable[[SagaContext], StepResponse]
StepCompensate = Callable[[Any], None]


@dataclass(frozen=True)
class SagaStep:
    name: str
    invoke: StepInvoke
    compensate: StepCompensate | None = None


@dataclass
class SagaResult:
    output: Any
    results: dict[str, Any]


class Saga:
    """Run steps in order; on failure compensate completed steps in reverse.

    Compensation is best-effort. A compensation that raises is logged and the
    remaining compensations still run. The caller only ever sees the error of
    the step that failed.
    """

    def __init__(self, name: str, steps: Sequence[SagaStep]):
        names = [step.name for step in steps]
        if len(names) != len(set(names)):
            raise ValueError(f"Saga {name} has duplicate step names: {names}")
        self.name = name
        self.steps = list(steps)

    def run(self, payload: Any = None) -> SagaResult:
        context = SagaContext(input=payload)
        completed: list[tuple[SagaStep, Any]] = []
        output: Any = None

        for step in self.steps:
            logger.debug("Saga %s: running step %s", self.name, step.name)
            try:
                response = step.invoke(context)
            except BaseException as exc:
                logger.warning(
                    "Saga %s failed at step %s: %s; compensating %d step(s)",
                    self.name,
                    step.name,
                    exc,
                    len(completed),
                )
                for failure in self._compensate(completed):
                    exc.add_note(failure)
                raise
            context.results[step.name] = response.output
            completed.append((step, response.compensation))
            output = response.output

        logger.debug("Saga %s completed %d step(s)", self.name, len(completed))
        return SagaResult(output=output, results=dict(context.results))

    def _compensate(self, completed: list[tuple[SagaStep, Any]]) -> list[str]:
        """Undo completed steps in reverse order. Returns failure descriptions."""
        failures: list[str] = []
        for step, token in reversed(completed):
            if step.compensate is None:
                continue
            logger.debug("Saga %s: compensating step %s", self.name, step.name)
            try:
                step.compensate(token)
            except Exception as comp_exc:
                logger.exception(
                    "Saga %s: compensation of step %s failed", self.name, step.name
                )
                failures.append(f"compensation of step {step.name!r} failed: {comp_exc!r}")
        return failures
