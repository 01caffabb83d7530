"""
LexLedger Practice Billing
Best-effort multi-step writes

Saves that span several records (client then contacts, invoice then its
primary contact) run as an ordered list of steps. Each step commits on its
own; a failure is recorded and later steps that depend on it are skipped.
Nothing already committed is rolled back.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class StepStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class Step:
    name: str
    action: Callable[[Dict[str, Any]], Awaitable[Any]]
    depends_on: Tuple[str, ...] = ()


@dataclass
class StepResult:
    name: str
    status: StepStatus
    result: Any = None
    error: Optional[str] = None


@dataclass
class WorkflowReport:
    results: List[StepResult] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return all(r.status == StepStatus.SUCCEEDED for r in self.results)

    @property
    def failures(self) -> List[StepResult]:
        return [r for r in self.results if r.status == StepStatus.FAILED]

    def result_of(self, name: str) -> Any:
        for r in self.results:
            if r.name == name:
                return r.result
        return None


class StepRunner:
    """Run steps in order, capturing one result per step"""

    def __init__(self, steps: Optional[List[Step]] = None):
        self.steps: List[Step] = list(steps or [])

    def add(self, name: str, action: Callable[[Dict[str, Any]], Awaitable[Any]],
            depends_on: Tuple[str, ...] = ()) -> "StepRunner":
        self.steps.append(Step(name=name, action=action, depends_on=depends_on))
        return self

    async def run(self) -> WorkflowReport:
        report = WorkflowReport()
        outputs: Dict[str, Any] = {}
        status_by_name: Dict[str, StepStatus] = {}

        for step in self.steps:
            blocked = [d for d in step.depends_on if status_by_name.get(d) != StepStatus.SUCCEEDED]
            if blocked:
                result = StepResult(step.name, StepStatus.SKIPPED,
                                    error=f"Skipped because {', '.join(blocked)} did not succeed")
            else:
                try:
                    value = await step.action(outputs)
                    outputs[step.name] = value
                    result = StepResult(step.name, StepStatus.SUCCEEDED, result=value)
                except Exception as e:
                    logger.warning("Step %s failed: %s", step.name, e)
                    result = StepResult(step.name, StepStatus.FAILED, error=str(e))

            status_by_name[step.name] = result.status
            report.results.append(result)

        return report
