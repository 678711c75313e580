"""Execution result tree.

Results mirror the procedure model: a run holds one result per
procedure instance, each holding step results, each holding action
results. Aggregate statuses are computed from children: a level is
failed iff at least one constituent action failed; skipped actions
never escalate to failure.
"""

from typing import Literal

from pydantic import Field, computed_field

from pytest_proctest.models import SchemaModel

from .nodes import SourceLocation
from .procedures import ActionKind  # noqa: TC001

#: Outcome of a single action.
type ActionStatus = Literal['passed', 'failed', 'skipped-not-executable', 'skipped-missing-prerequisite']

#: Aggregate outcome of a step or a run.
type AggregateStatus = Literal['passed', 'failed']

#: Lifecycle of a procedure instance. `blocked` is reported for instances
#: that never ran because an earlier cleanup failure halted the run.
type InstanceStatus = Literal['pending', 'running', 'passed', 'failed', 'blocked']


class ActionResult(SchemaModel):
    """Outcome of one executed (or skipped) action."""

    kind: ActionKind
    language: str

    status: ActionStatus
    detail: str | None = Field(
        default=None,
        title='Error detail',
        description='Failure or skip reason.',
    )
    duration: float = Field(
        default=0.0,
        ge=0,
        title='Duration in seconds',
    )

    exit_code: int | None = None
    stdout: str = ''
    stderr: str = ''

    location: SourceLocation | None = None

    @property
    def failed(self) -> bool:
        """Whether the action failed."""
        return self.status == 'failed'


class StepResult(SchemaModel):
    """Outcome of one step."""

    title: str | None = None
    actions: tuple[ActionResult, ...] = ()

    @computed_field  # type: ignore[prop-decorator]
    @property
    def status(self) -> AggregateStatus:
        """Failed iff any action of the step failed."""
        if any(action.failed for action in self.actions):
            return 'failed'

        return 'passed'


class InstanceResult(SchemaModel):
    """Outcome of one procedure instance."""

    procedure: str = Field(
        title='Procedure name',
    )
    filename: str | None = None
    selection: dict[str, str] = Field(
        default_factory=dict,
        title='Dimension keys used',
        description='Chosen alternative key per dimension.',
    )

    status: InstanceStatus = 'pending'
    steps: tuple[StepResult, ...] = ()
    cleanup: tuple[str, ...] = Field(
        default=(),
        title='Cleanup failures',
        description='Cleanup obligations that failed after the instance ran.',
    )
    duration: float = Field(
        default=0.0,
        ge=0,
    )

    @property
    def actions(self) -> tuple[ActionResult, ...]:
        """All action results of the instance in execution order."""
        return tuple(
            action
            for step in self.steps
            for action in step.actions
        )


class RunResult(SchemaModel):
    """Outcome of a whole run, in execution order."""

    instances: tuple[InstanceResult, ...] = ()

    @computed_field  # type: ignore[prop-decorator]
    @property
    def status(self) -> AggregateStatus:
        """Failed iff any instance failed."""
        if any(instance.status == 'failed' for instance in self.instances):
            return 'failed'

        return 'passed'
