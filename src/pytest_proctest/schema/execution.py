"""Executor capability contract.

An executor receives an `ExecutionRequest` describing one executable unit
(the accumulated source of earlier units of the step, the unit itself,
a working directory, environment bindings and a timeout) and returns an
`ExecutionOutcome` describing what happened.
"""

from collections.abc import Callable
from pathlib import Path  # noqa: TC003

from pydantic import Field

from pytest_proctest.models import SchemaModel

from .procedures import ActionKind  # noqa: TC001

#: Cleanup obligation: a zero-argument callable tearing a resource down.
type CleanupCallback = Callable[[], object]

#: Registers a named cleanup obligation for the running instance.
type CleanupRegistrar = Callable[[str, CleanupCallback], None]


class ExecutionRequest(SchemaModel):
    """Single executable unit handed to an executor."""

    kind: ActionKind
    language: str

    source: str = Field(
        title='Unit source',
        description='Placeholder-resolved source of the unit itself.',
    )
    prelude: str = Field(
        default='',
        title='Accumulated source',
        description='Source of earlier successful units of the step, replayed before the unit.',
    )

    workdir: Path = Field(
        title='Working directory',
    )
    env: dict[str, str] = Field(
        default_factory=dict,
        title='Environment bindings',
    )
    timeout: float = Field(
        gt=0,
        title='Timeout in seconds',
    )

    register_cleanup: CleanupRegistrar | None = Field(
        default=None,
        exclude=True,
        title='Cleanup registrar',
    )

    @property
    def program(self) -> str:
        """Full program text: the prelude followed by the unit source."""
        if not self.prelude:
            return self.source

        return f'{self.prelude}\n{self.source}'


class ExecutionOutcome(SchemaModel):
    """What an executor observed while running a unit."""

    exit_code: int | None = Field(
        default=None,
        title='Exit code',
    )
    status_code: int | None = Field(
        default=None,
        title='HTTP status code',
    )
    error: str | None = Field(
        default=None,
        title='Thrown error',
        description='Set when the unit could not run or raised an error.',
    )
    timed_out: bool = False

    stdout: str = ''
    stderr: str = ''
    duration: float = Field(
        default=0.0,
        ge=0,
    )

    @property
    def succeeded(self) -> bool:
        """Exit code zero, or a URL status below 400, with no error."""
        if self.error is not None or self.timed_out:
            return False

        if self.status_code is not None and self.status_code >= 400:  # noqa: PLR2004
            return False

        return self.exit_code in (None, 0)

    @property
    def detail(self) -> str | None:
        """Failure description, if the unit failed."""
        if self.succeeded:
            return None

        if self.timed_out:
            return self.error or 'Timed out'

        if self.error is not None:
            return self.error

        if self.status_code is not None and self.status_code >= 400:  # noqa: PLR2004
            return f'HTTP status {self.status_code}'

        return f'Exited with code {self.exit_code}'
