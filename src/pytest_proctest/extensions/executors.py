"""Declarative executor definitions.

An executor is the pluggable capability that runs one executable unit:
a program in some language, a shell session, a CLI invocation, or a URL
check. Executors are declarative: they bind a runner callable and an
optional environment check to the action kinds and languages they serve.
"""

from collections.abc import Callable

from pydantic import Field

from pytest_proctest.models import SchemaModel
from pytest_proctest.schema import ActionKind, ExecutionOutcome, ExecutionRequest  # noqa: TC001

#: Runs one unit and reports what happened.
type ExecutorRunner = Callable[[ExecutionRequest], ExecutionOutcome]

#: Checks whether the execution environment of an executor is available.
type ExecutorCheck = Callable[[], bool]


class Executor(SchemaModel):
    """Declarative executor definition.

    The runner may raise `PrerequisiteMissing` when a unit needs a
    program that is not installed (for example a CLI tool named by the
    unit itself); the orchestrator reports such units as skipped.
    """

    name: str = Field(
        min_length=1,
        title='Executor name',
    )

    kinds: tuple[ActionKind, ...] = Field(
        default=('code',),
        min_length=1,
        title='Served action kinds',
    )
    languages: tuple[str, ...] = Field(
        default=(),
        title='Served languages',
        description='Canonical languages served; an empty tuple serves any language.',
    )

    runner: ExecutorRunner = Field(
        title='Runner function',
        description=(
            'Callable receiving an execution request and returning '
            'the observed outcome.'
        ),
    )
    check: ExecutorCheck | None = Field(
        default=None,
        title='Prerequisite check',
        description='Callable returning whether the toolchain is available.',
    )

    def supports(self, kind: str, language: str) -> bool:
        """Check whether the executor serves an action kind and language."""
        if kind not in self.kinds:
            return False

        return not self.languages or language in self.languages

    def available(self) -> bool:
        """Run the prerequisite check."""
        if self.check is None:
            return True

        return bool(self.check())

    def run(self, request: ExecutionRequest) -> ExecutionOutcome:
        """Run a unit."""
        return self.runner(request)
