"""Pytest item executing one procedure instance.

The item delegates execution to the shared `Orchestrator`, so instances
run strictly one after another in collection order and share the availability
cache and the cleanup blocking state of the run.
"""

from typing import TYPE_CHECKING

import pytest

from pytest_proctest.errors import ErrorContext, ErrorFormatter, ProcTestError

if TYPE_CHECKING:
    from typing import Any

if TYPE_CHECKING:
    from _pytest._code.code import ExceptionInfo, TerminalRepr

    from pytest_proctest.core import Orchestrator
    from pytest_proctest.schema import InstanceResult, ProcedureInstance, SourceLocation


class ProcedureItem(pytest.Item):
    """Pytest item running a single procedure instance.

    An item built with an `error` instead of an instance stands for a
    procedure that could not be built or expanded, and always fails.
    """

    __test__ = False

    def __init__(self, *,
                 instance: 'ProcedureInstance | None' = None,
                 error: ProcTestError | None = None,
                 **kwargs: 'Any') -> None:
        """Initialize a pytest item backed by a procedure instance.

        Args:
            instance: Variant-free procedure instance to run.
            error: Reason why the procedure cannot run.
            **kwargs: Keyword pytest.Item arguments.
        """
        super().__init__(**kwargs)

        self.instance = instance
        self.error = error
        self.result: InstanceResult | None = None

    def runtest(self) -> None:
        """Run the procedure instance.

        Raises:
            AssertionError: If any action of the instance failed.
            ProcTestError: If the procedure cannot run.
        """
        if self.error is not None:
            raise self.error

        if self.instance is None:
            raise ProcTestError('Nothing to run')

        orchestrator: Orchestrator = self.config.proctest_orchestrator  # type: ignore[attr-defined]

        self.result = orchestrator.run_instance(self.instance)
        self.user_properties.append(('proctest', self.result.model_dump_json()))

        if self.result.status == 'blocked':
            pytest.skip('Blocked by an earlier cleanup failure')

        if self.result.status == 'failed':
            raise self.fail(self.result)

    def fail(self, result: 'InstanceResult') -> AssertionError:
        """Create an AssertionError describing the failed actions.

        Args:
            result: Result of the failed instance.

        Returns:
            AssertionError with one formatted entry per failed action.
        """
        messages = []
        for step_num, step in enumerate(result.steps):
            for action_num, action in enumerate(step.actions):
                if not action.failed:
                    continue

                error_context = ErrorContext(
                    filename=result.filename,
                    step_num=step_num,
                    action_num=action_num,
                    details={
                        'exit_code': action.exit_code,
                        'stderr': action.stderr.strip(),
                    },
                )
                if action.location is not None:
                    error_context['filename'] = action.location.filename or result.filename
                    error_context['line_num'] = action.location.line_start
                    error_context['source'] = self.source(action.location)

                messages.append(ErrorFormatter.format(
                    f'Action failed: {action.detail}',
                    error_context,
                ))

        return AssertionError('\n'.join(messages))

    def source(self, location: 'SourceLocation') -> str | None:
        """Source of the instance actions spanning a location."""
        if self.instance is None:
            return None

        sources = [
            action.source
            for step in self.instance.steps
            for action in step.actions
            if action.location.filename == location.filename
            and location.line_start <= action.location.line_start <= location.line_end
        ]

        return '\n'.join(sources) or None

    def repr_failure(self, excinfo: 'ExceptionInfo[BaseException]',
                     style: 'Any' = None) -> 'str | TerminalRepr':
        """Represent procedure failures without a Python traceback."""
        if isinstance(excinfo.value, (AssertionError, ProcTestError)):
            return f'{excinfo.value}'

        return super().repr_failure(excinfo, style=style)

    def reportinfo(self) -> tuple[str, int | None, str]:
        """Report the source location of the procedure."""
        line_num: int | None = None
        if self.instance is not None:
            line_num = self.instance.procedure.location.line_start
        elif self.error is not None:
            line_num = self.error.line_num

        return f'{self.path}', line_num, f'procedure: {self.name}'
