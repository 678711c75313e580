"""Execution orchestrator.

The orchestrator runs procedure instances one at a time, in the order
they are given. Each instance walks the lifecycle
`pending -> running -> passed | failed`; cleanup obligations registered
by executors are always attempted when an instance leaves `running`, in
reverse registration order.

Within a step, actions run in document order through a `StepContext`
so that later units see the state produced by earlier successful units
of the same language. A failing action never stops the instance: the
remaining actions still run unless the state they need was never
produced, in which case they fail with a dependency detail.
"""

import logging
from pathlib import Path
from shutil import rmtree
from tempfile import mkdtemp
from time import perf_counter
from typing import TYPE_CHECKING
from warnings import warn

from pytest_proctest.builtins.executors import default_executors
from pytest_proctest.errors import (
    CleanupFailure,
    CleanupWarning,
    ErrorContext,
    ExecutionFailure,
    PlaceholderUnresolved,
    PrerequisiteMissing,
)
from pytest_proctest.schema import (
    Action,
    ActionResult,
    ExecutionRequest,
    InstanceResult,
    RunResult,
    StepResult,
)

from .classifier import merge_units
from .context import StepContext
from .loader import ExecutorRegistryMixin
from .placeholders import PlaceholderResolver

if TYPE_CHECKING:
    from collections.abc import Iterable

if TYPE_CHECKING:
    from pytest_proctest.config import Configuration
    from pytest_proctest.extensions import Executor
    from pytest_proctest.schema import (
        ActionStatus,
        CleanupCallback,
        InstanceStatus,
        ProcedureInstance,
        Step,
    )

logger = logging.getLogger(__name__)

#: Action kinds that carry step state between units.
STATEFUL_KINDS = frozenset({'code', 'shell', 'cli'})

#: Allowed lifecycle transitions of an instance.
TRANSITIONS: dict[str, frozenset[str]] = {
    'pending': frozenset({'running', 'blocked'}),
    'running': frozenset({'passed', 'failed'}),
}


def units(step: 'Step') -> list[Action]:
    """Executable units of a step in document order.

    Runs of directly adjacent actions are merged with `merge_units`;
    content between actions breaks a run.
    """
    result: list[Action] = []
    run: list[Action] = []

    for item in step.items:
        if isinstance(item, Action):
            run.append(item)
            continue
        result.extend(merge_units(run))
        run = []

    result.extend(merge_units(run))

    return result


class InstanceRun:
    """Mutable lifecycle of one instance while it executes."""

    def __init__(self, instance: 'ProcedureInstance') -> None:
        self.instance = instance
        self.status: InstanceStatus = 'pending'

        self.cleanups: list[tuple[str, CleanupCallback]] = []

    def transition(self, status: 'InstanceStatus') -> None:
        """Move the instance to the next lifecycle state.

        Raises:
            RuntimeError: If the transition is not allowed.
        """
        if status not in TRANSITIONS.get(self.status, ()):
            raise RuntimeError(f'Invalid instance transition {self.status} -> {status}')

        logger.debug('Instance %r is %s', self.instance.name, status)
        self.status = status

    def register_cleanup(self, name: str, callback: 'CleanupCallback') -> None:
        """Register a cleanup obligation of the instance."""
        logger.debug('Registered cleanup %r', name)
        self.cleanups.append((name, callback))

    def result(self, **values: object) -> InstanceResult:
        """Build the result of the instance in its current state."""
        return InstanceResult(
            procedure=self.instance.procedure.name,
            filename=self.instance.procedure.filename,
            selection={
                ':'.join(choice.dimension): choice.label
                for choice in self.instance.selection
            },
            status=self.status,
            **values,
        )


class Orchestrator(ExecutorRegistryMixin):
    """Sequential runner of procedure instances.

    Attributes:
        configuration: Immutable run configuration.
        resolver: Placeholder resolver bound to the configuration.
        blocked: Whether a cleanup failure halted the run.
    """

    def __init__(self, configuration: 'Configuration', *,
                 strict: bool | None = None,
                 executors: 'Iterable[Executor] | None' = None,
                 plugins: bool = True) -> None:
        """Initialize the orchestrator.

        Args:
            configuration: Immutable run configuration.
            strict: Strict plugin loading; the configured value by default.
            executors: Executors registered instead of the builtin ones.
            plugins: Whether to load executor plugins from entry points.

        Raises:
            PluginError: If any plugin loading issues occur on strict mode.
        """
        self.configuration = configuration
        self.strict_mode = configuration.settings.strict if strict is None else strict

        self.executors = {}
        if executors is None:
            executors = default_executors({
                language: settings.command
                for language, settings in configuration.settings.executors.items()
            })
        for executor in executors:
            self.register(executor)

        if plugins:
            self.load_plugins()

        self.resolver = PlaceholderResolver(
            configuration.env,
            configuration.constants,
            configuration.settings.aliases,
        )

        self.blocked = False
        self._availability: dict[tuple[str, str], bool] = {}

    def run(self, instances: 'Iterable[ProcedureInstance]') -> RunResult:
        """Run instances sequentially.

        Args:
            instances: Instances in execution order.

        Returns:
            Result tree of the run.
        """
        return RunResult(instances=tuple(
            self.run_instance(instance)
            for instance in instances
        ))

    def run_instance(self, instance: 'ProcedureInstance') -> InstanceResult:
        """Run a single instance through its lifecycle.

        Args:
            instance: Variant-free procedure instance.

        Returns:
            Result of the instance. Instances after a blocking cleanup
            failure are reported `blocked` without running.
        """
        run = InstanceRun(instance)

        if self.blocked:
            logger.info('Skipping %r: run is blocked by a cleanup failure', instance.name)
            run.transition('blocked')
            return run.result()

        logger.info('Running %r', instance.name)
        run.transition('running')

        started = perf_counter()
        workdir = self.make_workdir(run)

        steps: list[StepResult] = []
        try:
            for step_num, step in enumerate(instance.steps):
                steps.append(self.run_step(step, step_num, workdir, run))

            failed = any(result.status == 'failed' for result in steps)
            run.transition('failed' if failed else 'passed')

        finally:
            failures = self.cleanup(run)

        duration = perf_counter() - started
        logger.info('Instance %r %s in %.2fs', instance.name, run.status, duration)

        return run.result(
            steps=tuple(steps),
            cleanup=tuple(failures),
            duration=duration,
        )

    def make_workdir(self, run: InstanceRun) -> Path:
        """Create the working directory of an instance.

        Removal of the directory is the first cleanup obligation, so it
        runs last.
        """
        workdir = Path(mkdtemp(prefix='proctest-'))
        keep_on_failure = self.configuration.settings.cleanup.keep_on_failure

        def remove() -> None:
            if keep_on_failure and run.status == 'failed':
                logger.info('Keeping working directory %s of failed %r', workdir, run.instance.name)
                return
            rmtree(workdir)

        run.register_cleanup(f'remove {workdir}', remove)

        return workdir

    def run_step(self, step: 'Step', step_num: int,
                 workdir: Path, run: InstanceRun) -> StepResult:
        """Run the actions of a step with a fresh step context."""
        context = StepContext(env=self.configuration.env)

        return StepResult(
            title=step.title,
            actions=tuple(
                self.run_action(action, context, workdir, run, step_num, action_num)
                for action_num, action in enumerate(units(step))
            ),
        )

    def run_action(self, action: Action, context: StepContext,  # noqa: PLR0913
                   workdir: Path, run: InstanceRun,
                   step_num: int = 0, action_num: int = 0) -> ActionResult:
        """Run one action and classify its outcome.

        Args:
            action: Action to run.
            context: Accumulated state of the step.
            workdir: Working directory of the instance.
            run: Lifecycle of the running instance.
            step_num: Index of the step, for error reporting.
            action_num: Index of the action, for error reporting.

        Returns:
            Action result. Unexpected executor errors become failures.
        """
        if not action.executable:
            return self._result(action, 'skipped-not-executable', 'Not executable')

        resolution = self.resolver.resolve(action.source)
        if not resolution.resolved:
            error = PlaceholderUnresolved(
                list(resolution.unresolved),
                context=self.error_context(action, step_num, action_num),
            )
            context.fail(action.language, action.source)
            return self._result(action, 'failed', error.message)

        executor = self.find_executor(action.kind, action.language)
        if executor is None:
            return self._result(
                action, 'skipped-missing-prerequisite',
                f'No executor for {action.kind} actions in {action.language}',
            )

        if not self.available(executor, action):
            return self._result(
                action, 'skipped-missing-prerequisite',
                f'Executor {executor.name!r} is not available',
            )

        source = resolution.text
        stateful = action.kind in STATEFUL_KINDS

        if stateful and (missing := context.unsatisfied(action.language, source)):
            context.fail(action.language, source)
            return self._result(
                action, 'failed',
                f'Dependency not satisfied: {", ".join(sorted(missing))}',
            )

        request = ExecutionRequest(
            kind=action.kind,
            language=action.language,
            source=source,
            prelude=context.prelude(action.language) if stateful else '',
            workdir=workdir,
            env={**context.env, **self.configuration.executor(action.language).env},
            timeout=self.configuration.timeout(action.language),
            register_cleanup=run.register_cleanup,
        )

        try:
            outcome = executor.run(request)

        except PrerequisiteMissing as error:
            return self._result(action, 'skipped-missing-prerequisite', error.message)

        except Exception as error:  # noqa: BLE001
            logger.debug('Executor %r raised', executor.name, exc_info=True)
            context.fail(action.language, source)
            failure = ExecutionFailure(
                f'{type(error).__name__}: {error}',
                context=self.error_context(action, step_num, action_num),
            )
            logger.info('%s', failure)
            return self._result(action, 'failed', failure.message)

        detail = None
        if outcome.succeeded:
            context.succeed(action.language, source)
            status: ActionStatus = 'passed'
        else:
            context.fail(action.language, source)
            status = 'failed'
            failure = ExecutionFailure(
                outcome.detail or 'Failed',
                context=self.error_context(action, step_num, action_num, outcome.stderr),
            )
            logger.info('%s', failure)
            detail = failure.message

        logger.debug('Action at %s:%d %s', action.location.filename,
                     action.location.line_start + 1, status)

        return ActionResult(
            kind=action.kind,
            language=action.language,
            status=status,
            detail=detail,
            duration=outcome.duration,
            exit_code=outcome.exit_code,
            stdout=outcome.stdout,
            stderr=outcome.stderr,
            location=action.location,
        )

    def available(self, executor: 'Executor', action: Action) -> bool:
        """Check the execution environment once per kind and language."""
        key = (action.kind, action.language)

        if key not in self._availability:
            try:
                self._availability[key] = executor.available()
            except Exception:  # noqa: BLE001
                logger.warning('Availability check of executor %r raised', executor.name, exc_info=True)
                self._availability[key] = False

            if not self._availability[key]:
                logger.info('No environment for %s actions in %s', *key)

        return self._availability[key]

    def cleanup(self, run: InstanceRun) -> list[str]:
        """Run cleanup obligations of an instance in reverse order.

        Returns:
            Messages of the failed obligations.
        """
        failures: list[str] = []

        for name, callback in reversed(run.cleanups):
            try:
                callback()
            except Exception as base:  # noqa: BLE001
                error = CleanupFailure(f'Cleanup {name!r} of {run.instance.name!r} failed: {base}')
                logger.warning(error.message)
                warn(error.message, category=CleanupWarning, stacklevel=2)
                failures.append(error.message)

        if failures and self.configuration.settings.cleanup.policy == 'block':
            logger.warning('Blocking remaining instances after cleanup failure')
            self.blocked = True

        return failures

    @staticmethod
    def error_context(action: Action, step_num: int, action_num: int,
                      stderr: str | None = None) -> ErrorContext:
        """Locate a failing action for error messages."""
        return ErrorContext(
            filename=action.location.filename,
            line_num=action.location.line_start,
            step_num=step_num,
            action_num=action_num,
            source=action.source,
            details={'stderr': (stderr or '').strip()},
        )

    @staticmethod
    def _result(action: Action, status: 'ActionStatus', detail: str | None = None) -> ActionResult:
        logger.debug('Action at %s:%d %s: %s', action.location.filename,
                     action.location.line_start + 1, status, detail)

        return ActionResult(
            kind=action.kind,
            language=action.language,
            status=status,
            detail=detail,
            location=action.location,
        )
