"""Tests for plugin loading and executor lookup."""

from typing import TYPE_CHECKING

import pydantic
import pytest

from pytest_proctest.core import Orchestrator
from pytest_proctest.errors import PluginError, PluginWarning
from pytest_proctest.extensions import Plugin
from pytest_proctest.schema import Action, Procedure, ProcedureInstance, Step
from tests.examples.executors import failing, python
from tests.examples.plugins import example

if TYPE_CHECKING:
    from collections.abc import Callable

if TYPE_CHECKING:
    from pytest_mock import MockType

    from pytest_proctest.config import Configuration


@pytest.fixture
def configuration(make_configuration: 'Callable[..., Configuration]') -> 'Configuration':
    """Provide a default run configuration."""
    return make_configuration()


def validation_error() -> pydantic.ValidationError:
    """Produce a real validation error."""
    with pytest.raises(pydantic.ValidationError) as error:
        pydantic.TypeAdapter(int).validate_python('error')

    return error.value


def test_base_loading(patch_entrypoints: 'Callable[..., MockType]',
                      configuration: 'Configuration') -> None:
    """Verify successful loading of executors from entrypoints."""
    patch_entrypoints(example)

    orchestrator = Orchestrator(configuration, executors=[])

    assert list(orchestrator.executors) == ['example.browser', 'example.python']
    assert orchestrator.find_executor('ui', 'text') is not None
    assert orchestrator.find_executor('code', 'python') is not None
    assert orchestrator.find_executor('code', 'go') is None


def test_plugin_executors_take_precedence(patch_entrypoints: 'Callable[..., MockType]',
                                          configuration: 'Configuration') -> None:
    """Verify plugin executors win over previously registered ones."""
    patch_entrypoints(example)

    orchestrator = Orchestrator(configuration, executors=[failing])

    def run(kind: str, language: str) -> str:
        action = Action(kind=kind, language=language, body='run()', source='run()', executable=True)
        steps = (Step(items=(action,)),)
        result = orchestrator.run_instance(ProcedureInstance(procedure=Procedure(steps=steps), steps=steps))
        return result.actions[0].status

    assert run('code', 'python') == 'passed'
    assert run('ui', 'text') == 'passed'
    assert run('code', 'go') == 'failed'


def test_builtin_executors(patch_entrypoints: 'Callable[..., MockType]',
                           configuration: 'Configuration') -> None:
    """Verify builtin executors are registered by default."""
    patch_entrypoints()

    orchestrator = Orchestrator(configuration)

    assert 'builtins.url' in orchestrator.executors
    assert 'builtins.shell-cli' in orchestrator.executors
    assert orchestrator.find_executor('cli', 'shell').name == 'shell-cli'


def test_skip_plugins(patch_entrypoints: 'Callable[..., MockType]',
                      configuration: 'Configuration') -> None:
    """Verify entrypoints are not consulted without plugins."""
    entry_points = patch_entrypoints(example)

    orchestrator = Orchestrator(configuration, executors=[python], plugins=False)

    assert list(orchestrator.executors) == ['builtins.python']
    entry_points.assert_not_called()


def test_loading_with_empty_entrypoint(patch_entrypoints: 'Callable[..., MockType]',
                                       configuration: 'Configuration') -> None:
    """Verify behavior when plugins provide no executors."""
    patch_entrypoints(Plugin(name='empty'))

    orchestrator = Orchestrator(configuration, executors=[])

    assert orchestrator.executors == {}


def test_shadowing_executor_warns(patch_entrypoints: 'Callable[..., MockType]',
                                  configuration: 'Configuration') -> None:
    """Verify warning on executors registered twice in relaxed mode."""
    patch_entrypoints(example, example)

    with pytest.warns(PluginWarning, match=r"^Executor 'example.python' from 'tests.examples.plugins:example' is shadowing"):
        orchestrator = Orchestrator(configuration, executors=[], strict=False)

    assert list(orchestrator.executors) == ['example.browser', 'example.python']


def test_shadowing_executor_fails(patch_entrypoints: 'Callable[..., MockType]',
                                  configuration: 'Configuration') -> None:
    """Verify failing on executors registered twice with strict mode."""
    patch_entrypoints(example, example)

    with pytest.raises(PluginError, match=r"^Executor 'example.browser' .* is shadowing an existing"):
        Orchestrator(configuration, executors=[])


def test_strict_mode_from_settings(patch_entrypoints: 'Callable[..., MockType]',
                                   make_configuration: 'Callable[..., Configuration]') -> None:
    """Verify the configured loading mode is used by default."""
    patch_entrypoints(None, raises=SyntaxError)

    with pytest.warns(PluginWarning):
        Orchestrator(make_configuration(strict=False))

    with pytest.raises(PluginError):
        Orchestrator(make_configuration(strict=True))


@pytest.mark.parametrize('loaded, raises, message', (
    pytest.param(None, SyntaxError, r'^Failed to load entrypoint', id='load'),
    pytest.param(None, validation_error(), r'^Failed to validate entrypoint', id='validate'),
    pytest.param({}, None, r'object is not a plugin$', id='not a plugin'),
))
def test_loading_skip_invalid_entrypoint(patch_entrypoints: 'Callable[..., MockType]',
                                         configuration: 'Configuration',
                                         loaded: object, raises: Exception | None, message: str) -> None:
    """Verify skipping of invalid entrypoints in relaxed mode."""
    patch_entrypoints(loaded, raises=raises)

    with pytest.warns(PluginWarning, match=message):
        orchestrator = Orchestrator(configuration, executors=[], strict=False)

    assert orchestrator.executors == {}


@pytest.mark.parametrize('loaded, raises, message', (
    pytest.param(None, SyntaxError, r'^Failed to load entrypoint', id='load'),
    pytest.param(None, validation_error(), r'^Failed to validate entrypoint', id='validate'),
    pytest.param({}, None, r'object is not a plugin$', id='not a plugin'),
))
def test_loading_fail_invalid_entrypoint(patch_entrypoints: 'Callable[..., MockType]',
                                         configuration: 'Configuration',
                                         loaded: object, raises: Exception | None, message: str) -> None:
    """Verify failing on invalid entrypoints with strict mode."""
    patch_entrypoints(loaded, raises=raises)

    with pytest.raises(PluginError, match=message) as error:
        Orchestrator(configuration, executors=[], strict=True)

    assert error.value.entrypoint is not None
    assert error.value.entrypoint.name == 'tests'
