"""Tests configurations and fixtures."""

from importlib.metadata import EntryPoint, EntryPoints
from typing import TYPE_CHECKING, Any

import pytest

from pytest_proctest.config import Configuration, ProjectSettings
from pytest_proctest.core import DocumentParser

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

if TYPE_CHECKING:
    from pytest_mock import MockerFixture, MockType

if TYPE_CHECKING:
    from pytest_proctest.extensions import Plugin


@pytest.fixture
def parser() -> DocumentParser:
    """Provide a document parser with the default tables."""
    return DocumentParser()


@pytest.fixture
def make_configuration(tmp_path: 'Path') -> 'Callable[..., Configuration]':
    """Provide a factory for run configurations rooted in a temporary directory.

    The factory ignores any project file of the working directory, so
    tests never depend on where pytest was started from.
    """
    def make(*, env: dict[str, str] | None = None,
             constants: dict[str, str] | None = None,
             **values: Any) -> Configuration:  # noqa: ANN401
        """Build a configuration from explicit settings.

        Args:
            env: Environment bindings.
            constants: Source constants.
            **values: Explicit project settings.

        Returns:
            Immutable run configuration.
        """
        settings = ProjectSettings.from_file(tmp_path / '.proctest.yml', **values)

        return Configuration(
            settings=settings,
            root=tmp_path,
            env=env or {},
            constants=constants or {},
        )

    return make


@pytest.fixture
def patch_entrypoints(mocker: 'MockerFixture') -> 'Callable[[Plugin, Exception], MockType]':
    """Provide a factory for mocking `importlib.metadata.entry_points`.

    Returns a callable that patches `entry_points()` to simulate
    discovery of plugins in the `proctest_plugins` entry point group.

    The returned factory allows configuring:
    - a successfully loadable plugin,
    - or an exception raised during plugin loading,
    - or an empty entry point list.

    This fixture is intended for testing plugin discovery and error
    handling logic without relying on real installed entry points.
    """
    def patch(*plugins: 'Plugin', raises: Exception | None = None) -> 'MockType':
        """Patch `entry_points` with a controlled plugin configuration.

        Args:
            plugins: Plugin objects to be returned by `EntryPoint.load()`.
                If empty, no entry points are registered.
            raises: Exception to raise when `EntryPoint.load()` is called.
                Used to simulate plugin load failures.

        Returns:
            A mock patch object produced by `mocker.patch` that replaces
            `importlib.metadata.entry_points` for the duration of the test.
        """
        entrypoints = []
        for plugin in plugins:
            ep = mocker.Mock(spec=EntryPoint)
            ep.group = 'proctest_plugins'
            ep.name = 'tests'
            ep.value = 'tests.examples.plugins:example'
            ep.load.return_value = plugin
            if raises is not None:
                ep.load.side_effect = raises
            entrypoints.append(ep)

        return mocker.patch(
            'importlib.metadata.entry_points',
            return_value=EntryPoints(entrypoints),
        )

    return patch
