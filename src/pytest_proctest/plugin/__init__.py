"""Pytest plugin for collecting and executing documented procedures.

This module integrates pytest-proctest with pytest by:
- registering custom command-line options;
- configuring a shared run configuration, `DocumentParser` and
  `Orchestrator`;
- collecting documentation files as executable test documents.

Collection is opt-in: documentation files are collected only when
pytest runs with `--proctest`. Collected files match the `test_files`
glob patterns of the project settings, minus the `exclude` patterns,
both relative to the pytest root directory.
"""

from typing import TYPE_CHECKING, Any

from .document import TestDocument

if TYPE_CHECKING:
    from pathlib import Path

if TYPE_CHECKING:
    from _pytest.config import Config
    from _pytest.config.argparsing import Parser
    from _pytest.nodes import Node


def pytest_addoption(parser: 'Parser') -> None:
    """Register pytest command-line options for pytest-proctest.

    Args:
        parser: Pytest argument parser.
    """
    group = parser.getgroup('proctest', 'documentation procedures')

    group.addoption(
        '--proctest',
        action='store_true',
        dest='proctest',
        default=False,
        help='Collect and run procedures of documentation files.',
    )
    group.addoption(
        '--proctest-config',
        action='store',
        dest='proctest_config',
        default=None,
        metavar='PATH',
        help='Project file to use instead of `.proctest.yml` of the root directory.',
    )
    group.addoption(
        '--proctest-timeout',
        action='store',
        dest='proctest_timeout',
        type=float,
        default=None,
        metavar='SECONDS',
        help='Default timeout of a single action.',
    )
    group.addoption(
        '--proctest-cleanup',
        action='store',
        dest='proctest_cleanup',
        choices=('warn', 'block'),
        default=None,
        help=(
            'Cleanup failure policy. With `block`, instances following '
            'a cleanup failure are reported as blocked.'
        ),
    )
    group.addoption(
        '--proctest-no-urls',
        action='store_true',
        dest='proctest_no_urls',
        default=False,
        help='Do not check hyperlinks of procedure steps.',
    )
    group.addoption(
        '--proctest-relaxed',
        action='store_true',
        dest='proctest_relaxed',
        default=False,
        help=(
            'Disable strict plugin loading. '
            'Executor shadowing and third-party plugin loading errors '
            'will not cause test collection to fail.'
        ),
    )


def settings_overrides(config: 'Config') -> dict[str, Any]:
    """Collect explicit settings from command-line options."""
    overrides: dict[str, Any] = {}

    if (timeout := config.getoption('proctest_timeout', default=None)) is not None:
        overrides['timeout'] = timeout
    if policy := config.getoption('proctest_cleanup', default=None):
        overrides['cleanup'] = {'policy': policy}
    if config.getoption('proctest_no_urls', default=False):
        overrides['check_urls'] = False
    if config.getoption('proctest_relaxed', default=False):
        overrides['strict'] = False

    return overrides


def pytest_configure(config: 'Config') -> None:
    """Configure pytest-proctest integration.

    When collection is enabled, this hook resolves the run configuration
    and attaches it to the pytest configuration object together with a
    shared `DocumentParser` and `Orchestrator` as `config.proctest`,
    `config.proctest_parser` and `config.proctest_orchestrator`.

    Args:
        config: Pytest configuration object.

    Raises:
        ConfigurationError: If the project settings are invalid.
        PluginError: If executor plugins fail to load on strict mode.
    """
    if not config.getoption('proctest', default=False):
        return

    from pytest_proctest.config import Configuration  # noqa: PLC0415
    from pytest_proctest.core import DocumentParser, Orchestrator  # noqa: PLC0415

    configuration = Configuration.load(
        config.rootpath,
        config.getoption('proctest_config', default=None),
        **settings_overrides(config),
    )

    config.proctest = configuration  # type: ignore[attr-defined]
    config.proctest_parser = DocumentParser.from_configuration(configuration)  # type: ignore[attr-defined]
    config.proctest_orchestrator = Orchestrator(configuration)  # type: ignore[attr-defined]


def pytest_collect_file(parent: 'Node', file_path: 'Path') -> TestDocument | None:
    """Collect documentation files.

    Args:
        parent: Parent pytest collection node.
        file_path: Path to the file being considered.

    Returns:
        A `TestDocument` collector if collection is enabled and the file
        matches the configured patterns, otherwise `None`.
    """
    configuration = getattr(parent.config, 'proctest', None)
    if configuration is None:
        return None

    if not configuration.collects(file_path):
        return None

    return TestDocument.from_parent(
        parent,
        path=file_path,
    )
