"""Tests for run configuration resolution."""

from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from pytest_proctest.config import Configuration, ProjectSettings, RoleSettings, matches
from pytest_proctest.errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Callable

PROJECT_FILE = '''
timeout: 10
cleanup:
  policy: block
executors:
  python:
    command: python3.12 {filename}
    timeout: 5
roles:
  manual:
    url: https://www.mongodb.com/docs/manual%s
    trailing_slash: true
'''


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """Provide a project root with a project file."""
    (tmp_path / '.proctest.yml').write_text(PROJECT_FILE)

    return tmp_path


def test_defaults(tmp_path: Path) -> None:
    """Resolve defaults without any project file."""
    settings = ProjectSettings.from_file(tmp_path / '.proctest.yml')

    assert settings.timeout == 30
    assert settings.cleanup.policy == 'warn'
    assert not settings.cleanup.keep_on_failure
    assert settings.strict
    assert settings.check_urls
    assert 'mongosh' in settings.cli_tools


def test_project_file(project: Path) -> None:
    """Read settings from the project file of the root."""
    configuration = Configuration.load(project)

    assert configuration.root == project
    assert configuration.settings.cleanup.policy == 'block'
    assert configuration.timeout('python') == 5
    assert configuration.timeout('shell') == 10
    assert configuration.executor('python').command == 'python3.12 {filename}'
    assert configuration.executor('go').command is None
    assert configuration.roles['manual'].render('/reference') == 'https://www.mongodb.com/docs/manual/reference/'


def test_environment_overrides_file(project: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Prefer environment variables over the project file."""
    monkeypatch.setenv('PROCTEST_TIMEOUT', '20')
    monkeypatch.setenv('PROCTEST_CLEANUP__POLICY', 'warn')

    configuration = Configuration.load(project)

    assert configuration.settings.timeout == 20
    assert configuration.settings.cleanup.policy == 'warn'


def test_explicit_values_override_environment(project: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Prefer explicit values over every other source."""
    monkeypatch.setenv('PROCTEST_TIMEOUT', '20')

    configuration = Configuration.load(project, timeout=3, strict=False)

    assert configuration.settings.timeout == 3
    assert not configuration.settings.strict


def test_explicit_file(tmp_path: Path, project: Path) -> None:
    """Read an explicitly given project file."""
    configuration = Configuration.load(tmp_path / 'elsewhere', config_file=project / '.proctest.yml')

    assert configuration.settings.timeout == 10


def test_missing_explicit_file(tmp_path: Path) -> None:
    """Fail on a missing explicitly given project file."""
    with pytest.raises(ConfigurationError, match=r'^Configuration file .*missing\.yml not found'):
        Configuration.load(tmp_path, config_file=tmp_path / 'missing.yml')


def test_invalid_values(tmp_path: Path) -> None:
    """Fail on invalid settings values."""
    (tmp_path / '.proctest.yml').write_text('timeout: -1\n')

    with pytest.raises(ConfigurationError, match=r'^Invalid configuration in'):
        Configuration.load(tmp_path)


def test_env_files(tmp_path: Path) -> None:
    """Merge environment files with later files taking precedence."""
    (tmp_path / '.env').write_text('CONNECTION_STRING=mongodb://localhost\nAPI_KEY=first\n')
    (tmp_path / '.env.local').write_text('API_KEY=second\n')

    configuration = Configuration.load(tmp_path)

    assert configuration.env == {
        'CONNECTION_STRING': 'mongodb://localhost',
        'API_KEY': 'second',
    }


def test_constants(tmp_path: Path) -> None:
    """Read source constants of the documentation project."""
    (tmp_path / 'snooty.toml').write_text(
        'name = "docs"\n'
        '\n'
        '[constants]\n'
        'version = "8.0"\n'
        'port = 27017\n',
    )

    configuration = Configuration.load(tmp_path)

    assert configuration.constants == {'version': '8.0', 'port': '27017'}


def test_malformed_constants(tmp_path: Path) -> None:
    """Fail on a malformed constants file."""
    (tmp_path / 'snooty.toml').write_text('[constants\n')

    with pytest.raises(ConfigurationError, match=r'^Malformed constants file'):
        Configuration.load(tmp_path)


def test_source_dir(make_configuration: 'Callable[..., Configuration]', tmp_path: Path) -> None:
    """Resolve the source directory against the root."""
    assert make_configuration().source_dir is None
    assert make_configuration(source_dir='source').source_dir == tmp_path / 'source'


@pytest.mark.parametrize('path, expected', (
    pytest.param('content/manual/source/install.txt', True, id='nested'),
    pytest.param('content/index.rst', True, id='shallow'),
    pytest.param('content/manual/build/install.txt', False, id='excluded'),
    pytest.param('content/manual/install.md', False, id='other extension'),
    pytest.param('README.txt', False, id='outside patterns'),
))
def test_collects(make_configuration: 'Callable[..., Configuration]', tmp_path: Path,
                  path: str, expected: bool) -> None:
    """Collect documents matching test patterns and no exclusions."""
    assert make_configuration().collects(tmp_path / path) is expected


def test_collects_outside_root(make_configuration: 'Callable[..., Configuration]') -> None:
    """Never collect documents outside the root."""
    assert not make_configuration().collects(Path('/elsewhere/content/page.txt'))


def test_matches() -> None:
    """Let a double star segment match no directory at all."""
    assert matches('guide.txt', ('**/*.txt',))
    assert matches('a/b/guide.txt', ('**/*.txt',))
    assert not matches('a/b/guide.rst', ('**/*.txt',))


@pytest.mark.parametrize('role, target, expected', (
    pytest.param(
        RoleSettings(url='https://www.mongodb.com/docs/manual/reference/method/%s'),
        'db.collection.find',
        'https://www.mongodb.com/docs/manual/reference/method/db.collection.find',
        id='template',
    ),
    pytest.param(
        RoleSettings(url='https://github.com/', trailing_slash=True),
        'mongodb/docs',
        'https://github.com/mongodb/docs/',
        id='prefix',
    ),
))
def test_role_render(role: RoleSettings, target: str, expected: str) -> None:
    """Render role targets into URLs."""
    assert role.render(target) == expected
