"""Run configuration.

Settings are resolved once per run, in priority order, from explicit
values (command-line options), `PROCTEST_*` environment variables, and
the YAML project file `.proctest.yml`.

The resolved settings are combined with the environment bindings read
from environment files and the source constants of the documentation
project into one immutable `Configuration` object. That object is
threaded by reference into the placeholder resolver and the orchestrator;
nothing reads process-wide state afterwards.
"""

from fnmatch import fnmatch
from pathlib import Path
from tomllib import TOMLDecodeError
from tomllib import loads as toml_loads
from typing import TYPE_CHECKING, Any, Literal, Self

from dotenv import dotenv_values
from pydantic import Field, ValidationError
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from pytest_proctest.core.classifier import CLI_TOOLS
from pytest_proctest.errors import ConfigurationError
from pytest_proctest.models import SchemaModel, SettingsModel

if TYPE_CHECKING:
    from collections.abc import Iterable

#: Project file looked up in the root directory of a run.
CONFIG_FILENAME = '.proctest.yml'

#: Cleanup failure policies.
type CleanupPolicy = Literal['warn', 'block']


class ExecutorSettings(SchemaModel):
    """Per-language executor overrides."""

    command: str | None = Field(
        default=None,
        title='Command template',
        description=(
            'Command running a program file. Supports `{filename}`, '
            '`{basename}` and `{classname}` interpolation.'
        ),
        examples=[
            'python3 {filename}',
            'node {filename}',
        ],
    )
    timeout: float | None = Field(
        default=None,
        gt=0,
        title='Timeout in seconds',
    )
    env: dict[str, str] = Field(
        default_factory=dict,
        title='Extra environment',
    )


class CleanupSettings(SchemaModel):
    """Cleanup obligation handling."""

    policy: CleanupPolicy = Field(
        default='warn',
        title='Cleanup failure policy',
        description='`block` reports the following instances as blocked.',
    )
    keep_on_failure: bool = Field(
        default=False,
        title='Keep working directory of failed instances',
    )


class RoleSettings(SchemaModel):
    """URL template of an interpreted-text role."""

    url: str = Field(
        title='URL template',
        description='Template where `%s` is replaced by the role target.',
        examples=[
            'https://www.mongodb.com/docs/manual/reference/method/%s',
        ],
    )
    trailing_slash: bool = Field(
        default=False,
        title='Ensure trailing slash',
    )

    def render(self, target: str) -> str:
        """Render the role URL for a target."""
        if '%s' in self.url:
            url = self.url.replace('%s', target)
        else:
            url = f'{self.url}{target}'

        if self.trailing_slash and not url.endswith('/'):
            url += '/'

        return url


class ProjectSettings(SettingsModel):
    """Settings of a documentation project."""

    model_config = SettingsConfigDict(
        env_prefix='PROCTEST_',
        env_nested_delimiter='__',
        yaml_file=CONFIG_FILENAME,
    )

    test_files: tuple[str, ...] = Field(
        default=(
            'content/**/*.txt',
            'content/**/*.rst',
        ),
        title='Collected documents',
        description='Glob patterns of documents collected as tests, relative to the root.',
    )
    exclude: tuple[str, ...] = Field(
        default=(
            '**/node_modules/**',
            '**/build/**',
        ),
        title='Excluded documents',
    )

    env_files: tuple[str, ...] = Field(
        default=(
            '.env',
            '.env.local',
        ),
        title='Environment files',
        description='Files of `KEY=VALUE` bindings; later files override earlier ones.',
    )
    snooty_config: str = Field(
        default='snooty.toml',
        title='Constants file',
        description='Project file whose `[constants]` table holds source constants.',
    )
    source_dir: str | None = Field(
        default=None,
        title='Source directory',
        description='Fallback root for absolute include paths.',
    )

    timeout: float = Field(
        default=30.0,
        gt=0,
        title='Default action timeout in seconds',
    )
    executors: dict[str, ExecutorSettings] = Field(
        default_factory=dict,
        title='Executor overrides by language',
    )
    cleanup: CleanupSettings = Field(
        default_factory=CleanupSettings,
    )

    aliases: dict[str, str] = Field(
        default_factory=dict,
        title='Placeholder synonyms',
        description='Extra placeholder names mapped to canonical binding names.',
    )
    languages: dict[str, str] = Field(
        default_factory=dict,
        title='Language aliases',
        description='Extra language labels mapped to canonical languages.',
    )
    roles: dict[str, RoleSettings] = Field(
        default_factory=dict,
        title='Role table',
    )
    cli_tools: tuple[str, ...] = Field(
        default=tuple(sorted(CLI_TOOLS)),
        title='CLI tools',
    )

    check_urls: bool = Field(
        default=True,
        title='Check hyperlinks',
    )
    strict: bool = Field(
        default=True,
        title='Strict plugin loading',
    )

    @classmethod
    def settings_customise_sources(cls, settings_cls: type[BaseSettings],
                                   init_settings: PydanticBaseSettingsSource,
                                   env_settings: PydanticBaseSettingsSource,
                                   dotenv_settings: PydanticBaseSettingsSource,
                                   file_secret_settings: PydanticBaseSettingsSource,
                                   ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Use explicit values, then environment variables, then the project file."""
        return (
            init_settings,
            env_settings,
            YamlConfigSettingsSource(settings_cls),
        )

    @classmethod
    def from_file(cls, path: Path | str | None = None, *, required: bool = False,
                  **values: Any) -> Self:  # noqa: ANN401
        """Resolve settings reading a specific project file.

        Args:
            path: Project file; `.proctest.yml` of the working directory
                when omitted.
            required: Whether a missing file is an error.
            **values: Explicit values taking precedence over every source.

        Returns:
            Resolved settings.

        Raises:
            ConfigurationError: If an explicit file is missing or any
                source holds invalid values.
        """
        yaml_file = Path(path) if path is not None else Path(CONFIG_FILENAME)
        if required and not yaml_file.is_file():
            raise ConfigurationError(f'Configuration file {yaml_file} not found')

        bound = type(cls.__name__, (cls,), {
            '__module__': cls.__module__,
            'model_config': SettingsConfigDict(yaml_file=yaml_file),
        })

        try:
            return bound(**values)
        except ValidationError as base:
            raise ConfigurationError(f'Invalid configuration in {yaml_file}: {base}') from base


def matches(path: str, patterns: 'Iterable[str]') -> bool:
    """Check a relative POSIX path against glob patterns.

    A `**/` segment also matches no directory at all.
    """
    return any(
        fnmatch(path, pattern) or fnmatch(path, pattern.replace('**/', ''))
        for pattern in patterns
    )


def read_env_files(root: Path, names: tuple[str, ...]) -> dict[str, str]:
    """Read environment bindings from the existing env files."""
    bindings: dict[str, str] = {}

    for name in names:
        path = root / name
        if not path.is_file():
            continue
        bindings.update({
            key: value
            for key, value in dotenv_values(path).items()
            if value is not None
        })

    return bindings


def read_constants(path: Path) -> dict[str, str]:
    """Read source constants from the `[constants]` table of a TOML file.

    Raises:
        ConfigurationError: If the file exists but is not valid TOML.
    """
    if not path.is_file():
        return {}

    try:
        data = toml_loads(path.read_text(encoding='utf-8'))
    except TOMLDecodeError as base:
        raise ConfigurationError(f'Malformed constants file {path}: {base}') from base

    return {
        f'{key}': f'{value}'
        for key, value in data.get('constants', {}).items()
    }


class Configuration(SchemaModel):
    """Immutable run configuration.

    Attributes:
        settings: Resolved project settings.
        root: Root directory of the documentation project.
        env: Environment bindings from environment files.
        constants: Source constants.
    """

    settings: ProjectSettings
    root: Path

    env: dict[str, str] = Field(
        default_factory=dict,
    )
    constants: dict[str, str] = Field(
        default_factory=dict,
    )

    @classmethod
    def load(cls, root: Path | None = None, config_file: Path | str | None = None,
             **values: Any) -> Self:  # noqa: ANN401
        """Build the run configuration of a project root.

        Args:
            root: Project root directory; the working directory by default.
            config_file: Explicit project file.
            **values: Explicit settings overriding every other source.

        Returns:
            Immutable configuration.

        Raises:
            ConfigurationError: On a missing explicit file or invalid values.
        """
        root = root or Path.cwd()

        required = config_file is not None
        path = Path(config_file) if config_file is not None else root / CONFIG_FILENAME

        settings = ProjectSettings.from_file(path, required=required, **values)

        return cls(
            settings=settings,
            root=root,
            env=read_env_files(root, settings.env_files),
            constants=read_constants(root / settings.snooty_config),
        )

    @property
    def roles(self) -> dict[str, RoleSettings]:
        """Role table of the run."""
        return self.settings.roles

    @property
    def source_dir(self) -> Path | None:
        """Fallback root for absolute include paths."""
        if self.settings.source_dir is None:
            return None

        return self.root / self.settings.source_dir

    def executor(self, language: str) -> ExecutorSettings:
        """Executor overrides for a language."""
        return self.settings.executors.get(language, ExecutorSettings())

    def timeout(self, language: str) -> float:
        """Effective action timeout for a language."""
        return self.executor(language).timeout or self.settings.timeout

    def collects(self, path: Path) -> bool:
        """Check whether a documentation file is collected by the run.

        The path must be inside the root and match a `test_files`
        pattern but no `exclude` pattern.
        """
        try:
            relative = path.resolve().relative_to(self.root.resolve()).as_posix()
        except ValueError:
            return False

        return (
            matches(relative, self.settings.test_files)
            and not matches(relative, self.settings.exclude)
        )
