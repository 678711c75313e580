"""Command-line utilities for pytest-proctest.

The commands run documented procedures outside of pytest and print the
result tree as JSON, list the procedure instances of documentation
files, and print the JSON Schema of the result tree or the project file.
"""

import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

from click import Choice, ClickException, argument, echo, group, option
from click import Path as PathParam

from pytest_proctest.config import Configuration
from pytest_proctest.core import DocumentParser, Orchestrator
from pytest_proctest.errors import ProcTestError, VariantResolutionError
from pytest_proctest.jsonschema import SchemaGenerator

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

if TYPE_CHECKING:
    from pytest_proctest.schema import ProcedureInstance

LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s: %(message)s'

InputPath = PathParam(
    exists=True,
    readable=True,
    path_type=Path,
)


def run_options[F: Callable[..., Any]](command: F) -> F:
    """Attach options shared by commands reading documentation."""
    decorators = (
        option(
            '-r', '--root',
            type=PathParam(file_okay=False, path_type=Path),
            default=Path(),
            show_default=True,
            help='Root directory of the documentation project.',
        ),
        option(
            '-c', '--config',
            type=PathParam(dir_okay=False, exists=True, path_type=Path),
            default=None,
            help='Project file to use instead of `.proctest.yml` of the root directory.',
        ),
        option(
            '--timeout',
            type=float,
            default=None,
            help='Default timeout of a single action in seconds.',
        ),
        option(
            '--cleanup',
            type=Choice(['warn', 'block']),
            default=None,
            help='Cleanup failure policy.',
        ),
        option(
            '--no-urls',
            is_flag=True,
            default=False,
            help='Do not check hyperlinks of procedure steps.',
        ),
        option(
            '--relaxed',
            is_flag=True,
            default=False,
            help='Disable strict plugin loading.',
        ),
    )

    for decorator in reversed(decorators):
        command = decorator(command)

    return command


def load_configuration(root: Path, config: Path | None, *,  # noqa: PLR0913
                       timeout: float | None = None,
                       cleanup: str | None = None,
                       no_urls: bool = False,
                       relaxed: bool = False) -> Configuration:
    """Resolve the run configuration from command-line options.

    Raises:
        ClickException: If the configuration is invalid.
    """
    overrides: dict[str, Any] = {}
    if timeout is not None:
        overrides['timeout'] = timeout
    if cleanup is not None:
        overrides['cleanup'] = {'policy': cleanup}
    if no_urls:
        overrides['check_urls'] = False
    if relaxed:
        overrides['strict'] = False

    try:
        return Configuration.load(root.resolve(), config, **overrides)
    except ProcTestError as error:
        raise ClickException(error.message) from error


def documents(paths: 'Iterable[Path]', configuration: Configuration) -> list[Path]:
    """Expand directories into the documentation files they collect."""
    files: list[Path] = []

    for path in paths:
        if path.is_dir():
            files.extend(
                candidate
                for candidate in sorted(path.rglob('*'))
                if candidate.is_file() and configuration.collects(candidate)
            )
        else:
            files.append(path)

    return files


def collect(parser: DocumentParser, paths: 'Iterable[Path]') -> tuple[list['ProcedureInstance'], int]:
    """Parse files and expand their procedures.

    Problems are printed to standard error.

    Returns:
        Instances in document and dimension-key order, and the number
        of procedures that could not be built or expanded.
    """
    instances: list[ProcedureInstance] = []
    broken = 0

    for path in paths:
        try:
            procedures, errors = parser.parse_file(path)
        except ProcTestError as error:
            echo(f'{error}', err=True)
            broken += 1
            continue

        for error in errors:
            echo(f'warning: {type(error).__name__}: {error}', err=True)

        for procedure in procedures:
            if procedure.error is not None:
                echo(f'{path}: {procedure.name}: cannot be built: {procedure.error}', err=True)
                broken += 1
                continue

            try:
                instances.extend(parser.instances(procedure))
            except VariantResolutionError as error:
                echo(f'{error}', err=True)
                broken += 1

    return instances, broken


@group(help='Command-line utilities for pytest-proctest.')
@option(
    '-v', '--verbose',
    count=True,
    help='Log progress to standard error; repeat for debug output.',
)
def cli(verbose: int) -> None:
    """Root CLI group for pytest-proctest tools."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG if verbose > 1 else logging.INFO,
            format=LOG_FORMAT,
            stream=sys.stderr,
        )


@cli.command(
    name='run',
    help='Run the procedures of documentation files and print the JSON result tree.',
)
@run_options
@argument('paths', nargs=-1, required=True, type=InputPath)
def run_procedures(paths: tuple[Path, ...], root: Path, config: Path | None,  # noqa: PLR0913
                   timeout: float | None, cleanup: str | None,
                   no_urls: bool, relaxed: bool) -> None:
    """Run procedures and exit with a non-zero status on failure."""
    configuration = load_configuration(
        root, config,
        timeout=timeout,
        cleanup=cleanup,
        no_urls=no_urls,
        relaxed=relaxed,
    )

    try:
        parser = DocumentParser.from_configuration(configuration)
        orchestrator = Orchestrator(configuration)
    except ProcTestError as error:
        raise ClickException(error.message) from error

    instances, broken = collect(parser, documents(paths, configuration))
    result = orchestrator.run(instances)

    echo(result.model_dump_json(indent=2))

    if broken or result.status == 'failed':
        sys.exit(1)


@cli.command(
    name='list',
    help='List the procedure instances of documentation files.',
)
@run_options
@argument('paths', nargs=-1, required=True, type=InputPath)
def list_procedures(paths: tuple[Path, ...], root: Path, config: Path | None,  # noqa: PLR0913
                    timeout: float | None, cleanup: str | None,
                    no_urls: bool, relaxed: bool) -> None:
    """Print one line per procedure instance."""
    configuration = load_configuration(
        root, config,
        timeout=timeout,
        cleanup=cleanup,
        no_urls=no_urls,
        relaxed=relaxed,
    )
    parser = DocumentParser.from_configuration(configuration)

    instances, broken = collect(parser, documents(paths, configuration))
    for instance in instances:
        location = instance.procedure.location
        echo(f'{location.filename}:{location.line_start + 1}: {instance.name}')

    if broken:
        sys.exit(1)


@cli.command(
    name='schema',
    help='Print the JSON Schema of the result tree or the project file.',
)
@option(
    '-t', '--target',
    type=Choice(['results', 'config']),
    default='results',
    show_default=True,
    help='Document to describe.',
)
def print_schema(target: str) -> None:
    """Generate and print the JSON Schema."""
    echo(SchemaGenerator.make_schema(target))  # type: ignore[arg-type]


if __name__ == '__main__':
    cli()
