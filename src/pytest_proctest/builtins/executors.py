"""Builtin executors.

Language executors write the program of a unit into the working directory
of the instance and run a command template through `/bin/sh`. A command
template may use `{filename}`, `{basename}` and `{classname}`; every
template can be overridden per language in the project settings.

The URL executor issues a HEAD request (falling back to GET when the
server refuses HEAD) and passes for any final status below 400.
"""

import logging
from contextlib import suppress
from os import environ, killpg
from re import compile as regexp
from shlex import quote, split
from shutil import which
from signal import SIGKILL
from subprocess import PIPE, Popen, TimeoutExpired
from time import perf_counter
from typing import TYPE_CHECKING

import httpx

from pytest_proctest.errors import PrerequisiteMissing
from pytest_proctest.extensions import Executor
from pytest_proctest.names import first_command
from pytest_proctest.schema import ExecutionOutcome, ExecutionRequest

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

if TYPE_CHECKING:
    from pytest_proctest.extensions import ExecutorCheck, ExecutorRunner

logger = logging.getLogger(__name__)

#: Shell used to interpret command templates.
SHELL = '/bin/sh'

#: Default command templates by canonical language.
DEFAULT_COMMANDS: dict[str, str] = {
    'bash': 'bash {filename}',
    'c': 'gcc {filename} -o {basename} && ./{basename}',
    'cpp': 'g++ {filename} -o {basename} && ./{basename}',
    'go': 'go run {filename}',
    'java': 'java {filename}',
    'javascript': 'node {filename}',
    'php': 'php {filename}',
    'python': 'python3 {filename}',
    'ruby': 'ruby {filename}',
    'rust': 'rustc {filename} -o {basename} && ./{basename}',
    'shell': 'sh {filename}',
    'typescript': 'npx --no-install tsx {filename}',
}

#: Program file extensions by canonical language.
EXTENSIONS: dict[str, str] = {
    'bash': '.sh',
    'c': '.c',
    'cpp': '.cpp',
    'go': '.go',
    'java': '.java',
    'javascript': '.js',
    'php': '.php',
    'python': '.py',
    'ruby': '.rb',
    'rust': '.rs',
    'shell': '.sh',
    'typescript': '.ts',
}

#: Languages whose units also serve `cli` actions.
SHELL_LANGUAGES = ('shell', 'bash')

#: Languages whose program file is named after its public class.
CLASS_LANGUAGES = frozenset({'java'})

CLASS_PATTERN = regexp(r'\bpublic\s+(?:final\s+)?class\s+(?P<name>\w+)')

#: File name stem of written programs.
PROGRAM_BASENAME = 'snippet'

#: Status codes meaning a server does not accept HEAD requests.
HEAD_REFUSED = frozenset({405, 501})


def run_command(request: ExecutionRequest, command: str, extension: str) -> ExecutionOutcome:
    """Write the program of a unit and run a command template on it.

    Args:
        request: Unit to run.
        command: Command template.
        extension: Program file extension.

    Returns:
        Observed outcome. Timeouts kill the whole process group.
    """
    program = request.program

    basename = PROGRAM_BASENAME
    classname = 'Main'
    if match := CLASS_PATTERN.search(program):
        classname = match['name']
    if request.language in CLASS_LANGUAGES:
        basename = classname

    path = request.workdir / f'{basename}{extension}'
    path.write_text(f'{program}\n', encoding='utf-8')

    argv = command.format(
        filename=quote(f'{path}'),
        basename=quote(basename),
        classname=quote(classname),
    )
    logger.debug('Running %r in %s', argv, request.workdir)

    started = perf_counter()
    try:
        process = Popen(  # noqa: S603
            [SHELL, '-c', argv],
            cwd=request.workdir,
            env={**environ, **request.env},
            stdout=PIPE,
            stderr=PIPE,
            text=True,
            start_new_session=True,
        )

    except OSError as error:
        return ExecutionOutcome(
            error=f'{error}',
            duration=perf_counter() - started,
        )

    with process:
        try:
            stdout, stderr = process.communicate(timeout=request.timeout)

        except TimeoutExpired:
            # Kill the whole session: children of the shell hold the pipes.
            with suppress(ProcessLookupError):
                killpg(process.pid, SIGKILL)
            stdout, stderr = process.communicate()

            return ExecutionOutcome(
                timed_out=True,
                error=f'Timed out after {request.timeout:g}s',
                stdout=stdout,
                stderr=stderr,
                duration=perf_counter() - started,
            )

    return ExecutionOutcome(
        exit_code=process.returncode,
        stdout=stdout,
        stderr=stderr,
        duration=perf_counter() - started,
    )


def program_check(command: str) -> 'ExecutorCheck':
    """Build a check verifying that the first program of a command exists."""
    program = split(command)[0] if command.strip() else ''

    def check() -> bool:
        return bool(program) and which(program) is not None

    return check


def command_runner(command: str, extension: str) -> 'ExecutorRunner':
    """Build a runner for a command template."""
    def runner(request: ExecutionRequest) -> ExecutionOutcome:
        return run_command(request, command, extension)

    return runner


def cli_runner(command: str, extension: str) -> 'ExecutorRunner':
    """Build a runner for CLI actions that requires the invoked tool."""
    def runner(request: ExecutionRequest) -> ExecutionOutcome:
        tool = first_command(request.source)
        if tool is not None and which(tool) is None:
            raise PrerequisiteMissing(f'Command-line tool {tool!r} is not installed')

        return run_command(request, command, extension)

    return runner


def language_executor(language: str, command: str | None = None) -> Executor:
    """Build the subprocess executor of a language.

    Args:
        language: Canonical language.
        command: Command template overriding the default one.

    Returns:
        Executor serving `code` units of the language; shell languages
        also serve `shell` and `cli` units.
    """
    command = command or DEFAULT_COMMANDS[language]
    extension = EXTENSIONS.get(language, '.txt')

    kinds: tuple[str, ...] = ('code',)
    if language in SHELL_LANGUAGES:
        kinds = ('shell', 'code')

    return Executor(
        name=language,
        kinds=kinds,
        languages=(language,),
        runner=command_runner(command, extension),
        check=program_check(command),
    )


def cli_executor(language: str, command: str | None = None) -> Executor:
    """Build the executor of `cli` units written in a shell language."""
    command = command or DEFAULT_COMMANDS[language]

    return Executor(
        name=f'{language}-cli',
        kinds=('cli',),
        languages=(language,),
        runner=cli_runner(command, EXTENSIONS[language]),
        check=program_check(command),
    )


def check_url(request: ExecutionRequest) -> ExecutionOutcome:
    """Check that a URL answers with a status below 400."""
    target = request.source.strip()
    logger.debug('Checking %s', target)

    started = perf_counter()
    try:
        with httpx.Client(follow_redirects=True, timeout=request.timeout) as client:
            response = client.head(target)
            if response.status_code in HEAD_REFUSED:
                response = client.get(target)

    except httpx.TimeoutException:
        return ExecutionOutcome(
            timed_out=True,
            error=f'Timed out after {request.timeout:g}s',
            duration=perf_counter() - started,
        )

    except httpx.HTTPError as error:
        return ExecutionOutcome(
            error=f'{type(error).__name__}: {error}',
            duration=perf_counter() - started,
        )

    return ExecutionOutcome(
        status_code=response.status_code,
        duration=perf_counter() - started,
    )


#: Executor of `url` actions.
url = Executor(
    name='url',
    kinds=('url',),
    runner=check_url,
)


def default_executors(commands: 'Mapping[str, str | None] | None' = None,
                      languages: 'Iterable[str] | None' = None) -> list[Executor]:
    """Build all builtin executors.

    Args:
        commands: Command template overrides by language.
        languages: Languages to build executors for; all known by default.

    Returns:
        Builtin executors, URL executor first.
    """
    commands = commands or {}

    executors = [url]
    for language in languages or dict.fromkeys((*DEFAULT_COMMANDS, *commands)):
        if not (commands.get(language) or language in DEFAULT_COMMANDS):
            continue
        executors.append(language_executor(language, commands.get(language)))
        if language in SHELL_LANGUAGES:
            executors.append(cli_executor(language, commands.get(language)))

    return executors
