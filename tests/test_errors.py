"""Tests for error formatting."""

import pytest

from pytest_proctest.errors import EXCERPT_LINES, ErrorContext, ErrorFormatter, ProcTestError, TransclusionError
from pytest_proctest.schema import SourceLocation


def test_format_without_context() -> None:
    """Keep bare messages unchanged."""
    assert ErrorFormatter.format('Nothing to run') == 'Nothing to run'
    assert f'{ProcTestError("Nothing to run")}' == 'Nothing to run'


def test_format_failed_action() -> None:
    """Render location, source excerpt and observed values."""
    message = ErrorFormatter.format('Action failed: Exited with code 1', ErrorContext(
        filename='install.txt',
        line_num=11,
        step_num=1,
        action_num=0,
        source='mkdir data\nexit 1\n',
        details={
            'exit_code': 1,
            'stdout': '',
            'stderr': 'permission denied',
        },
    ))

    assert message.splitlines() == [
        'Action failed: Exited with code 1',
        '    in "install.txt", line 12, step 2, action 1',
        '        | mkdir data',
        '        | exit 1',
        '        exit_code: 1',
        '        stderr: permission denied',
    ]


def test_format_multiline_details() -> None:
    """Write multi-line values as literal blocks."""
    message = ErrorFormatter.format('Action failed', ErrorContext(
        details={'stderr': 'Traceback (most recent call last):\nNameError: x'},
    ))

    assert message.splitlines() == [
        'Action failed',
        '    in "<unknown document>"',
        '        stderr: |-',
        '          Traceback (most recent call last):',
        '          NameError: x',
    ]


def test_excerpt_is_truncated() -> None:
    """Cut long sources short."""
    excerpt = ErrorFormatter.get_excerpt('\n'.join(f'print({num})' for num in range(EXCERPT_LINES * 2)))

    assert len(excerpt) == EXCERPT_LINES + 1
    assert excerpt[0] == '| print(0)'
    assert excerpt[-1] == '| ...'


def test_error_from_location() -> None:
    """Attach the location and the underlying error."""
    location = SourceLocation(filename='index.txt', line_start=3, line_end=3)

    error = TransclusionError.from_location(
        'Cannot read included file /includes/steps.rst',
        location,
        error=FileNotFoundError('No such file'),
    )

    assert error.filename == 'index.txt'
    assert error.line_num == 3
    assert f'{error}'.splitlines() == [
        'Cannot read included file /includes/steps.rst',
        '    in "index.txt", line 4',
        '    caused by FileNotFoundError: No such file',
    ]

    with pytest.raises(TransclusionError, match=r'^Cannot read included file'):
        raise error
