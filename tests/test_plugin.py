"""Tests for the pytest integration."""

from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from collections.abc import Callable

    from pytest import Pytester

PAGE = '''
Passing
=======

#. Say hello.

   .. code-block:: sh

      echo hello

Failing
=======

#. Exit with an error.

   .. code-block:: sh

      exit 3
'''

TABS = '''
Install
=======

#. Pick a platform.

   .. tabs::

      .. tab:: Linux
         :tabid: linux

         .. code-block:: sh

            echo linux

      .. tab:: macOS
         :tabid: macos

         .. code-block:: sh

            echo macos
'''

BROKEN = '''
Broken
======

#. Include a missing file.

   .. include:: /includes/missing.rst
'''

MISSING_TOOLCHAIN = '''
Compile
=======

#. Run the program.

   .. code-block:: go

      package main
'''


@pytest.fixture
def write_page(pytester: 'Pytester') -> 'Callable[..., None]':
    """Provide a factory writing a page into the collected content tree."""
    def write(content: str, name: str = 'page.txt') -> None:
        directory = pytester.path / 'content'
        directory.mkdir(exist_ok=True)
        (directory / name).write_text(content)

    return write


def test_collection_is_opt_in(pytester: 'Pytester', write_page: 'Callable[..., None]') -> None:
    """Collect documentation files only with the collection option."""
    write_page(PAGE)

    result = pytester.runpytest()

    assert result.ret == pytest.ExitCode.NO_TESTS_COLLECTED


def test_run_procedures(pytester: 'Pytester', write_page: 'Callable[..., None]') -> None:
    """Report one item per procedure with failing actions described."""
    write_page(PAGE)

    result = pytester.runpytest('--proctest', '--proctest-no-urls')

    result.assert_outcomes(passed=1, failed=1)
    result.stdout.fnmatch_lines([
        '*Action failed: Exited with code 3*',
        '*in "*page.txt", line *',
    ])


def test_variant_items(pytester: 'Pytester', write_page: 'Callable[..., None]') -> None:
    """Collect one item per variant instance."""
    write_page(TABS)

    result = pytester.runpytest('--proctest', '--collect-only', '-q')

    result.stdout.fnmatch_lines([
        'content/page.txt::Install[[]linux[]]',
        'content/page.txt::Install[[]macos[]]',
    ])


def test_excluded_files(pytester: 'Pytester', write_page: 'Callable[..., None]') -> None:
    """Skip files outside the configured patterns."""
    write_page(PAGE)
    (pytester.path / '.proctest.yml').write_text('test_files:\n  - docs/**/*.txt\n')

    result = pytester.runpytest('--proctest')

    assert result.ret == pytest.ExitCode.NO_TESTS_COLLECTED


def test_unbuildable_procedure(pytester: 'Pytester', write_page: 'Callable[..., None]') -> None:
    """Fail procedures with failed references instead of skipping them."""
    write_page(BROKEN)

    result = pytester.runpytest('--proctest')

    result.assert_outcomes(failed=1)
    result.stdout.fnmatch_lines(['*Procedure cannot be built: Cannot read included file*'])


def test_missing_toolchain(pytester: 'Pytester', write_page: 'Callable[..., None]') -> None:
    """Pass instances whose actions lack an execution environment."""
    write_page(MISSING_TOOLCHAIN)
    (pytester.path / '.proctest.yml').write_text('executors:\n  go:\n    command: proctest-missing-go run {filename}\n')

    result = pytester.runpytest('--proctest')

    result.assert_outcomes(passed=1)


def test_invalid_configuration(pytester: 'Pytester', write_page: 'Callable[..., None]') -> None:
    """Refuse to run with invalid project settings."""
    write_page(PAGE)

    result = pytester.runpytest('--proctest', '--proctest-timeout', '-1')

    assert result.ret != pytest.ExitCode.OK
    assert 'Invalid configuration in' in f'{result.stdout}\n{result.stderr}'
