"""Tests for per-step execution state."""

import pytest

from pytest_proctest.core.context import StepContext


def test_prelude_accumulates_per_language() -> None:
    """Replay successful units of the same language only."""
    context = StepContext()

    context.succeed('python', 'x = 1')
    context.succeed('javascript', 'const y = 2;')
    context.succeed('python', 'z = x + 1')

    assert context.prelude('python') == 'x = 1\nz = x + 1'
    assert context.prelude('javascript') == 'const y = 2;'
    assert context.prelude('go') == ''
    assert context.defined == {'x', 'y', 'z'}


def test_shell_prelude_keeps_state_lines() -> None:
    """Carry shell assignments forward without repeating commands."""
    context = StepContext()

    context.succeed('shell', 'export API_KEY=secret\necho "$API_KEY"\ncd /tmp\nmkdir data')
    context.succeed('shell', 'rm -rf data')

    assert context.prelude('shell') == 'export API_KEY=secret\ncd /tmp'
    assert context.defined == {'API_KEY'}


def test_code_prelude_keeps_definitions() -> None:
    """Carry imports and definitions forward without repeating side effects."""
    context = StepContext()

    context.succeed('python', (
        'import pymongo\n'
        'client = pymongo.MongoClient(uri)\n'
        'collection = client.test.movies\n'
        'collection.insert_one({\n'
        '    "title": "Jaws",\n'
        '    "year": 1975,\n'
        '})\n'
        'print("inserted")\n'
        '\n'
        '@retry\n'
        'def find(title):\n'
        '    return collection.find_one({"title": title})\n'
        '\n'
        'for movie in collection.find():\n'
        '    total = 1\n'
    ))
    context.succeed('javascript', 'const db = client.db("test");\nawait db.movies.insertOne({ title: "Jaws" });')

    assert context.prelude('python') == (
        'import pymongo\n'
        'client = pymongo.MongoClient(uri)\n'
        'collection = client.test.movies\n'
        '@retry\n'
        'def find(title):\n'
        '    return collection.find_one({"title": title})'
    )
    assert context.prelude('javascript') == 'const db = client.db("test");'
    assert {'client', 'collection', 'find', 'db'} <= context.defined


def test_failed_definitions_are_unsatisfied() -> None:
    """Report names that only a failed unit would have defined."""
    context = StepContext()

    context.fail('python', 'client = connect()')

    assert context.unsatisfied('python', 'client.close()') == {'client'}
    assert context.unsatisfied('python', 'print(1)') == set()
    assert context.unsatisfied('python', 'client = reconnect()\nclient.close()') == set()


def test_failure_keeps_earlier_definitions() -> None:
    """Keep names defined by an earlier successful unit available."""
    context = StepContext()

    context.succeed('python', 'x = 1')
    context.fail('python', 'x = 2\ny = x')

    assert context.unsatisfied('python', 'print(x)') == set()
    assert context.unsatisfied('python', 'print(y)') == {'y'}
    assert context.prelude('python') == 'x = 1'


@pytest.mark.parametrize('language, failed, source, missing', (
    pytest.param('shell', 'export TOKEN=abc', 'curl -H "$TOKEN" localhost', 'TOKEN', id='shell'),
    pytest.param('bash', 'declare -x TOKEN=abc', 'echo ${TOKEN}', 'TOKEN', id='bash'),
    pytest.param('go', 'client := connect()', 'client.Close()', 'client', id='go'),
))
def test_unsatisfied_across_languages(language: str, failed: str, source: str, missing: str) -> None:
    """Detect unsatisfied names with language-specific definitions."""
    context = StepContext()

    context.fail(language, failed)

    assert context.unsatisfied(language, source) == {missing}


def test_environment_is_copied() -> None:
    """Isolate step environments from the given bindings."""
    env = {'CONNECTION_STRING': 'mongodb://localhost'}

    context = StepContext(env)
    context.env['API_KEY'] = 'secret'

    assert env == {'CONNECTION_STRING': 'mongodb://localhost'}
    assert StepContext().env == {}
