"""Tests for placeholder resolution."""

import pytest

from pytest_proctest.core.placeholders import PlaceholderResolver, canonicalize, insert_path

URI = 'mongodb+srv://u:p@c.mongodb.net'


@pytest.mark.parametrize('name', (
    pytest.param('connection-string', id='kebab'),
    pytest.param('connectionString', id='camel'),
    pytest.param('Connection String', id='spaces'),
    pytest.param('connection_string', id='snake'),
    pytest.param('CONNECTION_STRING', id='upper'),
))
def test_canonicalize(name: str) -> None:
    """Collapse naming-convention variants to one identity."""
    assert canonicalize(name) == 'connection_string'


def test_canonicalize_acronyms() -> None:
    """Split acronyms from the following word."""
    assert canonicalize('MongoDBUri') == 'mongo_db_uri'
    assert canonicalize('apiKey') == 'api_key'


@pytest.mark.parametrize('text, expected', (
    pytest.param('mongosh "<connection-string>"', f'mongosh "{URI}"', id='angle'),
    pytest.param('uri = "{{connectionString}}"', f'uri = "{URI}"', id='template'),
    pytest.param('uri = "{{ connection_string }}"', f'uri = "{URI}"', id='template spaces'),
    pytest.param('mongosh "<your-connection-string>"', f'mongosh "{URI}"', id='synonym'),
    pytest.param('MongoClient("<MONGODB_URI>")', f'MongoClient("{URI}")', id='synonym upper'),
))
def test_resolve_syntaxes(text: str, expected: str) -> None:
    """Substitute every placeholder syntax and synonym."""
    resolver = PlaceholderResolver({'CONNECTION_STRING': URI})

    resolution = resolver.resolve(text)

    assert resolution.resolved
    assert resolution.text == expected
    assert [binding.identity for binding in resolution.bindings] == ['connection_string']


def test_resolve_constants() -> None:
    """Substitute source constants, preferring them for constant tokens."""
    resolver = PlaceholderResolver(
        {'version': 'from-env'},
        {'version': '8.0', 'package-name': 'mongodb-org'},
    )

    resolution = resolver.resolve('apt install {+package-name+}={+version+} # <version>')

    assert resolution.text == 'apt install mongodb-org=8.0 # from-env'
    assert {binding.source for binding in resolution.bindings} == {'constants'}


def test_connection_string_admin_segment() -> None:
    """Move a trailing database segment into the connection URI exactly once."""
    resolver = PlaceholderResolver({'CONNECTION_STRING': URI})

    resolution = resolver.resolve('mongosh "<connection-string>/admin"')

    assert resolution.text == f'mongosh "{URI}/admin"'
    assert resolver.resolve(resolution.text).text == resolution.text


def test_connection_string_query() -> None:
    """Keep the query string of a connection URI after the inserted segment."""
    resolver = PlaceholderResolver({'CONNECTION_STRING': f'{URI}/?retryWrites=true'})

    resolution = resolver.resolve('<connection-string>/admin')

    assert resolution.text == f'{URI}/admin?retryWrites=true'


def test_connection_string_with_path() -> None:
    """Keep a URI that already names a database."""
    resolver = PlaceholderResolver({'CONNECTION_STRING': f'{URI}/sales'})

    assert resolver.resolve('<connection-string>/admin').text == f'{URI}/sales'


def test_plain_value_keeps_segment() -> None:
    """Append a path segment after values that are not URIs."""
    resolver = PlaceholderResolver({'HOST': 'localhost'})

    assert resolver.resolve('curl http://<host>/status').text == 'curl http://localhost/status'


@pytest.mark.parametrize('env, text, expected', (
    pytest.param(
        {'API_BASE_URL': 'https://api.example.com/v1'},
        'curl <api-base-url>/users',
        'curl https://api.example.com/v1/users',
        id='url with path',
    ),
    pytest.param(
        {'SERVICE_URL': 'http://localhost:8080'},
        'curl {{serviceUrl}}/health',
        'curl http://localhost:8080/health',
        id='url without path',
    ),
    pytest.param(
        {'CLUSTER_ADDRESS': f'{URI}/sales'},
        '<cluster-address>/admin',
        f'{URI}/sales',
        id='database scheme',
    ),
))
def test_segment_after_url(env: dict[str, str], text: str, expected: str) -> None:
    """Move segments into connection strings only, appending them to other URLs."""
    assert PlaceholderResolver(env).resolve(text).text == expected


def test_unresolved_placeholders() -> None:
    """Report unbound placeholders instead of passing them through."""
    resolver = PlaceholderResolver({'USERNAME': 'alice'})

    resolution = resolver.resolve('<user>:<password>@{{clusterName}}')

    assert not resolution.resolved
    assert resolution.unresolved == ('password', 'cluster_name')
    assert resolution.text == 'alice:<password>@{{clusterName}}'
    assert resolution.bindings[0].source == 'alias'


def test_html_tags_are_not_placeholders() -> None:
    """Leave markup tags untouched."""
    resolution = PlaceholderResolver().resolve('<p>Hello</p> <br>')

    assert resolution.resolved
    assert resolution.text == '<p>Hello</p> <br>'


def test_configured_aliases() -> None:
    """Extend the alias table from configuration."""
    resolver = PlaceholderResolver({'API_KEY': 'secret'}, aliases={'publicKey': 'api-key'})

    assert resolver.resolve('--key <public-key>').text == '--key secret'


@pytest.mark.parametrize('uri, expected', (
    pytest.param('mongodb://localhost:27017', 'mongodb://localhost:27017/admin', id='bare'),
    pytest.param('mongodb://localhost/', 'mongodb://localhost/admin', id='slash'),
    pytest.param('mongodb://localhost/?tls=true', 'mongodb://localhost/admin?tls=true', id='query'),
    pytest.param('mongodb://localhost/test', 'mongodb://localhost/test', id='path'),
))
def test_insert_path(uri: str, expected: str) -> None:
    """Insert a path segment into a URI without a path."""
    assert insert_path(uri, 'admin') == expected
