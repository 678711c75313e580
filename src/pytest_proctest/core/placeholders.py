"""Placeholder resolution.

Documents stand in for configuration-supplied values with placeholders in
three syntaxes:

- angle-bracket tokens: `<connection-string>`;
- double-brace tokens: `{{connectionString}}`;
- source-constant tokens: `{+api-version+}`.

Every placeholder is canonicalized (naming-convention variants collapse to
one snake_case identity), mapped through an alias table of known synonyms,
and looked up in the environment bindings and the source constants of the
run configuration.

Unresolved placeholders are reported, never passed through silently: the
caller fails the containing action.
"""

from collections.abc import Mapping
from re import Match
from re import compile as regexp
from typing import Literal
from urllib.parse import urlsplit, urlunsplit

from pydantic import Field

from pytest_proctest.models import SchemaModel

#: Where a binding value came from.
type BindingSource = Literal['env', 'constants', 'alias']

#: Syntaxes of recognized placeholders.
type PlaceholderSyntax = Literal['angle', 'template', 'constant']

#: Known synonyms mapped to one canonical binding name.
DEFAULT_ALIASES: dict[str, str] = {
    'atlas_connection_string': 'connection_string',
    'atlas_uri': 'connection_string',
    'cluster_uri': 'connection_string',
    'conn_str': 'connection_string',
    'conn_string': 'connection_string',
    'connection_str': 'connection_string',
    'connection_uri': 'connection_string',
    'connectionstring': 'connection_string',
    'mongo_uri': 'connection_string',
    'mongodb_connection_string': 'connection_string',
    'mongodb_uri': 'connection_string',
    'uri': 'connection_string',
    'your_connection_string': 'connection_string',
    'db_password': 'password',
    'db_user': 'username',
    'db_username': 'username',
    'user': 'username',
    'your_password': 'password',
    'your_username': 'username',
}

#: Tag names never treated as angle-bracket placeholders.
HTML_TAGS = frozenset({
    'a', 'b', 'body', 'br', 'code', 'div', 'em', 'h1', 'h2', 'h3', 'head',
    'hr', 'html', 'i', 'img', 'li', 'ol', 'p', 'pre', 'script', 'span',
    'strong', 'style', 'table', 'td', 'th', 'tr', 'u', 'ul',
})

PLACEHOLDER_PATTERN = regexp(
    r'(?:'
    r'\{\+(?P<constant>[\w .-]+?)\+\}'
    r'|\{\{\s*(?P<template>[\w .-]+?)\s*\}\}'
    r'|(?<![\w<])<(?P<angle>[A-Za-z][\w .-]*?)>'
    r')'
    r'(?P<segment>/[A-Za-z_][\w.-]*)?',
)

#: Identity of the connection string binding.
CONNECTION_IDENTITY = 'connection_string'

#: URI schemes of database connection strings.
CONNECTION_SCHEMES = frozenset({'mongodb', 'mongodb+srv'})

_ACRONYM_BOUNDARY = regexp(r'([A-Z]+)([A-Z][a-z])')
_CAMEL_BOUNDARY = regexp(r'([a-z0-9])([A-Z])')
_SEPARATORS = regexp(r'[-\s.]+')
_UNDERSCORES = regexp(r'_+')


def canonicalize(name: str) -> str:
    """Collapse kebab, camel, space and snake case spellings to one identity.

    Examples:
        >>> canonicalize('connectionString')
        'connection_string'
        >>> canonicalize('Connection String')
        'connection_string'
    """
    name = _ACRONYM_BOUNDARY.sub(r'\1_\2', name.strip())
    name = _CAMEL_BOUNDARY.sub(r'\1_\2', name)
    name = _SEPARATORS.sub('_', name.lower())

    return _UNDERSCORES.sub('_', name).strip('_')


def insert_path(uri: str, segment: str) -> str:
    """Put a path segment into a connection URI exactly once.

    The query string is kept. A URI that already names a path is left
    unchanged.
    """
    parts = urlsplit(uri)
    if parts.path.strip('/'):
        return uri

    return urlunsplit(parts._replace(path=f'/{segment}'))


def is_connection_string(identity: str, value: str) -> bool:
    """Whether a bound value is a database connection URI.

    Other URLs, such as API base URLs, keep the segments written after
    their placeholder.
    """
    if identity == CONNECTION_IDENTITY:
        return True

    return urlsplit(value).scheme.lower() in CONNECTION_SCHEMES


class PlaceholderBinding(SchemaModel):
    """Resolved value of a canonical placeholder identity."""

    identity: str = Field(
        title='Canonical identity',
    )
    value: str = Field(
        title='Resolved value',
    )
    source: BindingSource = Field(
        title='Binding source',
        description='`alias` when the identity was reached through the alias table.',
    )


class Resolution(SchemaModel):
    """Outcome of resolving placeholders in one text."""

    text: str
    bindings: tuple[PlaceholderBinding, ...] = ()
    unresolved: tuple[str, ...] = ()

    @property
    def resolved(self) -> bool:
        """Whether every placeholder was bound."""
        return not self.unresolved


class PlaceholderResolver:
    """Resolver of placeholders against an immutable configuration."""

    def __init__(self, env: Mapping[str, str] | None = None,
                 constants: Mapping[str, str] | None = None,
                 aliases: Mapping[str, str] | None = None) -> None:
        """Initialize the resolver.

        Binding keys are canonicalized the same way placeholders are,
        so `CONNECTION_STRING` in an environment file binds
        `<connection-string>`.

        Args:
            env: Environment bindings.
            constants: Source constants.
            aliases: Extra synonyms extending the default alias table.
        """
        self.env = {canonicalize(key): value for key, value in (env or {}).items()}
        self.constants = {canonicalize(key): value for key, value in (constants or {}).items()}

        self.aliases = dict(DEFAULT_ALIASES)
        self.aliases.update({
            canonicalize(key): canonicalize(value)
            for key, value in (aliases or {}).items()
        })

    def lookup(self, name: str, syntax: PlaceholderSyntax = 'angle') -> tuple[str, PlaceholderBinding | None]:
        """Look up one placeholder name.

        Source constants are consulted first for `{+name+}` tokens;
        environment bindings are consulted first otherwise.

        Returns:
            The canonical identity and its binding, if any.
        """
        canonical = canonicalize(name)
        identity = self.aliases.get(canonical, canonical)

        tables: tuple[tuple[BindingSource, dict[str, str]], ...] = (
            ('env', self.env),
            ('constants', self.constants),
        )
        if syntax == 'constant':
            tables = tables[::-1]

        for candidate in dict.fromkeys((identity, canonical)):
            for source, table in tables:
                if candidate not in table:
                    continue
                return identity, PlaceholderBinding(
                    identity=identity,
                    value=table[candidate],
                    source='alias' if identity != canonical else source,
                )

        return identity, None

    def resolve(self, text: str) -> Resolution:
        """Substitute every recognized placeholder in a text.

        When a connection string is substituted right before a `/segment`
        in the text, the segment is moved into the URI path (keeping any
        query string) instead of being appended after it. Resolving an
        already substituted text is a no-op.

        Args:
            text: Literal text of an action.

        Returns:
            The substituted text with the bindings used and the canonical
            identities that could not be resolved.
        """
        bindings: dict[str, PlaceholderBinding] = {}
        unresolved: dict[str, None] = {}

        def replace(match: Match[str]) -> str:
            syntax: PlaceholderSyntax
            for syntax in ('constant', 'template', 'angle'):
                if (name := match[syntax]) is not None:
                    break

            if syntax == 'angle' and name.strip().lower() in HTML_TAGS:
                return match[0]

            identity, binding = self.lookup(name, syntax)
            if binding is None:
                unresolved[identity] = None
                return match[0]

            bindings.setdefault(identity, binding)

            segment = match['segment'] or ''
            if segment and is_connection_string(identity, binding.value):
                return insert_path(binding.value, segment[1:])

            return f'{binding.value}{segment}'

        result = PLACEHOLDER_PATTERN.sub(replace, text)

        return Resolution(
            text=result,
            bindings=tuple(bindings.values()),
            unresolved=tuple(unresolved),
        )
