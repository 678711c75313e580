"""Markup name primitives and recognition patterns.

This module defines the regular expressions used by the directive parser
to recognize block constructs, and strongly-typed aliases for identifiers
that appear in documents (directive names, tab identifiers, languages).

The rules defined here form part of the public markup contract and are
relied upon by the parser, the procedure builder, plugins, and tests.
"""

from pathlib import PurePosixPath
from re import ASCII
from re import compile as regexp
from typing import Annotated

from pydantic import Field

#: Base pattern for a directive name segment.
_NAME_PATTERN = r'[a-zA-Z][\w-]*'

#: Directive header: `.. name:: arguments`, names may be domain-qualified.
DIRECTIVE_PATTERN = regexp(
    rf'^\.\.\s+(?P<name>{_NAME_PATTERN}(?::{_NAME_PATTERN})*)::(?:\s+(?P<arguments>.*?))?\s*$',
    flags=ASCII,
)

#: Explicit markup start not followed by a directive header (a comment).
COMMENT_PATTERN = regexp(r'^\.\.(?:\s|$)')

#: Option line inside a directive header block: `:key: value`.
OPTION_PATTERN = regexp(r'^:(?P<key>[^:\s][^:]*):(?:\s+(?P<value>.*?))?\s*$')

#: Ordered list item: `#.`, `1.`, `a.`, `1)`, `(a)`.
ENUMERATOR_PATTERN = regexp(
    r'^(?P<marker>\((?P<paren>\d+|#|[a-zA-Z])\)|(?P<enum>\d+|#|[a-zA-Z])[.)])(?:\s+(?P<text>.*)|$)',
    flags=ASCII,
)

#: Unordered list item: `-`, `*`, `+`.
BULLET_PATTERN = regexp(r'^(?P<marker>[-*+])(?:\s+(?P<text>.*)|$)')

#: Section adornment line made of one repeated punctuation character.
ADORNMENT_PATTERN = regexp(r'^(?P<char>[!-/:-@\[-`{-~])(?P=char)+\s*$')

#: Hyperlink reference inside paragraph text: `` `title <url>`_ ``.
HYPERLINK_PATTERN = regexp(r'`(?:[^`<]*?\s)?<(?P<url>https?://[^>\s]+)>`__?')

#: Interpreted-text role: `` :role:`target` ``.
ROLE_PATTERN = regexp(r':(?P<role>[\w-]+(?::[\w-]+)*):`(?P<target>[^`]+)`')

#: Bare slug used for tab identifiers derived from titles.
SLUG_PATTERN = regexp(r'[^a-z0-9]+')


DirectiveName = Annotated[
    str, Field(
        pattern=rf'^{_NAME_PATTERN}(:{_NAME_PATTERN})*$',
        title='Directive name',
        description=(
            'Name of a block directive as written in the document. '
            'A name may be domain-qualified using colons (for example, '
            '`mongodb:tab`); the last segment is the base name.'
        ),
        examples=[
            'code-block',
            'mongodb:tab',
        ],
    ),
]

Language = Annotated[
    str, Field(
        pattern=r'^[a-z][a-z0-9+#-]*$',
        title='Canonical language',
        description=(
            'Lower-cased canonical language of an action after alias '
            'normalization (for example, `python`, `shell`, `text`).'
        ),
        examples=[
            'python',
            'shell',
        ],
    ),
]


def base_name(name: str) -> str:
    """Return the last segment of a possibly domain-qualified name."""
    return name.rsplit(':', 1)[-1].lower()


def slugify(value: str) -> str:
    """Derive a stable lower-case identifier from a free-form title."""
    return SLUG_PATTERN.sub('-', value.lower()).strip('-')


#: Environment assignment prefixing a shell command: `NAME=value`.
ASSIGNMENT_PATTERN = regexp(r'^\w+=\S*$')


def first_command(source: str) -> str | None:
    """Return the program name of the first command of a shell snippet."""
    for line in source.splitlines():
        line = line.strip()
        if not line or line.startswith('#'):
            continue

        for token in line.split():
            if ASSIGNMENT_PATTERN.match(token) or token == 'sudo':
                continue
            return PurePosixPath(token).name

    return None
