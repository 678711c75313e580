"""Parse-tree node definitions.

A document is parsed into a forest of immutable `DirectiveNode` values.
Each node records what kind of block it is, the directive name, arguments
and options where applicable, its raw body, nested children, and the
exact source span it was recovered from.
"""

from collections.abc import Iterator
from typing import Literal

from pydantic import Field

from pytest_proctest.models import SchemaModel
from pytest_proctest.names import base_name

#: Kinds of blocks recognized by the directive parser.
#: `unresolved` marks a transclusion reference that failed to resolve.
type NodeKind = Literal['heading', 'directive', 'list-item', 'paragraph', 'literal', 'unresolved']


class SourceLocation(SchemaModel):
    """Span of source lines a model element was recovered from.

    Line numbers are 0-based and inclusive, matching the parser's
    internal line indexing. Formatters add one when displaying them.
    """

    filename: str | None = Field(
        default=None,
        title='Source file',
        description='Path of the file the element was parsed from.',
    )

    line_start: int = Field(
        default=0,
        ge=0,
        title='First line',
    )
    line_end: int = Field(
        default=0,
        ge=0,
        title='Last line',
    )


class DirectiveNode(SchemaModel):
    """Single typed block of a parsed document.

    Headings carry their title in `body` and their `rank`; list items
    carry their `enumerator`; directives carry `name`, `arguments` and
    `options`. Literal directives keep their dedented body as text,
    container directives have their body parsed into `children`.
    """

    kind: NodeKind

    name: str = Field(
        default='',
        title='Directive name',
        description='Directive name as written, empty for non-directive nodes.',
    )
    arguments: str = Field(
        default='',
        title='Directive arguments',
    )
    options: dict[str, str] = Field(
        default_factory=dict,
        title='Directive options',
        description='Ordered `:key: value` options following the directive header.',
    )

    body: str = Field(
        default='',
        title='Raw body',
        description=(
            'Dedented literal body for literal directives, the title of a '
            'heading, the text of a paragraph, or the first line of a list item.'
        ),
    )
    children: tuple['DirectiveNode', ...] = Field(
        default=(),
        title='Nested nodes',
    )

    location: SourceLocation = Field(
        default_factory=SourceLocation,
        title='Source span',
    )

    rank: int | None = Field(
        default=None,
        ge=1,
        title='Heading rank',
        description='Rank of a heading by first occurrence of its adornment style.',
    )
    enumerator: str | None = Field(
        default=None,
        title='List enumerator',
        description='Enumerator of a list item (`1`, `a`, `#`, or a bullet character).',
    )
    ordered: bool = Field(
        default=False,
        title='Ordered list flag',
    )

    @property
    def directive(self) -> str:
        """Base name of the directive (domain prefix removed)."""
        return base_name(self.name) if self.kind == 'directive' else ''

    @property
    def lettered(self) -> bool:
        """Whether this list item uses an alphabetic enumerator."""
        return bool(self.enumerator) and self.enumerator.isalpha()  # type: ignore[union-attr]

    def is_directive(self, *names: str) -> bool:
        """Check whether the node is a directive with one of the base names."""
        return self.kind == 'directive' and self.directive in names

    def walk(self) -> Iterator['DirectiveNode']:
        """Iterate over this node and all of its descendants in document order."""
        yield self
        for child in self.children:
            yield from child.walk()
