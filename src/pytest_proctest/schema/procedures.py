"""Procedure model definitions.

The procedure model is the logical structure recovered from a document:
a `Procedure` is an ordered sequence of `Step`s, and each step holds plain
content, testable `Action`s, and `VariantSlot`s marking documented
alternative paths (tab sets and composable-tutorial selections).

A `ProcedureInstance` is a procedure with every variant dimension resolved
to exactly one alternative key: its steps contain no slots.
"""

from collections.abc import Iterator
from typing import Literal

from pydantic import Field

from pytest_proctest.models import SchemaModel
from pytest_proctest.names import Language  # noqa: TC001

from .nodes import SourceLocation

#: Kinds of testable actions.
type ActionKind = Literal['code', 'shell', 'cli', 'api', 'url', 'ui']

#: Dimension identity: `('tabs', *tabids)`, `('tabset', name)` or `('tutorial', *options)`.
type Dimension = tuple[str, ...]

#: Alternative key within a dimension: `(tabid,)` or the selections tuple.
type AlternativeKey = tuple[str, ...]


class ContentBlock(SchemaModel):
    """Plain, non-testable content shared by every instance."""

    item: Literal['content'] = 'content'

    text: str = Field(
        title='Content text',
    )
    location: SourceLocation = Field(
        default_factory=SourceLocation,
    )


class Action(SchemaModel):
    """Single testable unit within a step.

    The `body` is the literal text from the document; `source` is the
    classifier-normalized text that is actually executed (for example
    with shell prompts and echoed output stripped).
    """

    item: Literal['action'] = 'action'

    kind: ActionKind = Field(
        title='Action kind',
    )
    language: Language = Field(
        default='text',
        title='Canonical language',
    )
    declared: str | None = Field(
        default=None,
        title='Declared language label',
        description='Language label as written in the document, if any.',
    )

    body: str = Field(
        title='Literal body',
    )
    source: str = Field(
        title='Executable source',
    )
    executable: bool = Field(
        default=False,
        title='Executable flag',
    )

    location: SourceLocation = Field(
        default_factory=SourceLocation,
    )


class VariantAlternative(SchemaModel):
    """Content specific to one alternative of a variant slot."""

    key: AlternativeKey = Field(
        title='Alternative key',
    )
    title: str | None = Field(
        default=None,
        title='Alternative title',
    )
    items: tuple['ContentBlock | Action | VariantSlot', ...] = Field(
        default=(),
        title='Alternative content',
    )


class VariantSlot(SchemaModel):
    """Point of documented alternative content within a step."""

    item: Literal['slot'] = 'slot'

    dimension: Dimension = Field(
        title='Dimension identity',
    )
    options: tuple[str, ...] | None = Field(
        default=None,
        title='Tutorial options',
        description='Ordered option names of the enclosing composable tutorial.',
    )
    alternatives: tuple[VariantAlternative, ...] = Field(
        default=(),
        title='Alternatives',
    )

    location: SourceLocation = Field(
        default_factory=SourceLocation,
    )


type StepItem = ContentBlock | Action | VariantSlot


class Step(SchemaModel):
    """One instruction of a procedure."""

    title: str | None = Field(
        default=None,
        title='Step title',
        description='First paragraph of the step, used for reporting.',
    )
    items: tuple[ContentBlock | Action | VariantSlot, ...] = Field(
        default=(),
        title='Step content',
    )
    location: SourceLocation = Field(
        default_factory=SourceLocation,
    )

    @property
    def actions(self) -> tuple[Action, ...]:
        """Actions directly in this step, outside of variant slots."""
        return tuple(item for item in self.items if isinstance(item, Action))

    def slots(self) -> Iterator[VariantSlot]:
        """Iterate over all variant slots of the step, including nested ones."""
        yield from _iter_slots(self.items)


def _iter_slots(items: tuple[StepItem, ...]) -> Iterator[VariantSlot]:
    """Walk step items depth-first yielding variant slots in document order."""
    for item in items:
        if isinstance(item, VariantSlot):
            yield item
            for alternative in item.alternatives:
                yield from _iter_slots(alternative.items)


class Procedure(SchemaModel):
    """Logical, ordered set of steps extracted from a document."""

    title: str | None = Field(
        default=None,
        title='Procedure title',
        description='Originating heading or `procedure` directive argument.',
    )
    filename: str | None = Field(
        default=None,
        title='Source file',
    )
    steps: tuple[Step, ...] = Field(
        default=(),
        title='Steps',
    )
    location: SourceLocation = Field(
        default_factory=SourceLocation,
    )

    error: str | None = Field(
        default=None,
        title='Build error',
        description='Set when the procedure could not be built, for example on transclusion failure.',
    )

    @property
    def name(self) -> str:
        """Human-readable procedure name."""
        if self.title:
            return self.title

        return f'procedure at line {self.location.line_start + 1}'


class VariantChoice(SchemaModel):
    """Alternative key chosen for one dimension."""

    dimension: Dimension
    key: AlternativeKey

    @property
    def label(self) -> str:
        """Readable label of the chosen key."""
        return '-'.join(self.key)


class ProcedureInstance(SchemaModel):
    """Fully resolved, variant-free version of a procedure."""

    procedure: Procedure = Field(
        title='Source procedure',
    )
    selection: tuple[VariantChoice, ...] = Field(
        default=(),
        title='Chosen alternatives',
        description='One alternative key per dimension, in dimension order.',
    )
    steps: tuple[Step, ...] = Field(
        default=(),
        title='Linear steps',
    )

    @property
    def name(self) -> str:
        """Procedure name qualified by the chosen alternative keys."""
        if not self.selection:
            return self.procedure.name

        return f'{self.procedure.name}[{self.label}]'

    @property
    def label(self) -> str:
        """Chosen alternative keys joined for display."""
        return ','.join(choice.label for choice in self.selection)


VariantAlternative.model_rebuild()
