"""Variant expansion engine.

Documented alternative paths are represented explicitly as enumerated
dimensions: every `VariantSlot` of a procedure belongs to a dimension
(overlapping tab identifiers, same tab set name, or same tutorial options),
each dimension offers the union of alternative keys observed across its
slots, and the instances of a procedure are the Cartesian product of
those key sets.

Materializing an instance keeps, at every slot, only the alternative
matching the chosen key of its dimension and keeps all shared content in
document order. A slot without that key contributes nothing.
"""

from itertools import product
from typing import TYPE_CHECKING

from pytest_proctest.errors import VariantResolutionError
from pytest_proctest.schema import (
    AlternativeKey,
    Dimension,
    ProcedureInstance,
    Step,
    StepItem,
    VariantChoice,
    VariantSlot,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from pytest_proctest.schema import Procedure

#: Available alternative keys per dimension, both in first-occurrence order.
type Dimensions = dict[Dimension, list[AlternativeKey]]


def validate_slot(slot: VariantSlot) -> None:
    """Check that a slot is internally consistent.

    Raises:
        VariantResolutionError: If a `selected-content` block is outside
            a composable tutorial, its selections do not match the
            tutorial options, or a key repeats within the slot.
    """
    if slot.dimension[0] == 'tutorial':
        if slot.options is None:
            raise VariantResolutionError.from_location(
                'Selected content outside of a composable tutorial',
                slot.location,
            )

        for alternative in slot.alternatives:
            if len(alternative.key) != len(slot.options):
                raise VariantResolutionError.from_location(
                    f'Selections {", ".join(alternative.key)!r} do not match '
                    f'tutorial options {", ".join(slot.options)!r}',
                    slot.location,
                )

    seen: set[AlternativeKey] = set()
    for alternative in slot.alternatives:
        if alternative.key in seen:
            raise VariantResolutionError.from_location(
                f'Alternative {"-".join(alternative.key)!r} repeats within one variant block',
                slot.location,
            )
        seen.add(alternative.key)


def merge_tab_dimensions(steps: 'Iterable[Step]') -> dict[Dimension, Dimension]:
    """Map `tabs` dimensions sharing a tab identifier to their union.

    A tab set offering only some of the tabs of an earlier one belongs to
    the same dimension, so its alternatives pair with the earlier choice.
    """
    groups: list[set[str]] = []
    dimensions: list[Dimension] = []

    for step in steps:
        for slot in step.slots():
            if slot.dimension[0] != 'tabs' or len(slot.dimension) < 2:  # noqa: PLR2004
                continue

            dimensions.append(slot.dimension)
            tabids = set(slot.dimension[1:])
            for group in [group for group in groups if group & tabids]:
                groups.remove(group)
                tabids |= group
            groups.append(tabids)

    merged: dict[Dimension, Dimension] = {}
    for dimension in dimensions:
        group = next(group for group in groups if dimension[1] in group)
        merged[dimension] = ('tabs', *sorted(group))

    return merged


def relabel_items(items: 'Iterable[StepItem]',
                  dimensions: 'Mapping[Dimension, Dimension]') -> tuple[StepItem, ...]:
    """Replace slot dimensions, including those of nested slots."""
    relabeled: list[StepItem] = []

    for item in items:
        if isinstance(item, VariantSlot):
            item = item.model_copy(update={
                'dimension': dimensions.get(item.dimension, item.dimension),
                'alternatives': tuple(
                    alternative.model_copy(update={'items': relabel_items(alternative.items, dimensions)})
                    for alternative in item.alternatives
                ),
            })
        relabeled.append(item)

    return tuple(relabeled)


def unify_dimensions(steps: 'tuple[Step, ...]') -> tuple[Step, ...]:
    """Rewrite partial tab sets into the dimension of the tab sets they overlap."""
    dimensions = merge_tab_dimensions(steps)
    if all(source == target for source, target in dimensions.items()):
        return steps

    return tuple(
        step.model_copy(update={'items': relabel_items(step.items, dimensions)})
        for step in steps
    )


def collect_dimensions(steps: 'Iterable[Step]') -> Dimensions:
    """Group all slots of the steps by dimension identity.

    Raises:
        VariantResolutionError: If any slot is inconsistent.
    """
    dimensions: Dimensions = {}

    for step in steps:
        for slot in step.slots():
            validate_slot(slot)
            keys = dimensions.setdefault(slot.dimension, [])
            for alternative in slot.alternatives:
                if alternative.key not in keys:
                    keys.append(alternative.key)

    return dimensions


def render_items(items: 'Iterable[StepItem]',
                 selection: 'Mapping[Dimension, AlternativeKey]') -> tuple[StepItem, ...]:
    """Flatten slots into the content of their selected alternatives."""
    rendered: list[StepItem] = []

    for item in items:
        if not isinstance(item, VariantSlot):
            rendered.append(item)
            continue

        chosen = selection.get(item.dimension)
        for alternative in item.alternatives:
            if alternative.key == chosen:
                rendered.extend(render_items(alternative.items, selection))

    return tuple(rendered)


def materialize(steps: 'Iterable[Step]',
                selection: 'Mapping[Dimension, AlternativeKey]') -> tuple[Step, ...]:
    """Render linear steps for one alternative key per dimension."""
    return tuple(
        step.model_copy(update={'items': render_items(step.items, selection)})
        for step in steps
    )


def expand(procedure: 'Procedure') -> tuple[ProcedureInstance, ...]:
    """Expand a procedure into its concrete instances.

    A procedure without slots has exactly one instance with its steps
    unchanged. Otherwise instances follow the Cartesian product of the
    per-dimension keys, dimensions and keys in first-occurrence order.

    Args:
        procedure: Procedure to expand.

    Returns:
        Instances in deterministic order.

    Raises:
        VariantResolutionError: If a dimension is internally inconsistent.
    """
    steps = unify_dimensions(procedure.steps)
    dimensions = collect_dimensions(steps)
    if not dimensions:
        return (ProcedureInstance(procedure=procedure, steps=procedure.steps),)

    instances = []
    for keys in product(*dimensions.values()):
        selection = dict(zip(dimensions, keys, strict=True))
        instances.append(ProcedureInstance(
            procedure=procedure,
            selection=tuple(
                VariantChoice(dimension=dimension, key=key)
                for dimension, key in selection.items()
            ),
            steps=materialize(steps, selection),
        ))

    return tuple(instances)
