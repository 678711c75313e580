"""Pytest integration for documentation files.

This module defines a custom pytest file collector that treats a
documentation file as a set of executable procedures.

Each collected file is parsed using the shared `DocumentParser`, and
every procedure is expanded into its variant-free instances; each
instance becomes one `ProcedureItem`. Procedures that cannot be built
or expanded still produce an item, which fails with the reason.
"""

from collections import Counter
from typing import TYPE_CHECKING
from warnings import warn

import pytest

from pytest_proctest.errors import ParseWarning, TransclusionError, VariantResolutionError

from .procedure import ProcedureItem

if TYPE_CHECKING:
    from collections.abc import Iterable

if TYPE_CHECKING:
    from pytest_proctest.core import DocumentParser
    from pytest_proctest.schema import Procedure


class TestDocument(pytest.File):
    """Pytest file collector for documentation files."""

    __test__ = False

    def collect(self) -> 'Iterable[ProcedureItem]':
        """Collect pytest items from a documentation file.

        Recoverable markup problems are reported as `ParseWarning`s and
        never prevent the remaining procedures from being collected.

        Returns:
            Iterable of `ProcedureItem` instances, one per procedure
            instance, in document and dimension-key order.
        """
        parser: DocumentParser = self.config.proctest_parser  # type: ignore[attr-defined]

        procedures, errors = parser.parse_file(self.path)
        for error in errors:
            warn(f'{type(error).__name__}: {error}', category=ParseWarning, stacklevel=2)

        names: Counter[str] = Counter()
        for procedure in procedures:
            yield from self.expand(procedure, parser, names)

    def expand(self, procedure: 'Procedure', parser: 'DocumentParser',
               names: Counter[str]) -> 'Iterable[ProcedureItem]':
        """Generate the items of a single procedure.

        Args:
            procedure: Procedure to expand.
            parser: Parser expanding the variant dimensions.
            names: Counter of item names already used in the file.

        Yields:
            One item per instance, or a single failing item when the
            procedure is unbuildable or its variants are inconsistent.
        """
        if procedure.error is not None:
            yield ProcedureItem.from_parent(
                self,
                name=self.unique_name(procedure.name, names),
                error=TransclusionError.from_location(
                    f'Procedure cannot be built: {procedure.error}',
                    procedure.location,
                ),
            )
            return

        try:
            instances = parser.instances(procedure)

        except VariantResolutionError as error:
            yield ProcedureItem.from_parent(
                self,
                name=self.unique_name(procedure.name, names),
                error=error,
            )
            return

        for instance in instances:
            yield ProcedureItem.from_parent(
                self,
                name=self.unique_name(instance.name, names),
                instance=instance,
            )

    @staticmethod
    def unique_name(name: str, names: Counter[str]) -> str:
        """Make an item name unique within the file."""
        names[name] += 1
        if names[name] == 1:
            return name

        return f'{name} #{names[name]}'
