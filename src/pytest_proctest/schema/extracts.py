"""Extract document definitions.

Extract files hold a family of reusable text templates, one YAML document
per entry. Entries are addressed by `ref`, may inherit another entry
(possibly from another file of the same directory), and render their
`content` template by substituting `{{name}}` tokens from a merged
replacement map.
"""

from typing import Any, Self

from pydantic import ConfigDict, Field, field_validator

from pytest_proctest.models import SchemaModel


class ExtractReference(SchemaModel):
    """Reference to an inherited extract entry."""

    ref: str = Field(
        min_length=1,
        title='Inherited reference',
    )
    file: str | None = Field(
        default=None,
        title='Inherited file',
        description=(
            'Name of the extract file holding the inherited entry, '
            'relative to the directory of the inheriting file. '
            'The inheriting file itself is used when omitted.'
        ),
    )


class ExtractEntry(SchemaModel):
    """Single template entry of an extract file.

    Documentation toolchains attach further keys (`title`, `level`,
    `edition`, ...) that do not affect rendering; they are ignored.
    """

    model_config = ConfigDict(extra='ignore')

    ref: str = Field(
        min_length=1,
        title='Entry reference',
    )
    inherit: ExtractReference | None = Field(
        default=None,
        title='Inherited entry',
    )
    content: str | None = Field(
        default=None,
        title='Content template',
        description='Template text with `{{name}}` tokens.',
    )
    replacement: dict[str, str] = Field(
        default_factory=dict,
        title='Replacement map',
        description='Token values; closer entries override inherited ones.',
    )

    @field_validator('replacement', mode='before')
    @classmethod
    def stringify_replacement(cls, value: Any) -> Any:  # noqa: ANN401
        """Render scalar replacement values as strings.

        YAML turns values like `4.4` or `yes` into numbers and booleans;
        templates only ever substitute text.
        """
        if value is None:
            return {}

        if not isinstance(value, dict):
            return value

        return {
            f'{key}': '' if item is None else f'{item}'
            for key, item in value.items()
        }


class ExtractDocument(SchemaModel):
    """Keyed collection of extract entries loaded from one file."""

    path: str = Field(
        title='Extract file path',
    )
    entries: dict[str, ExtractEntry] = Field(
        default_factory=dict,
        title='Entries by reference',
    )

    @classmethod
    def from_documents(cls, path: str, documents: list[Any]) -> Self:
        """Build an extract document from loaded YAML documents.

        Empty documents (for example a trailing `...` marker) are skipped.
        When a `ref` occurs twice, the last definition wins.

        Args:
            path: Path the documents were loaded from.
            documents: Raw YAML documents.

        Returns:
            Validated extract document.

        Raises:
            pydantic.ValidationError: If an entry is malformed.
        """
        entries = {}
        for document in documents:
            if document is None:
                continue
            entry = ExtractEntry.model_validate(document)
            entries[entry.ref] = entry

        return cls(path=path, entries=entries)
