"""JSON Schema management.

Schemas are generated for the result tree produced by a run, consumed
by external reporters, and for the `.proctest.yml` project file.
"""

from functools import cache
from json import dumps
from typing import TYPE_CHECKING, Literal

from pydantic.json_schema import GenerateJsonSchema

from pytest_proctest.config import ProjectSettings
from pytest_proctest.schema import RunResult

if TYPE_CHECKING:
    from pydantic import BaseModel

#: Documents a schema can be generated for.
type SchemaTarget = Literal['results', 'config']

TARGETS: dict[str, tuple['type[BaseModel]', str]] = {
    'results': (RunResult, 'Result tree of a pytest-proctest run'),
    'config': (ProjectSettings, 'pytest-proctest project file'),
}


class SchemaGenerator(GenerateJsonSchema):
    """JSON Schema generator for pytest-proctest models."""

    @classmethod
    @cache
    def make_schema(cls, target: SchemaTarget = 'results',
                    indent: int | str | None = 4) -> str:
        """Generate the JSON Schema of a document.

        Args:
            target: Document to describe.
            indent: Indentation level used for JSON formatting.

        Returns:
            Serialized JSON Schema string.
        """
        model, description = TARGETS[target]

        schema = {
            **model.model_json_schema(
                schema_generator=cls,
                mode='serialization' if target == 'results' else 'validation',
            ),
            'title': f'pytest-proctest {target}',
            'description': description,
            '$schema': cls.schema_dialect,
        }

        return dumps(
            schema,
            ensure_ascii=False,
            sort_keys=True,
            indent=indent,
        )
