"""Base Pydantic models.

Every value exchanged between the pipeline stages (parse-tree nodes,
procedures, instances, execution requests and results) is a frozen
`SchemaModel`. Variant expansion copies models with `model_copy` instead
of mutating them, so one procedure can back many instances.

Runtime settings derive from `SettingsModel`, which reads its values
from the environment and the project file through pydantic-settings.
"""

from pydantic import BaseModel, ConfigDict
from pydantic_settings import BaseSettings, SettingsConfigDict


class SchemaModel(BaseModel):
    """Frozen model rejecting unknown fields.

    Unknown fields are errors: a misspelled key in a plugin definition or
    a hand-built procedure fails validation instead of being dropped.
    """

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        frozen=True,
        extra='forbid',
    )


class SettingsModel(BaseSettings):
    """Frozen settings model ignoring unknown fields.

    Unknown fields are ignored: the environment and the project file may
    hold keys meant for other tools.
    """

    model_config = SettingsConfigDict(
        frozen=True,
        extra='ignore',
    )
