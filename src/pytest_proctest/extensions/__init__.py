"""Declarative executor plugin definition.

This module defines the top-level declarative container used to describe
executors provided by a pytest-proctest plugin.

A plugin is exposed through the `proctest_plugins` entry-point group and
contributes executors for action kinds and languages: for example a
browser-driven `ui` executor, an `api` executor speaking HTTP, or a
replacement for a builtin language executor.

The plugin model itself is purely declarative. It is consumed by the
plugin loader when the orchestrator is created.
"""

from pydantic import Field

from pytest_proctest.models import SchemaModel

from .executors import Executor, ExecutorCheck, ExecutorRunner

__all__ = (
    'Executor',
    'ExecutorCheck',
    'ExecutorRunner',
    'Plugin',
)


class Plugin(SchemaModel):
    """Declarative container for executor extensions.

    Plugin instances are declarative descriptions only. They do not
    execute logic themselves, but are consumed by the plugin loader to
    register executors and detect naming conflicts.
    """

    name: str = Field(
        pattern=r'^[a-zA-Z_][a-zA-Z0-9_]*$',
        title='Plugin namespace',
        description=(
            'Logical namespace of the plugin. '
            'Used for identification, diagnostics, and conflict detection. '
            'Typically corresponds to the plugin package or domain name.'
        ),
    )

    version: int = Field(
        default=1,
        title='Contract version',
        description=(
            'Version of the executor contract. '
            'This is not a semantic version of the plugin implementation.'
        ),
    )

    executors: list[Executor] = Field(
        default_factory=list,
        title='Executors',
        description=(
            'Declarative executor definitions provided by the plugin. '
            'Plugin executors take precedence over builtin ones serving '
            'the same kind and language.'
        ),
    )
