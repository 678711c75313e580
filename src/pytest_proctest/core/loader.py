"""Executor registry and plugin loading.

Executors are registered under qualified names (`builtins.shell`,
`<plugin>.<executor>`) and kept in registration order. Lookup prefers
the most recently registered executor, so plugin executors take
precedence over builtin executors serving the same kind and language.

Plugins are discovered through the `proctest_plugins` entry-point group.
A broken plugin is reported with a `PluginWarning` and skipped, unless
strict mode turns every such report into a `PluginError`.
"""

from typing import TYPE_CHECKING
from warnings import warn

from pydantic import ValidationError

from pytest_proctest.errors import PluginError, PluginWarning
from pytest_proctest.extensions import Plugin

if TYPE_CHECKING:
    from importlib.metadata import EntryPoint

if TYPE_CHECKING:
    from pytest_proctest.extensions import Executor

#: Entry-point group of executor plugins.
PLUGINS_GROUP = 'proctest_plugins'

#: Namespace of executors registered directly rather than by a plugin.
BUILTINS_NAMESPACE = 'builtins'


class ExecutorRegistryMixin:
    """Mixin holding registered executors.

    Attributes:
        strict_mode: If True, any plugin issue raises an error.
            If False, issues are emitted as warnings and loading continues.
        executors: Registered executors by qualified name.
    """

    strict_mode: bool = False

    executors: dict[str, 'Executor']

    def register(self, executor: 'Executor',
                 entrypoint: 'EntryPoint | None' = None,
                 namespace: str = BUILTINS_NAMESPACE) -> None:
        """Register an executor under its qualified name.

        A name registered again moves to the end of the registry.

        Raises:
            PluginError: If the executor shadows another one on strict mode.
        """
        qualname = f'{namespace}.{executor.name}'

        if qualname in self.executors:
            origin = entrypoint.value if entrypoint is not None else executor.__module__
            self.report(f'Executor {qualname!r} from {origin!r} is shadowing an existing', entrypoint)
            del self.executors[qualname]

        self.executors[qualname] = executor

    def find_executor(self, kind: str, language: str) -> 'Executor | None':
        """Find the most recently registered executor serving a kind and language."""
        for executor in reversed(self.executors.values()):
            if executor.supports(kind, language):
                return executor

        return None

    def report(self, message: str, entrypoint: 'EntryPoint | None' = None,
               cause: Exception | None = None) -> None:
        """Report a plugin issue.

        Args:
            message: Description of the issue.
            entrypoint: Entry point the issue comes from, if any.
            cause: Underlying exception, chained to the raised error.

        Raises:
            PluginError: On strict mode. Otherwise a PluginWarning is emitted.
        """
        if self.strict_mode:
            raise PluginError(message, entrypoint=entrypoint) from cause

        warn(message, category=PluginWarning, stacklevel=3)

    def load_plugins(self) -> None:
        """Register the executors of every installed plugin.

        Raises:
            PluginError: If any plugin issue occurs on strict mode.
        """
        from importlib.metadata import entry_points  # noqa: PLC0415

        for entrypoint in entry_points().select(group=PLUGINS_GROUP):
            plugin = self._entrypoint_plugin(entrypoint)
            if plugin is None:
                continue

            for executor in plugin.executors:
                self.register(executor, entrypoint, namespace=plugin.name)

    def _entrypoint_plugin(self, entrypoint: 'EntryPoint') -> Plugin | None:
        """Load the plugin an entry point refers to, if it is one."""
        try:
            plugin = entrypoint.load()
        except ValidationError as base:
            self.report(f'Failed to validate entrypoint {entrypoint.name!r}', entrypoint, base)
            return None
        except Exception as base:  # noqa: BLE001
            self.report(f'Failed to load entrypoint {entrypoint.name!r}', entrypoint, base)
            return None

        if not isinstance(plugin, Plugin):
            self.report(f'Loaded from entrypoint {entrypoint.name!r} object is not a plugin', entrypoint)
            return None

        return plugin
