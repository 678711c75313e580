"""Core exception hierarchy.

This module defines base error and warning types used across the library
to report markup parsing issues, transclusion and variant failures,
placeholder resolution problems, and runtime execution errors in a
structured and extensible way.

Messages are rendered by `ErrorFormatter`: the base message, then the
document location of the failing element, then an excerpt of its source
and the values observed while running it.
"""

from os import linesep
from typing import TYPE_CHECKING, TypedDict

from yaml import SafeDumper, dump

if TYPE_CHECKING:
    from importlib.metadata import EntryPoint
    from typing import Self

if TYPE_CHECKING:
    from yaml import ScalarNode

    from pytest_proctest.schema import SourceLocation

#: Longest source excerpt, in lines, shown under a message.
EXCERPT_LINES = 12
EXCERPT_MARKER = '| '
EXCERPT_ELLIPSIS = '...'

FORMAT_FILENAME = '<unknown document>'
FORMAT_INDENT = 4


class ErrorContext(TypedDict, total=False):
    """Container describing contextual information for error formatting.

    All fields are optional; the formatter adapts output based on
    provided values. Numbers are 0-based and displayed 1-based.
    """

    #: Document the failing element was recovered from.
    filename: str | None
    #: First line of the failing element.
    line_num: int | None

    #: Step of the procedure instance.
    step_num: int | None
    #: Action within the step.
    action_num: int | None

    #: Underlying exception that triggered formatting.
    error: Exception | None

    #: Source of the failing element.
    source: str | None
    #: Values observed while running the element (exit code, stderr).
    details: dict[str, object] | None


class DetailsDumper(SafeDumper):
    """YAML dumper writing multi-line strings as literal blocks."""


def _represent_str(dumper: SafeDumper, value: str) -> 'ScalarNode':
    """Represent multi-line strings as literal blocks."""
    style = '|' if '\n' in value else None
    return dumper.represent_scalar('tag:yaml.org,2002:str', value, style=style)


DetailsDumper.add_representer(str, _represent_str)


class ErrorFormatter:
    """Utility class for formatting procedure-related errors."""

    @classmethod
    def format(cls, message: str, context: ErrorContext | None = None) -> str:
        """Format an error message using contextual information.

        Args:
            message: Base human-readable error message.
            context: Optional error context with location and data.

        Returns:
            The message followed by the location line, the underlying
            error, a source excerpt and observed details when known.
        """
        if not context:
            return message

        indent = ' ' * FORMAT_INDENT
        lines = [message, f'{indent}{cls.get_location_string(context)}']

        if (error := context.get('error')) is not None:
            lines.append(f'{indent}caused by {type(error).__name__}: {error}')

        if source := context.get('source'):
            lines.extend(f'{indent * 2}{line}' for line in cls.get_excerpt(source))

        if details := context.get('details'):
            lines.extend(f'{indent * 2}{line}' for line in cls.get_details(details))

        return linesep.join(lines)

    @staticmethod
    def get_location_string(context: ErrorContext) -> str:
        """Format the document location and the position in the instance.

        Args:
            context: Error context containing location metadata.

        Returns:
            For example `in "install.txt", line 12, step 2, action 1`.
        """
        filename = context.get('filename') or FORMAT_FILENAME

        parts = [f'in "{filename}"']
        if (line_num := context.get('line_num')) is not None:
            parts.append(f'line {line_num + 1}')
        if (step_num := context.get('step_num')) is not None:
            parts.append(f'step {step_num + 1}')
            if (action_num := context.get('action_num')) is not None:
                parts.append(f'action {action_num + 1}')

        return ', '.join(parts)

    @staticmethod
    def get_excerpt(source: str) -> list[str]:
        """Marked source lines, truncated to `EXCERPT_LINES`."""
        lines = source.strip('\n').splitlines()
        excerpt = [f'{EXCERPT_MARKER}{line}'.rstrip() for line in lines[:EXCERPT_LINES]]
        if len(lines) > EXCERPT_LINES:
            excerpt.append(f'{EXCERPT_MARKER}{EXCERPT_ELLIPSIS}')

        return excerpt

    @staticmethod
    def get_details(details: dict[str, object]) -> list[str]:
        """Observed values serialized as YAML, skipping empty ones."""
        values = {
            key: value
            for key, value in details.items()
            if value not in (None, '')
        }
        if not values:
            return []

        return dump(
            values,
            Dumper=DetailsDumper,
            sort_keys=False,
            allow_unicode=True,
            default_flow_style=False,
        ).splitlines()


class PluginWarning(UserWarning):
    """Warning emitted for non-fatal plugin-related issues.

    This warning is used when a plugin cannot be loaded or processed,
    but the error does not prevent further execution (for example,
    when running in non-strict mode).
    """


class ParseWarning(UserWarning):
    """Warning emitted for recoverable markup problems.

    Parse errors never abort a file: the malformed node is dropped and
    sibling content is still parsed. The collector reports each of them
    with this warning category.
    """


class CleanupWarning(UserWarning):
    """Warning emitted when a cleanup obligation fails."""


class ProcTestError(Exception, ErrorFormatter):
    """Base exception for all pytest-proctest errors.

    All custom exceptions raised by the library inherit from this
    class to allow unified error handling by callers.
    """

    def __init__(self, message: str, *,
                 context: ErrorContext | None = None) -> None:
        """Initialize an error.

        Args:
            message: Human-readable error description.
            context: Error context containing optional runtime values.
        """
        self.message = message
        self.context = context

        super().__init__(message)

    def __str__(self) -> str:
        """String representation."""
        return self.format(self.message, self.context)

    @classmethod
    def from_location(cls, message: str, location: 'SourceLocation | None', *,
                      error: Exception | None = None,
                      source: str | None = None) -> 'Self':
        """Create an error instance from a source location.

        Args:
            message: Human-readable error message.
            location: Source location associated with the error.
            error: Optional underlying exception.
            source: Optional source of the failing element.

        Returns:
            An initialized error with location context.
        """
        error_context = ErrorContext(error=error, source=source)
        if location is not None:
            error_context['filename'] = location.filename
            error_context['line_num'] = location.line_start

        return cls(message, context=error_context)

    @property
    def filename(self) -> str | None:
        """Return the filename attached to the error, if any."""
        return (self.context or {}).get('filename')

    @property
    def line_num(self) -> int | None:
        """Return the 0-based line number attached to the error, if any."""
        return (self.context or {}).get('line_num')


class PluginError(ProcTestError):
    """Error raised for fatal plugin-related failures.

    This exception is raised when a plugin entry point is invalid,
    misconfigured, or fails to load in strict mode.
    """

    def __init__(self, message: str, *,
                 entrypoint: 'EntryPoint | None' = None) -> None:
        """Initialize a plugin error.

        Args:
            message: Human-readable error description.
            entrypoint: Optional plugin entry point associated with the error.
        """
        self.entrypoint = entrypoint

        super().__init__(message)


class ConfigurationError(ProcTestError):
    """Error raised when project configuration cannot be loaded."""


class ParseError(ProcTestError):
    """Malformed directive, list, or heading.

    Scoped to a single node: the parser records it and continues
    with the next sibling.
    """


class TransclusionError(ProcTestError):
    """Failure to resolve an include, literal include, or extract.

    Covers missing files, unmatched slice markers, and inheritance
    cycles. Fails only the reference that produced it; the enclosing
    procedure is reported as unbuildable.
    """


class VariantResolutionError(ProcTestError):
    """Internally inconsistent variant dimension.

    Fails the owning procedure only.
    """


class PlaceholderUnresolved(ProcTestError):
    """One or more placeholders have no binding.

    Fails only the containing action.
    """

    def __init__(self, identities: list[str], *,
                 context: ErrorContext | None = None) -> None:
        """Initialize the error with unresolved placeholder identities."""
        self.identities = identities

        super().__init__(
            f'Unresolved placeholders: {", ".join(identities)}',
            context=context,
        )


class ExecutionFailure(ProcTestError):
    """Action failed during execution.

    Raised for non-zero exits, thrown errors, failing URL status codes,
    and timeouts.
    """


class PrerequisiteMissing(ProcTestError):
    """Required execution environment is unavailable.

    Produces a skip, never a failure.
    """


class CleanupFailure(ProcTestError):
    """A registered cleanup obligation failed."""
