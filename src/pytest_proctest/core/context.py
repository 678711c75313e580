"""Per-step execution state.

State threading is explicit: each step of an instance gets a fresh
`StepContext` that accumulates, per language, the state-setting part of
the units that ran successfully, together with the names they define. A
later unit of the same language is executed as the accumulated source
followed by its own source.

Only state is carried forward, so replaying a prelude never repeats side
effects. Shell-like languages keep assignments, exports and directory
changes. Other languages keep top-level imports and definitions. Nothing
is carried across step boundaries.
"""

from re import compile as regexp

from .classifier import SHELL_LANGUAGES, declarations, definitions, references

#: Shell lines that only set state and are safe to replay.
SHELL_STATE_PATTERN = regexp(
    r'^\s*(?:export\s+\w+=|declare\s|\w+=\S*\s*$|cd\s|source\s|\.\s|alias\s|set\s|unset\s)',
)


class StepContext:
    """Accumulator of successful units within one step."""

    def __init__(self, env: dict[str, str] | None = None) -> None:
        """Initialize an empty step context.

        Args:
            env: Environment bindings shared by the units of the step.
        """
        self.env = dict(env or {})

        self.sources: dict[str, list[str]] = {}
        self.defined: set[str] = set()
        self.missing: set[str] = set()

    def prelude(self, language: str) -> str:
        """Accumulated source of earlier successful units of a language."""
        return '\n'.join(self.sources.get(language, ()))

    def unsatisfied(self, language: str, source: str) -> set[str]:
        """Names a unit uses that only a failed earlier unit would have defined."""
        missing = self.missing - self.defined - definitions(language, source)

        return references(language, source) & missing

    def succeed(self, language: str, source: str) -> None:
        """Record a successful unit."""
        if language in SHELL_LANGUAGES:
            source = '\n'.join(
                line
                for line in source.splitlines()
                if SHELL_STATE_PATTERN.match(line)
            )
        else:
            source = declarations(language, source)

        if source.strip():
            self.sources.setdefault(language, []).append(source)

        self.defined |= definitions(language, source)

    def fail(self, language: str, source: str) -> None:
        """Record a failed unit: its names will never be available."""
        self.missing |= definitions(language, source) - self.defined
