"""Document pipeline facade.

This module defines a high-level parser chaining the pipeline stages
that turn a documentation file into procedures:

- the directive parser (markup to node forest),
- the transclusion resolver (includes, literal includes, extracts),
- the procedure model builder (nodes to procedures, steps and actions).

Variant expansion is exposed separately through `instances`, since a
variant error fails one procedure only.
"""

from pathlib import Path
from typing import TYPE_CHECKING, Self

from pytest_proctest.errors import ParseError, ProcTestError

from .builder import ProcedureBuilder
from .classifier import CLI_TOOLS
from .directives import DirectiveParser
from .transclusion import TransclusionResolver
from .variants import expand

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

if TYPE_CHECKING:
    from pytest_proctest.config import Configuration, RoleSettings
    from pytest_proctest.schema import Procedure, ProcedureInstance

#: Parsed procedures of a file.
type Procedures = tuple['Procedure', ...]

#: Recoverable problems met while parsing a file.
type Errors = tuple[ProcTestError, ...]

#: Fully processed file contents.
type Source = tuple[Procedures, Errors]


class DocumentParser:
    """Documentation parser producing procedures.

    The parser is stateful: the transclusion resolver caches extract
    documents for the whole run, so one instance should be shared by
    all files of a run.
    """

    def __init__(self, *, source_dir: Path | None = None,  # noqa: PLR0913
                 languages: 'Mapping[str, str] | None' = None,
                 cli_tools: 'Iterable[str]' = CLI_TOOLS,
                 roles: 'Mapping[str, RoleSettings] | None' = None,
                 check_urls: bool = True) -> None:
        """Initialize the document parser.

        Args:
            source_dir: Fallback documentation root for absolute references.
            languages: Extra language aliases for the classifier.
            cli_tools: Program names whose invocations are `cli` actions.
            roles: Role table; roles with a URL template become `url` actions.
            check_urls: Whether hyperlinks are executable `url` actions.
        """
        self.directives = DirectiveParser()
        self.resolver = TransclusionResolver(self.directives, source_dir=source_dir)
        self.builder = ProcedureBuilder(
            languages=languages,
            cli_tools=cli_tools,
            roles=roles,
            check_urls=check_urls,
        )

    @classmethod
    def from_configuration(cls, configuration: 'Configuration') -> Self:
        """Build a parser from the run configuration."""
        settings = configuration.settings

        return cls(
            source_dir=configuration.source_dir,
            languages=settings.languages,
            cli_tools=settings.cli_tools,
            roles=configuration.roles,
            check_urls=settings.check_urls,
        )

    def parse(self, content: str, filename: str | None = None) -> Source:
        """Parse documentation markup into procedures.

        Malformed nodes and failed transclusions never abort the file:
        they are reported in the error list while the remaining content
        is still processed. Procedures containing a failed reference are
        built with their `error` set.

        Args:
            content: Markup text.
            filename: Path of the file, used for relative references
                and error locations.

        Returns:
            A tuple consisting of:
            - the procedures of the file in document order;
            - the parse and transclusion errors met.
        """
        nodes, parse_errors = self.directives.parse(content, filename)
        nodes, transclusion_errors = self.resolver.resolve(nodes, filename)

        procedures = self.builder.build(nodes, filename)

        return procedures, (*parse_errors, *transclusion_errors)

    def parse_file(self, path: Path | str) -> Source:
        """Read and parse a documentation file.

        Args:
            path: Path of the file.

        Returns:
            Procedures and errors, as returned by `parse`.

        Raises:
            ParseError: If the file cannot be read.
        """
        path = Path(path)

        try:
            content = path.read_text(encoding='utf-8')
        except (OSError, UnicodeDecodeError) as base:
            raise ParseError(f'Cannot read {path}: {base}') from base

        return self.parse(content, f'{path}')

    @staticmethod
    def instances(procedure: 'Procedure') -> tuple['ProcedureInstance', ...]:
        """Expand a procedure into its variant-free instances.

        Raises:
            VariantResolutionError: If a variant dimension of the
                procedure is inconsistent.
        """
        return expand(procedure)
