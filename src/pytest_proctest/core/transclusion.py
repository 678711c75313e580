"""Transclusion of included files and extract templates.

This module replaces `include`, `literalinclude` and file-backed
`io-code-block` `input` references with the text they point to, before
procedures are built.

Extract references do not name a file on disk: a path with an `extracts`
segment identifies one entry inside a YAML family file living next to the
`extracts` directory. Entries may inherit each other (also across files);
inheritance is resolved with an explicit memoized lookup and a visited
trail, never by trusting the input to be acyclic.
"""

from pathlib import Path, PurePosixPath
from re import compile as regexp
from textwrap import dedent
from typing import TYPE_CHECKING

from pydantic import ValidationError
from yaml import YAMLError, safe_load_all

from pytest_proctest.errors import ProcTestError, TransclusionError
from pytest_proctest.schema import DirectiveNode, ExtractDocument

if TYPE_CHECKING:
    from collections.abc import Iterable

if TYPE_CHECKING:
    from .directives import DirectiveParser

#: Maximum nesting of includes and extract inheritance.
MAX_DEPTH = 16

#: Template token inside extract content: `{{ name }}`.
TOKEN_PATTERN = regexp(r'\{\{\s*(?P<name>[\w.-]+)\s*\}\}')

#: Directory segment marking an extract reference.
EXTRACTS_SEGMENT = 'extracts'

#: Directory name marking the documentation source root.
SOURCE_SEGMENT = 'source'

#: Resolved replacement state of one extract entry.
type Rendered = tuple[str | None, dict[str, str]]

#: Resolver output: resolved nodes and errors encountered.
type ResolveResult = tuple[tuple[DirectiveNode, ...], tuple[ProcTestError, ...]]


def render_template(content: str, replacement: dict[str, str]) -> str:
    """Substitute `{{name}}` tokens, leaving unknown tokens verbatim."""
    return TOKEN_PATTERN.sub(
        lambda match: replacement.get(match['name'], match[0]),
        content,
    )


def slice_lines(text: str, start_after: str | None = None,
                end_before: str | None = None) -> str:
    """Slice text between the first lines containing the markers.

    Both markers are exclusive. A missing `start_after` starts at the top
    of the text, a missing `end_before` runs to its end.

    Raises:
        TransclusionError: If a given marker never matches.
    """
    lines = text.splitlines()
    start, end = 0, len(lines)

    if start_after:
        for num, line in enumerate(lines):
            if start_after in line:
                start = num + 1
                break
        else:
            raise TransclusionError(f'Marker {start_after!r} for start-after not found')

    if end_before:
        for num in range(start, len(lines)):
            if end_before in lines[num]:
                end = num
                break
        else:
            raise TransclusionError(f'Marker {end_before!r} for end-before not found')

    return '\n'.join(lines[start:end])


def dedent_lines(text: str, width: str) -> str:
    """Apply a `:dedent:` option: a column count or common whitespace."""
    if not width.strip():
        return dedent(text)

    columns = int(width)

    return '\n'.join(
        line[min(columns, len(line) - len(line.lstrip())):]
        for line in text.splitlines()
    )


def is_extract(reference: str) -> bool:
    """Check whether an include reference points into an extract family."""
    return EXTRACTS_SEGMENT in PurePosixPath(reference).parts[:-1]


class TransclusionResolver:
    """Resolver for includes, literal includes and extracts.

    The resolver caches loaded extract documents and rendered entries,
    so one instance should be used per run: documents are read-only
    during a run.
    """

    def __init__(self, parser: 'DirectiveParser', *,
                 source_dir: Path | None = None,
                 max_depth: int = MAX_DEPTH) -> None:
        """Initialize the resolver.

        Args:
            parser: Parser used to re-parse transcluded markup.
            source_dir: Fallback documentation root for absolute references.
            max_depth: Bound for include nesting and inheritance chains.
        """
        self.parser = parser
        self.source_dir = source_dir
        self.max_depth = max_depth

        self._documents: dict[Path, ExtractDocument] = {}
        self._rendered: dict[tuple[Path, str], Rendered] = {}

    def resolve(self, nodes: 'Iterable[DirectiveNode]', filename: str | None) -> ResolveResult:
        """Resolve every transclusion reference in a node forest.

        Args:
            nodes: Parsed nodes of a file.
            filename: Path of the file the nodes come from.

        Returns:
            Resolved nodes and the errors encountered. Failed references
            are kept in place as `unresolved` nodes.
        """
        errors: list[ProcTestError] = []
        stack = (Path(filename).resolve(),) if filename else ()

        resolved = self._walk(tuple(nodes), filename, stack, errors)

        return resolved, tuple(errors)

    def locate(self, reference: str, filename: str | None) -> Path:
        """Map a reference to a filesystem path.

        Absolute references resolve against the nearest ancestor
        `source` directory of the including file, then the configured
        source directory, then the including file's directory.
        """
        base = Path(filename).parent if filename else Path.cwd()

        if not reference.startswith('/'):
            return base / reference

        root = base
        if filename and (
            ancestor := next((item for item in Path(filename).parents if item.name == SOURCE_SEGMENT), None)
        ):
            root = ancestor
        elif self.source_dir is not None:
            root = self.source_dir

        return root / reference.lstrip('/')

    def _walk(self, nodes: tuple[DirectiveNode, ...], filename: str | None,
              stack: tuple[Path, ...], errors: list[ProcTestError]) -> tuple[DirectiveNode, ...]:
        """Resolve references in sibling nodes, splicing includes in place."""
        result: list[DirectiveNode] = []

        for node in nodes:
            try:
                if node.is_directive('include'):
                    result.extend(self._include(node, filename, stack, errors))
                    continue

                if node.is_directive('literalinclude') or (node.is_directive('input') and node.arguments):
                    result.append(self._literal(node, filename))
                    continue

            except TransclusionError as error:
                errors.append(error)
                result.append(DirectiveNode(
                    kind='unresolved',
                    name=node.name,
                    arguments=node.arguments,
                    options=node.options,
                    body=error.message,
                    location=node.location,
                ))
                continue

            if node.children:
                children = self._walk(node.children, filename, stack, errors)
                node = node.model_copy(update={'children': children})

            result.append(node)

        return tuple(result)

    def _include(self, node: DirectiveNode, filename: str | None,
                 stack: tuple[Path, ...], errors: list[ProcTestError]) -> tuple[DirectiveNode, ...]:
        """Resolve an `include` into the re-parsed nodes of its target."""
        if len(stack) > self.max_depth:
            raise self._error(f'Include depth exceeds {self.max_depth}', node)

        path = self.locate(node.arguments, filename)

        if is_extract(node.arguments):
            text, source = self.extract(path, node), path
        else:
            if path.resolve() in stack:
                raise self._error(f'Include cycle on {node.arguments!r}', node)
            text, source = self._read(path, node), path

        text = self._slice(text, node)

        nodes, parse_errors = self.parser.parse(text, f'{source}')
        errors.extend(parse_errors)

        return self._walk(nodes, f'{source}', (*stack, path.resolve()), errors)

    def _literal(self, node: DirectiveNode, filename: str | None) -> DirectiveNode:
        """Resolve a literal include into a literal directive with a body."""
        path = self.locate(node.arguments, filename)

        text = self._slice(self._read(path, node), node)
        if (width := node.options.get('dedent')) is not None:
            try:
                text = dedent_lines(text, width)
            except ValueError as base:
                raise self._error(f'Invalid dedent value {width!r}', node, base) from base

        return node.model_copy(update={'body': text.strip('\n')})

    def extract(self, path: Path, node: DirectiveNode | None = None) -> str:
        """Render the extract entry identified by a reference path.

        Args:
            path: Reference path with an `extracts` directory segment.
            node: Referencing node, for error locations.

        Returns:
            Fully substituted extract content.

        Raises:
            TransclusionError: If no family file holds the entry, or its
                inheritance chain is broken or cyclic.
        """
        directory = next((item for item in path.parents if item.name == EXTRACTS_SEGMENT), None)
        if directory is None:
            raise self._error(f'Not an extract reference: {path}', node)

        stem = path.stem
        for family_file in sorted(directory.parent.glob(f'{EXTRACTS_SEGMENT}*.yaml')):
            family = family_file.stem.removeprefix(EXTRACTS_SEGMENT).lstrip('-')
            candidates = [stem]
            if family and stem.startswith(f'{family}-'):
                candidates.append(stem.removeprefix(f'{family}-'))

            document = self.load_extracts(family_file, node)
            for ref in candidates:
                if ref in document.entries:
                    content, replacement = self.lookup(family_file, ref, node=node)
                    return render_template(content or '', replacement)

        raise self._error(f'Extract {stem!r} not found near {directory}', node)

    def lookup(self, path: Path, ref: str, trail: tuple[tuple[Path, str], ...] = (),
               node: DirectiveNode | None = None) -> Rendered:
        """Resolve an entry's content template and merged replacement map.

        The closer entry's replacement keys take precedence over inherited
        ones; content is the closest entry's own content. Results are
        memoized by `(file, ref)`.

        Raises:
            TransclusionError: On a missing entry, a cycle, or a chain
                deeper than the configured bound.
        """
        key = (path, ref)
        if key in self._rendered:
            return self._rendered[key]

        if key in trail:
            chain = ' -> '.join(item for _, item in (*trail, key))
            raise self._error(f'Extract inheritance cycle: {chain}', node)

        if len(trail) >= self.max_depth:
            raise self._error(f'Extract inheritance deeper than {self.max_depth} at {ref!r}', node)

        entry = self.load_extracts(path, node).entries.get(ref)
        if entry is None:
            raise self._error(f'Extract {ref!r} not found in {path}', node)

        content = entry.content
        replacement = dict(entry.replacement)

        if entry.inherit is not None:
            parent = path.parent / entry.inherit.file if entry.inherit.file else path
            inherited, defaults = self.lookup(parent, entry.inherit.ref, (*trail, key), node)
            replacement = {**defaults, **entry.replacement}
            if content is None:
                content = inherited

        self._rendered[key] = (content, replacement)

        return content, replacement

    def load_extracts(self, path: Path, node: DirectiveNode | None = None) -> ExtractDocument:
        """Load and cache an extract family file."""
        if path in self._documents:
            return self._documents[path]

        text = self._read(path, node)
        try:
            document = ExtractDocument.from_documents(f'{path}', list(safe_load_all(text)))
        except (YAMLError, ValidationError) as base:
            raise self._error(f'Malformed extract file {path}', node, base) from base

        self._documents[path] = document

        return document

    def _read(self, path: Path, node: DirectiveNode | None) -> str:
        """Read a referenced file."""
        try:
            return path.read_text(encoding='utf-8')
        except OSError as base:
            raise self._error(f'Cannot read included file {path}', node, base) from base

    def _slice(self, text: str, node: DirectiveNode) -> str:
        """Apply `start-after` and `end-before` options of a node."""
        try:
            return slice_lines(
                text,
                node.options.get('start-after'),
                node.options.get('end-before'),
            )
        except TransclusionError as base:
            raise self._error(f'{base.message} in {node.arguments!r}', node) from base

    @staticmethod
    def _error(message: str, node: DirectiveNode | None,
               error: Exception | None = None) -> TransclusionError:
        """Build a transclusion error located at the referencing node."""
        return TransclusionError.from_location(
            message,
            node.location if node is not None else None,
            error=error,
        )
