"""Directive markup parser.

This module tokenizes a lightweight reStructuredText-like dialect into a
forest of immutable `DirectiveNode` values. It recognizes:

- block directives (`.. name:: arguments`) with an option block and an
  indentation-scoped body;
- ordered (`#.`, `1.`, `a.`, `1)`, `(a)`) and bullet list items,
  including nested sub-lists;
- headings with underline and optional overline adornment, ranked by
  first occurrence of each adornment style in the file;
- paragraphs, `::` literal blocks, comments and block quotes.

The parser never aborts on a malformed construct: it records a
`ParseError` scoped to the node, drops that node, and continues with its
siblings.
"""

from collections.abc import Iterable
from re import Match

from pytest_proctest.errors import ParseError
from pytest_proctest.names import (
    ADORNMENT_PATTERN,
    BULLET_PATTERN,
    COMMENT_PATTERN,
    DIRECTIVE_PATTERN,
    ENUMERATOR_PATTERN,
    OPTION_PATTERN,
    base_name,
)
from pytest_proctest.schema import DirectiveNode, SourceLocation

#: Directives whose body is literal text rather than nested markup.
LITERAL_DIRECTIVES = frozenset({
    'code',
    'code-block',
    'sourcecode',
    'literalinclude',
    'input',
    'output',
})

#: Literal directives that are meaningless without a body.
CONTENT_REQUIRED = frozenset({
    'code',
    'code-block',
    'sourcecode',
})

#: Numbered source lines: (0-based line number, text).
type Lines = list[tuple[int, str]]

#: Parser output: top-level nodes and recoverable errors.
type ParseResult = tuple[tuple[DirectiveNode, ...], tuple[ParseError, ...]]


def _indent(line: str) -> int:
    """Count leading spaces of a line."""
    return len(line) - len(line.lstrip(' '))


def _dedent(lines: Lines, width: int) -> Lines:
    """Remove `width` columns from every non-blank line."""
    return [
        (num, text[width:] if text.strip() else '')
        for num, text in lines
    ]


def _join(lines: Lines) -> str:
    """Join line texts dropping leading and trailing blank lines."""
    texts = [text.rstrip() for _, text in lines]
    while texts and not texts[0]:
        texts.pop(0)
    while texts and not texts[-1]:
        texts.pop()

    return '\n'.join(texts)


class _Reader:
    """Single-use parsing state for one source text."""

    def __init__(self, filename: str | None, literals: frozenset[str]) -> None:
        self.filename = filename
        self.literals = literals

        self.errors: list[ParseError] = []
        self.ranks: dict[tuple[str, bool], int] = {}

    def location(self, start: int, end: int) -> SourceLocation:
        """Build a source location for an absolute line span."""
        return SourceLocation(
            filename=self.filename,
            line_start=start,
            line_end=max(start, end),
        )

    def fail(self, message: str, start: int, end: int) -> None:
        """Record a parse error for a node span."""
        self.errors.append(ParseError.from_location(message, self.location(start, end)))

    @staticmethod
    def region_end(lines: Lines, start: int) -> int:
        """Find the end of an indentation-scoped region.

        The region contains blank lines and lines indented deeper than the
        current block. Trailing blank lines are not part of the region.

        Returns:
            Index of the first line after the region.
        """
        end = last = start
        while end < len(lines):
            text = lines[end][1]
            if text.strip():
                if _indent(text) == 0:
                    break
                last = end + 1
            end += 1

        return last

    def block(self, lines: Lines) -> list[DirectiveNode]:
        """Parse a dedented block of lines into sibling nodes."""
        nodes: list[DirectiveNode] = []

        index = 0
        while index < len(lines):
            text = lines[index][1]
            if not text.strip():
                index += 1
                continue

            if _indent(text) > 0:
                end = self.region_end(lines, index)
                width = min(_indent(line) for _, line in lines[index:end] if line.strip())
                nodes.extend(self.block(_dedent(lines[index:end], width)))
                index = end
                continue

            if match := DIRECTIVE_PATTERN.match(text):
                index = self.directive(lines, index, match, nodes)
                continue

            if COMMENT_PATTERN.match(text):
                index = self.region_end(lines, index + 1)
                continue

            if (end := self.heading(lines, index, nodes)) is not None:
                index = end
                continue

            if match := (ENUMERATOR_PATTERN.match(text) or BULLET_PATTERN.match(text)):
                index = self.list_item(lines, index, match, nodes)
                continue

            index = self.paragraph(lines, index, nodes)

        return nodes

    def directive(self, lines: Lines, index: int, match: Match[str],
                  nodes: list[DirectiveNode]) -> int:
        """Parse a directive with its option block and body."""
        start = lines[index][0]
        name = match['name']
        arguments = (match['arguments'] or '').strip()

        end = self.region_end(lines, index + 1)
        region = lines[index + 1:end]
        last = region[-1][0] if region else start

        options: dict[str, str] = {}
        option_indent: int | None = None
        position = 0
        while position < len(region):
            text = region[position][1]
            if not text.strip():
                break
            option = OPTION_PATTERN.match(text.strip())
            if not option or option_indent not in (None, _indent(text)):
                break
            option_indent = _indent(text)
            options[option['key'].strip()] = (option['value'] or '').strip()
            position += 1

        body = region[position:]
        filled = [text for _, text in body if text.strip()]

        width = option_indent
        if width is None:
            width = _indent(filled[0]) if filled else 0

        if any(_indent(text) < width for text in filled):
            self.fail(f'Inconsistent indentation in {name!r} directive body', start, last)
            return end

        body = _dedent(body, width)
        directive = base_name(name)

        if directive in self.literals:
            content = _join(body)
            if not content and directive in CONTENT_REQUIRED:
                self.fail(f'Directive {name!r} has no content', start, last)
                return end
            children: tuple[DirectiveNode, ...] = ()
        else:
            content = _join(body)
            children = tuple(self.block(body))

        nodes.append(DirectiveNode(
            kind='directive',
            name=name,
            arguments=arguments,
            options=options,
            body=content,
            children=children,
            location=self.location(start, last),
        ))

        return end

    def heading(self, lines: Lines, index: int, nodes: list[DirectiveNode]) -> int | None:
        """Parse a heading or a transition starting at `index`, if any.

        Returns:
            Index after the construct, or `None` if the line does not
            start a heading.
        """
        num, text = lines[index]
        following = lines[index + 1][1] if index + 1 < len(lines) else ''
        overline = self.adornment(text)

        if overline is not None:
            if not following.strip():
                # Transition line: no content.
                return index + 1

            if index + 2 < len(lines) and self.adornment(following) is None:
                under_num, under = lines[index + 2]
                underline = self.adornment(under)
                if underline is not None:
                    if underline != overline or len(under.rstrip()) != len(text.rstrip()):
                        self.fail('Title overline and underline mismatch', num, under_num)
                    self.add_heading(following.strip(), (overline, True), num, under_num, nodes)
                    return index + 3

            return None

        underline = self.adornment(following)
        if underline is None:
            return None

        title = text.strip()
        if len(following.rstrip()) < len(title):
            self.fail('Title underline too short', num, num + 1)

        self.add_heading(title, (underline, False), num, lines[index + 1][0], nodes)

        return index + 2

    @staticmethod
    def adornment(text: str) -> str | None:
        """Return the adornment character of a section line, if it is one."""
        stripped = text.rstrip()
        if stripped == '::' or _indent(text) > 0:
            return None

        if match := ADORNMENT_PATTERN.match(stripped):
            return match['char']

        return None

    def add_heading(self, title: str, style: tuple[str, bool], start: int, end: int,
                    nodes: list[DirectiveNode]) -> None:
        """Append a heading ranked by the first occurrence of its style."""
        rank = self.ranks.setdefault(style, len(self.ranks) + 1)

        nodes.append(DirectiveNode(
            kind='heading',
            body=title,
            rank=rank,
            location=self.location(start, end),
        ))

    def list_item(self, lines: Lines, index: int, match: Match[str],
                  nodes: list[DirectiveNode]) -> int:
        """Parse an ordered or bullet list item with its nested content."""
        num, text = lines[index]
        first = match['text'] or ''

        groups = match.groupdict()
        ordered = 'enum' in groups
        if ordered:
            enumerator = groups['paren'] or groups['enum']
        else:
            enumerator = groups['marker']

        column = len(text) - len(first) if first else len(match['marker']) + 1

        end = self.region_end(lines, index + 1)
        continuation = lines[index + 1:end]
        width = min([
            column,
            *(_indent(line) for _, line in continuation if line.strip()),
        ])

        body = [(num, first), *_dedent(continuation, width)]

        nodes.append(DirectiveNode(
            kind='list-item',
            body=first.strip(),
            children=tuple(self.block(body)),
            enumerator=enumerator,
            ordered=ordered,
            location=self.location(num, continuation[-1][0] if continuation else num),
        ))

        return end

    def paragraph(self, lines: Lines, index: int, nodes: list[DirectiveNode]) -> int:
        """Parse a paragraph and an optional `::` literal block after it."""
        collected: Lines = []

        while index < len(lines):
            num, text = lines[index]
            if not text.strip() or _indent(text) > 0:
                break
            if collected and DIRECTIVE_PATTERN.match(text):
                break
            if collected and index + 1 < len(lines) and self.adornment(lines[index + 1][1]) is not None:
                break
            collected.append((num, text))
            index += 1

        content = _join(collected)
        literal = content.endswith('::')

        if literal:
            if content == '::':
                content = ''
            elif content.endswith(' ::'):
                content = content[:-3]
            else:
                content = content[:-1]

        if content:
            nodes.append(DirectiveNode(
                kind='paragraph',
                body=content,
                location=self.location(collected[0][0], collected[-1][0]),
            ))

        if not literal:
            return index

        start = index
        while start < len(lines) and not lines[start][1].strip():
            start += 1

        if start >= len(lines) or _indent(lines[start][1]) == 0:
            return index

        end = self.region_end(lines, start)
        width = min(_indent(line) for _, line in lines[start:end] if line.strip())

        nodes.append(DirectiveNode(
            kind='literal',
            body=_join(_dedent(lines[start:end], width)),
            location=self.location(lines[start][0], lines[end - 1][0]),
        ))

        return end


class DirectiveParser:
    """Parser for the directive markup dialect.

    The parser is stateless between calls: heading ranks and errors are
    tracked per parsed text, so one instance can be shared by the whole
    pipeline, including recursive parsing of transcluded text.
    """

    def __init__(self, *, literal_directives: Iterable[str] = LITERAL_DIRECTIVES) -> None:
        """Initialize the parser.

        Args:
            literal_directives: Base names of directives whose body is
                kept as literal text instead of being parsed.
        """
        self.literal_directives = frozenset(literal_directives)

    def parse(self, text: str, filename: str | None = None) -> ParseResult:
        """Parse markup text into a node forest.

        Args:
            text: Raw markup text.
            filename: Optional source file name used in locations and errors.

        Returns:
            A tuple of top-level nodes and the parse errors encountered.
        """
        lines = [
            (num, line.expandtabs(8).rstrip())
            for num, line in enumerate(text.splitlines())
        ]

        reader = _Reader(filename, self.literal_directives)
        nodes = reader.block(lines)

        return tuple(nodes), tuple(reader.errors)
