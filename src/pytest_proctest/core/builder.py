"""Procedure model builder.

This module walks a resolved node forest into `Procedure` models. A
procedure boundary is either an explicit `procedure` directive or a
maximal run of sibling ordered-list items outside of one. Every `step`
directive or top-level list item becomes exactly one `Step`: tab sets and
composable-tutorial selections inside a step become `VariantSlot`s of
that step, never additional steps.
"""

from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING

from pytest_proctest.names import HYPERLINK_PATTERN, ROLE_PATTERN, slugify
from pytest_proctest.schema import (
    Action,
    ActionKind,
    ContentBlock,
    DirectiveNode,
    Procedure,
    SourceLocation,
    Step,
    StepItem,
    VariantAlternative,
    VariantSlot,
)

from .classifier import CLI_TOOLS, classify

if TYPE_CHECKING:
    from pytest_proctest.config import RoleSettings

#: Directives holding a literal code body.
CODE_DIRECTIVES = frozenset({'code', 'code-block', 'sourcecode', 'literalinclude'})

#: Headings up to this rank title the procedures that follow them.
TITLE_RANK = 2


def tutorial_options(node: DirectiveNode) -> tuple[str, ...]:
    """Ordered option names of a `composable-tutorial` directive."""
    return tuple(
        option.strip()
        for option in node.options.get('options', '').split(',')
        if option.strip()
    )


def role_target(target: str) -> str:
    """Strip an explicit title from a role target: `title <target>`."""
    if target.endswith('>') and '<' in target:
        return target[target.rindex('<') + 1:-1].strip()

    return target.strip()


class ProcedureBuilder:
    """Builder of procedures from resolved directive nodes."""

    def __init__(self, *, languages: Mapping[str, str] | None = None,
                 cli_tools: Iterable[str] = CLI_TOOLS,
                 roles: Mapping[str, 'RoleSettings'] | None = None,
                 check_urls: bool = True) -> None:
        """Initialize the builder.

        Args:
            languages: Extra language aliases for the classifier.
            cli_tools: Program names whose invocations are `cli` actions.
            roles: Role table; roles with a URL template become `url` actions.
            check_urls: Whether hyperlinks are executable `url` actions.
        """
        self.languages = dict(languages or {})
        self.cli_tools = frozenset(cli_tools)
        self.roles = dict(roles or {})
        self.check_urls = check_urls

        self._title: str | None = None
        self._filename: str | None = None

    def build(self, nodes: Iterable[DirectiveNode], filename: str | None = None) -> tuple[Procedure, ...]:
        """Extract all procedures of a file in document order.

        Args:
            nodes: Resolved top-level nodes of the file.
            filename: Path of the file.

        Returns:
            Procedures found in the file.
        """
        self._title = None
        self._filename = filename

        procedures: list[Procedure] = []
        self._scan(tuple(nodes), None, procedures)

        return tuple(procedures)

    def _scan(self, nodes: tuple[DirectiveNode, ...], options: tuple[str, ...] | None,
              procedures: list[Procedure]) -> None:
        """Search sibling nodes for procedures, recursing into containers."""
        run: list[DirectiveNode] = []

        for node in nodes:
            if node.kind == 'list-item' and node.ordered:
                run.append(node)
                continue

            if run:
                procedures.append(self._from_items(run, options))
                run = []

            if node.kind == 'heading':
                if node.rank is not None and node.rank <= TITLE_RANK:
                    self._title = node.body
            elif node.is_directive('procedure'):
                procedures.append(self._from_directive(node, options))
            elif node.is_directive('composable-tutorial'):
                self._scan(node.children, tutorial_options(node), procedures)
            elif node.children:
                self._scan(node.children, options, procedures)

        if run:
            procedures.append(self._from_items(run, options))

    def _from_directive(self, node: DirectiveNode, options: tuple[str, ...] | None) -> Procedure:
        """Build a procedure from a `procedure` directive."""
        leading: list[StepItem] = []
        steps: list[Step] = []

        for child in node.children:
            if child.is_directive('step') or (child.kind == 'list-item' and child.ordered):
                steps.append(self._step(child, options))
                continue

            items = self._items((child,), options)
            if steps:
                steps[-1] = steps[-1].model_copy(update={'items': (*steps[-1].items, *items)})
            else:
                leading.extend(items)

        if not steps and leading:
            steps.append(Step(items=tuple(leading), location=node.location))
        elif leading:
            steps[0] = steps[0].model_copy(update={'items': (*leading, *steps[0].items)})

        return Procedure(
            title=node.arguments or self._title,
            filename=self._filename,
            steps=tuple(steps),
            location=node.location,
            error=self._error(node.children),
        )

    def _from_items(self, items: list[DirectiveNode], options: tuple[str, ...] | None) -> Procedure:
        """Build a procedure from a run of ordered list items."""
        location = SourceLocation(
            filename=self._filename,
            line_start=items[0].location.line_start,
            line_end=items[-1].location.line_end,
        )

        return Procedure(
            title=self._title,
            filename=self._filename,
            steps=tuple(self._step(item, options) for item in items),
            location=location,
            error=self._error(items),
        )

    def _step(self, node: DirectiveNode, options: tuple[str, ...] | None) -> Step:
        """Build one step from a `step` directive or a list item."""
        items = tuple(self._items(node.children, options))

        title = node.arguments if node.kind == 'directive' else node.body
        if not title:
            title = next((item.text for item in items if isinstance(item, ContentBlock)), None)

        return Step(
            title=title or None,
            items=items,
            location=node.location,
        )

    def _items(self, nodes: Iterable[DirectiveNode], options: tuple[str, ...] | None) -> list[StepItem]:
        """Convert step content nodes into step items in document order."""
        items: list[StepItem] = []

        for node in nodes:
            if node.kind in ('paragraph', 'heading'):
                items.append(ContentBlock(text=node.body, location=node.location))
                items.extend(self._inline(node))

            elif node.kind == 'literal':
                items.append(self._action(None, node.body, node))

            elif node.kind == 'unresolved':
                continue

            elif node.is_directive(*CODE_DIRECTIVES):
                label = node.options.get('language') or node.arguments or None
                filename = None
                if node.is_directive('literalinclude'):
                    label, filename = node.options.get('language'), node.arguments
                items.append(self._action(label, node.body, node, filename))

            elif node.is_directive('io-code-block'):
                items.extend(self._io_block(node))

            elif node.is_directive('tabs'):
                items.append(self._tabs(node, options))

            elif node.is_directive('selected-content'):
                items.append(self._selected(node, options))

            elif node.is_directive('composable-tutorial'):
                items.extend(self._items(node.children, tutorial_options(node)))

            elif node.children:
                items.extend(self._items(node.children, options))

            elif node.kind == 'list-item' and node.body:
                items.append(ContentBlock(text=node.body, location=node.location))

        return items

    def _action(self, label: str | None, body: str, node: DirectiveNode,
                filename: str | None = None) -> Action:
        """Classify a literal body into an action."""
        classification = classify(
            label,
            body,
            filename,
            aliases=self.languages,
            cli_tools=self.cli_tools,
        )

        return Action(
            kind=classification.kind,
            language=classification.language,
            declared=label,
            body=body,
            source=classification.source,
            executable=classification.executable,
            location=node.location,
        )

    def _io_block(self, node: DirectiveNode) -> list[StepItem]:
        """Convert an `io-code-block`: its input is an action, its output is content."""
        items: list[StepItem] = []

        for child in node.children:
            if child.is_directive('input'):
                label = child.options.get('language') or node.options.get('language')
                filename = child.arguments or None
                if filename and not label and '.' not in filename:
                    label, filename = filename, None
                items.append(self._action(label, child.body, child, filename))
            elif child.is_directive('output'):
                items.append(ContentBlock(text=child.body, location=child.location))

        return items

    def _inline(self, node: DirectiveNode) -> list[Action]:
        """Extract hyperlink, UI and role references from paragraph text."""
        found: list[tuple[int, Action]] = []

        for match in HYPERLINK_PATTERN.finditer(node.body):
            found.append((match.start(), self._reference('url', match['url'], node)))

        for match in ROLE_PATTERN.finditer(node.body):
            role = match['role'].rsplit(':', 1)[-1]
            target = role_target(match['target'])
            if role == 'guilabel':
                found.append((match.start(), self._reference('ui', target, node)))
            elif role in self.roles:
                url = self.roles[role].render(target)
                found.append((match.start(), self._reference('url', url, node)))

        return [action for _, action in sorted(found, key=lambda item: item[0])]

    def _reference(self, kind: ActionKind, target: str, node: DirectiveNode) -> Action:
        """Build a `url` or `ui` action from an inline reference."""
        return Action(
            kind=kind,
            language='text',
            body=target,
            source=target,
            executable=kind != 'url' or self.check_urls,
            location=node.location,
        )

    def _tabs(self, node: DirectiveNode, options: tuple[str, ...] | None) -> VariantSlot:
        """Convert a tab set into a variant slot keyed by tab identifiers."""
        alternatives = []
        for child in node.children:
            if not child.is_directive('tab'):
                continue
            tabid = child.options.get('tabid') or slugify(child.arguments)
            alternatives.append(VariantAlternative(
                key=(tabid,),
                title=child.arguments or None,
                items=tuple(self._items(child.children, options)),
            ))

        if tabset := node.options.get('tabset'):
            dimension = ('tabset', tabset)
        else:
            dimension = ('tabs', *sorted({alternative.key[0] for alternative in alternatives}))

        return VariantSlot(
            dimension=dimension,
            alternatives=tuple(alternatives),
            location=node.location,
        )

    def _selected(self, node: DirectiveNode, options: tuple[str, ...] | None) -> VariantSlot:
        """Convert a `selected-content` block into a single-alternative slot."""
        selections = tuple(
            selection.strip()
            for selection in node.options.get('selections', '').split(',')
        )

        return VariantSlot(
            dimension=('tutorial', *(options or ())),
            options=options,
            alternatives=(VariantAlternative(
                key=selections,
                items=tuple(self._items(node.children, options)),
            ),),
            location=node.location,
        )

    @staticmethod
    def _error(nodes: Iterable[DirectiveNode]) -> str | None:
        """Return the message of the first unresolved reference, if any."""
        for node in nodes:
            for item in node.walk():
                if item.kind == 'unresolved':
                    return item.body

        return None
