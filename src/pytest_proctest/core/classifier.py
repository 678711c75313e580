"""Action classification.

This module decides, per leaf element, whether it is a testable action,
of which kind, and in which canonical language. Classification is a pure
function over the declared language label, the literal content and an
optional referenced file name; all heuristics are table-driven.

Content sniffing recovers shell sessions and recognizable code mislabeled
as `text`, strips shell prompts together with the output echoed after
them, and suppresses data-only literals (JSON or BSON dumps) that are
labeled as code.
"""

from collections.abc import Iterable, Mapping
from json import JSONDecodeError, loads
from pathlib import PurePosixPath
from re import MULTILINE, Pattern
from re import compile as regexp

from pydantic import Field

from pytest_proctest.models import SchemaModel
from pytest_proctest.names import Language, first_command
from pytest_proctest.schema import Action, ActionKind  # noqa: TC001

#: Languages the pipeline knows about.
CANONICAL_LANGUAGES = frozenset({
    'bash',
    'c',
    'cpp',
    'csharp',
    'go',
    'http',
    'java',
    'javascript',
    'json',
    'kotlin',
    'php',
    'python',
    'ruby',
    'rust',
    'scala',
    'shell',
    'swift',
    'text',
    'typescript',
    'xml',
    'yaml',
})

#: Recognized spellings of canonical languages.
LANGUAGE_ALIASES: dict[str, str] = {
    '': 'text',
    'c#': 'csharp',
    'c++': 'cpp',
    'console': 'shell',
    'cs': 'csharp',
    'golang': 'go',
    'ini': 'text',
    'js': 'javascript',
    'kt': 'kotlin',
    'node': 'javascript',
    'nodejs': 'javascript',
    'none': 'text',
    'py': 'python',
    'python3': 'python',
    'rb': 'ruby',
    'rs': 'rust',
    'sh': 'shell',
    'ts': 'typescript',
    'txt': 'text',
    'yml': 'yaml',
    'zsh': 'shell',
}

#: Canonical language per referenced file extension.
LANGUAGE_EXTENSIONS: dict[str, str] = {
    '.bash': 'bash',
    '.c': 'c',
    '.cc': 'cpp',
    '.cjs': 'javascript',
    '.cpp': 'cpp',
    '.cs': 'csharp',
    '.go': 'go',
    '.h': 'c',
    '.hpp': 'cpp',
    '.java': 'java',
    '.js': 'javascript',
    '.json': 'json',
    '.kt': 'kotlin',
    '.mjs': 'javascript',
    '.php': 'php',
    '.py': 'python',
    '.rb': 'ruby',
    '.rs': 'rust',
    '.scala': 'scala',
    '.sh': 'shell',
    '.swift': 'swift',
    '.ts': 'typescript',
    '.txt': 'text',
    '.xml': 'xml',
    '.yaml': 'yaml',
    '.yml': 'yaml',
}

#: Languages whose blocks are executable programs.
EXECUTABLE_LANGUAGES = frozenset({
    'bash',
    'c',
    'cpp',
    'csharp',
    'go',
    'http',
    'java',
    'javascript',
    'kotlin',
    'php',
    'python',
    'ruby',
    'rust',
    'scala',
    'shell',
    'swift',
    'typescript',
})

#: Command-line tools whose invocations are `cli` actions.
CLI_TOOLS = frozenset({
    'atlas',
    'mongod',
    'mongodump',
    'mongoexport',
    'mongoimport',
    'mongorestore',
    'mongos',
    'mongosh',
})

SHELL_LANGUAGES = frozenset({'shell', 'bash'})

PROMPT_PATTERN = regexp(r'^\s*[$%]\s(?P<command>.*)$')
SHEBANG_PATTERN = regexp(r'^#!\s*\S*?(?:/env\s+)?(?P<program>[\w.+-]+)(?:\s|$)')

#: Syntax sniffers for blocks labeled `text`, tried in order.
SYNTAX_SNIFFERS: tuple[tuple[str, Pattern[str]], ...] = (
    ('python', regexp(
        r'^(?:import\s+\w+|from\s+[\w.]+\s+import\s|def\s+\w+\s*\(|class\s+\w+\s*[:(]|print\()',
        MULTILINE,
    )),
    ('javascript', regexp(
        r'^(?:(?:const|let|var)\s+\w+\s*=|console\.log\(|(?:async\s+)?function\s+\w+\s*\()',
        MULTILINE,
    )),
)

#: Shell programs named by shebang lines.
SHEBANG_LANGUAGES = {
    'bash': 'bash',
    'node': 'javascript',
    'python': 'python',
    'python3': 'python',
    'sh': 'shell',
    'zsh': 'shell',
}

#: Constructor calls allowed inside data literals (extended JSON dumps).
DATA_CONSTRUCTORS = regexp(
    r'\b(?:ObjectId|ISODate|NumberLong|NumberInt|NumberDecimal|Timestamp|BinData|UUID|Date)\(\s*[^()]*\)',
)

DEFINITION_PATTERNS: dict[str, tuple[Pattern[str], ...]] = {
    'python': (
        regexp(r'^\s*(?:async\s+)?(?:def|class)\s+(\w+)', MULTILINE),
        regexp(r'^\s*(\w+)\s*(?::[^=\n]+)?=(?!=)', MULTILINE),
        regexp(r'^\s*(?:from\s+\S+\s+)?import\s+(?:\S+\s+as\s+)?(\w+)', MULTILINE),
    ),
    'javascript': (
        regexp(r'\b(?:const|let|var|function|class)\s+(\w+)'),
    ),
    'typescript': (
        regexp(r'\b(?:const|let|var|function|class|interface|type)\s+(\w+)'),
    ),
    'shell': (
        regexp(r'^\s*(?:export\s+)?(\w+)=', MULTILINE),
    ),
    'bash': (
        regexp(r'^\s*(?:export\s+|declare\s+(?:-\w+\s+)?)?(\w+)=', MULTILINE),
    ),
    'go': (
        regexp(r'\b(\w+)\s*:='),
        regexp(r'\b(?:var|const|func|type)\s+(\w+)'),
    ),
}

#: Markers of snippets that are complete programs on their own.
PROGRAM_PATTERNS: dict[str, Pattern[str]] = {
    'c': regexp(r'^\s*int\s+main\s*\(', MULTILINE),
    'cpp': regexp(r'^\s*int\s+main\s*\(', MULTILINE),
    'csharp': regexp(r'\bstatic\s+(?:async\s+)?(?:void|int|Task)\s+Main\s*\('),
    'go': regexp(r'^\s*package\s+\w+', MULTILINE),
    'java': regexp(r'^\s*public\s+(?:final\s+)?class\s+\w+', MULTILINE),
    'kotlin': regexp(r'^\s*fun\s+main\s*\(', MULTILINE),
    'rust': regexp(r'^\s*(?:pub\s+)?fn\s+main\s*\(', MULTILINE),
    'scala': regexp(r'^\s*object\s+\w+\s+extends\s+App\b|\bdef\s+main\s*\(', MULTILINE),
}

#: Fallback definitions for languages without a dedicated table entry.
GENERIC_DEFINITIONS = (
    regexp(r'\b(?:var|val|let|const|auto)\s+(\w+)'),
    regexp(r'^\s*(?:final\s+)?[\w.]+(?:<[^>\n]*>)?(?:\[\])?\s+(\w+)\s*=(?!=)', MULTILINE),
)

#: Lines continuing the statement above them.
CONTINUATION_PATTERN = regexp(r'^(?:[)\]}]|else\b|elif\b|except\b|finally\b|catch\b)')

IDENTIFIER_PATTERN = regexp(r'\b[A-Za-z_]\w*\b')
SHELL_VARIABLE_PATTERN = regexp(r'\$\{?(\w+)')


class Classification(SchemaModel):
    """Classifier decision for one leaf element."""

    kind: ActionKind
    language: Language

    executable: bool = Field(
        default=False,
        title='Executable flag',
    )
    source: str = Field(
        title='Normalized source',
        description='Content to execute, with prompts and echoed output stripped.',
    )


def canonical_language(label: str | None, filename: str | None = None,
                       aliases: Mapping[str, str] | None = None) -> str:
    """Normalize a declared language label to a canonical language.

    Args:
        label: Declared label, possibly absent.
        filename: Referenced file used when no label is declared.
        aliases: Extra alias table taking precedence over builtin aliases.

    Returns:
        A canonical language, `text` when unrecognized.
    """
    if label is None or not label.strip():
        if filename:
            return LANGUAGE_EXTENSIONS.get(PurePosixPath(filename).suffix.lower(), 'text')
        return 'text'

    normalized = label.strip().lower()
    if aliases and normalized in aliases:
        return aliases[normalized]

    if normalized in LANGUAGE_ALIASES:
        return LANGUAGE_ALIASES[normalized]

    if normalized in CANONICAL_LANGUAGES:
        return normalized

    return 'text'


def has_prompts(content: str) -> bool:
    """Check whether the content looks like a transcript of a shell session."""
    return any(PROMPT_PATTERN.match(line) for line in content.splitlines())


def strip_prompts(content: str) -> str:
    """Keep prompted commands with their continuations, drop echoed output."""
    if not has_prompts(content):
        return content

    commands: list[str] = []
    continued = False
    for line in content.splitlines():
        if match := PROMPT_PATTERN.match(line):
            commands.append(match['command'])
            continued = line.rstrip().endswith('\\')
        elif continued:
            commands.append(line)
            continued = line.rstrip().endswith('\\')

    return '\n'.join(commands)


def sniff(content: str) -> str:
    """Guess the language of an unlabeled block, `text` when unsure."""
    if has_prompts(content):
        return 'shell'

    first = content.lstrip().split('\n', 1)[0]
    if (match := SHEBANG_PATTERN.match(first)) and match['program'] in SHEBANG_LANGUAGES:
        return SHEBANG_LANGUAGES[match['program']]

    for language, pattern in SYNTAX_SNIFFERS:
        if pattern.search(content):
            return language

    return 'text'


def is_data_literal(content: str) -> bool:
    """Check whether a code block is structurally a data dump.

    JSON documents and extended-JSON shell output (objects or arrays
    holding only literals and type constructors) have no statements.
    """
    text = content.strip()
    if not text or text[0] not in '{[' or text[-1] not in '}]':
        return False

    try:
        loads(text)
    except JSONDecodeError:
        pass
    else:
        return True

    bare = DATA_CONSTRUCTORS.sub('null', text)

    return not any(token in bare for token in ('(', ';', '=', 'function'))


def classify(label: str | None, content: str, filename: str | None = None, *,
             aliases: Mapping[str, str] | None = None,
             cli_tools: Iterable[str] = CLI_TOOLS) -> Classification:
    """Classify a leaf element into an action kind and language.

    Args:
        label: Declared language label, possibly absent or wrong.
        content: Literal content of the element.
        filename: Referenced file, for extension-based language detection.
        aliases: Extra language aliases from configuration.
        cli_tools: Program names that make a shell snippet a `cli` action.

    Returns:
        Classification with kind, canonical language, executable flag
        and normalized source.
    """
    language = canonical_language(label, filename, aliases)
    if language == 'text':
        language = sniff(content)

    source = content
    if language in SHELL_LANGUAGES:
        source = strip_prompts(content)
        kind: ActionKind = 'shell'
        if first_command(source) in frozenset(cli_tools):
            kind = 'cli'
    elif language == 'http':
        kind = 'api'
    else:
        kind = 'code'

    executable = (
        language in EXECUTABLE_LANGUAGES
        and bool(source.strip())
        and not (kind == 'code' and is_data_literal(source))
    )

    return Classification(
        kind=kind,
        language=language,
        executable=executable,
        source=source,
    )


def is_program(language: str, source: str) -> bool:
    """Whether a snippet is a complete program that cannot absorb fragments."""
    pattern = PROGRAM_PATTERNS.get(language)

    return pattern is not None and pattern.search(source) is not None


def merge_units(actions: Iterable[Action]) -> list[Action]:
    """Concatenate adjacent executable code snippets of one language.

    Successive fragments of one larger example are executed as a single
    unit. Only directly adjacent `code` actions are merged, and a complete
    program never merges with its neighbors.
    """
    merged: list[Action] = []

    for action in actions:
        previous = merged[-1] if merged else None
        if (
            previous is not None
            and previous.kind == action.kind == 'code'
            and previous.executable and action.executable
            and previous.language == action.language
            and not is_program(previous.language, previous.source)
            and not is_program(action.language, action.source)
        ):
            location = previous.location.model_copy(update={
                'line_end': max(previous.location.line_end, action.location.line_end),
            })
            merged[-1] = previous.model_copy(update={
                'body': f'{previous.body}\n{action.body}',
                'source': f'{previous.source}\n{action.source}',
                'location': location,
            })
            continue

        merged.append(action)

    return merged


def definitions(language: str, source: str) -> set[str]:
    """Extract names a snippet defines."""
    patterns = DEFINITION_PATTERNS.get(language, GENERIC_DEFINITIONS)

    return {
        match.group(1)
        for pattern in patterns
        for match in pattern.finditer(source)
    }


def statements(source: str) -> list[str]:
    """Split a snippet into top-level statements.

    A statement continues over indented lines, lines inside open brackets,
    closing brackets, continuation keywords and the definitions following
    decorators.
    """
    chunks: list[list[str]] = []
    depth = 0

    for line in source.splitlines():
        stripped = line.strip()
        continues = (
            not stripped
            or depth > 0
            or line[:1].isspace()
            or CONTINUATION_PATTERN.match(stripped) is not None
            or (bool(chunks) and chunks[-1][-1].lstrip().startswith('@'))
        )
        if chunks and continues:
            chunks[-1].append(line)
        elif stripped:
            chunks.append([line])

        depth = max(0, depth + sum(map(stripped.count, '([{')) - sum(map(stripped.count, ')]}')))

    return ['\n'.join(chunk).rstrip() for chunk in chunks]


def declarations(language: str, source: str) -> str:
    """Keep the top-level statements of a snippet that define names.

    Imports, assignments and function or class definitions are kept;
    other statements (calls, prints, loops) are dropped so that replaying
    them never repeats their side effects.
    """
    kept = []
    for statement in statements(source):
        head = next((
            line
            for line in statement.splitlines()
            if line.strip() and not line.lstrip().startswith('@')
        ), '')
        if definitions(language, head):
            kept.append(statement)

    return '\n'.join(kept)


def references(language: str, source: str) -> set[str]:
    """Extract names a snippet may use."""
    if language in SHELL_LANGUAGES:
        return set(SHELL_VARIABLE_PATTERN.findall(source))

    return set(IDENTIFIER_PATTERN.findall(source))
