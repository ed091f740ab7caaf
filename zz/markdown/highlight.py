# zz/markdown/highlight.py
"""Per-line syntax highlighting for streamed code blocks.

Code arrives one line at a time, so each line is highlighted on its own with
the lexer named by the fence's language tag. Unknown languages and any
Pygments failure fall back to the plain line.
"""

import logging
from functools import lru_cache
from typing import Optional

from pygments import highlight
from pygments.formatters import TerminalTrueColorFormatter
from pygments.lexer import Lexer
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

logger = logging.getLogger(__name__)

# Common language aliases mapping
LANGUAGE_ALIASES = {
    'js': 'javascript',
    'ts': 'typescript',
    'py': 'python',
    'rb': 'ruby',
    'yml': 'yaml',
    'sh': 'bash',
    'shell': 'bash',
    'zsh': 'bash',
    'dockerfile': 'docker',
    'md': 'markdown',
    'cs': 'csharp',
    'c++': 'cpp',
    'objective-c': 'objectivec',
}


@lru_cache(maxsize=32)
def _get_lexer(language: str) -> Optional[Lexer]:
    """Get a Pygments lexer by language tag (cached).

    Returns:
        Lexer, or None if the language is unknown.
    """
    name = LANGUAGE_ALIASES.get(language, language)
    try:
        return get_lexer_by_name(name, stripnl=False, ensurenl=False)
    except ClassNotFound:
        return None


@lru_cache(maxsize=1)
def _get_formatter() -> TerminalTrueColorFormatter:
    """Get Pygments terminal formatter (cached)."""
    return TerminalTrueColorFormatter(style='monokai')


def normalize_language(info: str) -> str:
    """Language tag from a fence info string ("python title=x" -> "python")."""
    parts = info.strip().split()
    return parts[0].lower() if parts else ""


def highlight_line(line: str, language: str) -> str:
    """Apply syntax highlighting to a single line of code.

    Args:
        line: The code line to highlight.
        language: Language tag from the opening fence.

    Returns:
        Line with ANSI escape codes for syntax highlighting, or the original
        line if the language is unknown or highlighting fails.
    """
    if not language or not line.strip():
        return line

    lexer = _get_lexer(language)
    if lexer is None:
        return line

    try:
        highlighted = highlight(line, lexer, _get_formatter())
    except Exception:
        logger.debug("Highlighting failed for language %s", language, exc_info=True)
        return line
    return highlighted.rstrip("\n")
