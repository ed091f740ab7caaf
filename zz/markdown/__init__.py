"""Streaming markdown rendering for the terminal.

Exports:
    StreamingMarkdownRenderer: Incremental renderer fed with streamed text.
    RenderedChunk: One rendered unit (paragraph, code line or fence border).
    MarkdownRenderer: Plain-text visitor over a markdown-it tree.
    TerminalRenderer: ANSI-styled visitor.
"""

from zz.markdown.stream import RenderedChunk, StreamingMarkdownRenderer
from zz.markdown.terminal import MarkdownRenderer, TerminalRenderer

__all__ = [
    "MarkdownRenderer",
    "RenderedChunk",
    "StreamingMarkdownRenderer",
    "TerminalRenderer",
]
