# zz/markdown/stream.py
"""Streaming markdown renderer for terminal output.

Model output arrives as arbitrary text fragments. This renderer turns them
into terminal chunks as soon as a complete structural unit is known:

- Fenced code blocks are tracked across lines. Each code line is emitted on
  its own, syntax highlighted by the fence's language tag.
- Everything else accumulates into a paragraph buffer that is rendered as one
  unit when a blank line arrives or ``flush()`` is called, so tables, lists and
  multi-line emphasis render correctly.

Streaming strategy: a partial-line carry buffer holds text after the last
newline. ``peek()`` exposes the not-yet-rendered text so the UI can show
what is still being typed.

Usage:
    renderer = StreamingMarkdownRenderer(on_chunk=lambda c: print(c.text))
    for fragment in fragments:
        renderer.feed(fragment)
    renderer.flush()
    renderer.reset()  # before the next turn
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, List, Optional

from zz.markdown import ansi
from zz.markdown.highlight import highlight_line, normalize_language
from zz.markdown.terminal import MarkdownRenderer, TerminalRenderer

logger = logging.getLogger(__name__)

# Code fence: three or more backticks or tildes, optionally indented,
# optionally followed by an info string (language tag)
FENCE_PATTERN = re.compile(r"^\s*(`{3,}|~{3,})\s*(.*)$")

CHUNK_PARAGRAPH = "paragraph"
CHUNK_CODE = "code"
CHUNK_FENCE = "fence"


@dataclass(frozen=True)
class RenderedChunk:
    """One renderable unit of output.

    Attributes:
        kind: "paragraph", "code" (one code line) or "fence" (block border).
        text: Terminal text without a trailing newline.
    """
    kind: str
    text: str


class StreamingMarkdownRenderer:
    """Incrementally renders streamed markdown into terminal chunks.

    Args:
        on_chunk: Called with each chunk as soon as it is rendered.
        block_renderer: Renderer for finalized paragraphs
            (default: TerminalRenderer).
        highlight: Syntax highlight code lines.
    """

    def __init__(
        self,
        on_chunk: Optional[Callable[[RenderedChunk], None]] = None,
        block_renderer: Optional[MarkdownRenderer] = None,
        highlight: bool = True,
    ):
        self._on_chunk = on_chunk
        self._block_renderer = block_renderer or TerminalRenderer()
        self._highlight = highlight

        # Text after the last newline
        self._partial = ""
        # Completed lines of the paragraph being accumulated
        self._paragraph: List[str] = []

        # Code block tracking
        self._in_code_block = False
        self._fence_char = ""
        self._fence_len = 0
        self._code_lang = ""

    # ==================== Public API ====================

    @property
    def in_code_block(self) -> bool:
        return self._in_code_block

    @property
    def code_language(self) -> str:
        return self._code_lang

    def set_console_width(self, width: int) -> None:
        self._block_renderer.set_console_width(width)

    def feed(self, text: str) -> List[RenderedChunk]:
        """Append a streamed fragment, rendering every unit it completes.

        Returns:
            The chunks rendered by this call (also passed to ``on_chunk``).
        """
        chunks: List[RenderedChunk] = []
        self._partial += text
        while "\n" in self._partial:
            line, self._partial = self._partial.split("\n", 1)
            self._process_line(line, chunks)
        return chunks

    def flush(self) -> List[RenderedChunk]:
        """Render everything still buffered (call at end of turn).

        The partial line is treated as complete. An open code block stays
        open; only its buffered text is emitted.
        """
        chunks: List[RenderedChunk] = []
        if self._partial:
            line, self._partial = self._partial, ""
            self._process_line(line, chunks)
        self._finalize_paragraph(chunks)
        return chunks

    def peek(self) -> str:
        """Text not yet rendered: pending paragraph lines plus the partial line."""
        return "".join(line + "\n" for line in self._paragraph) + self._partial

    def reset(self) -> None:
        """Clear all buffers and code block state for a new turn."""
        self._partial = ""
        self._paragraph = []
        self._in_code_block = False
        self._fence_char = ""
        self._fence_len = 0
        self._code_lang = ""

    # ==================== Line processing ====================

    def _emit(self, chunk: RenderedChunk, chunks: List[RenderedChunk]) -> None:
        chunks.append(chunk)
        if self._on_chunk is not None:
            self._on_chunk(chunk)

    def _process_line(self, line: str, chunks: List[RenderedChunk]) -> None:
        fence = FENCE_PATTERN.match(line)
        if fence:
            run = fence.group(1)
            if not self._in_code_block:
                self._finalize_paragraph(chunks)
                self._open_code_block(run[0], len(run), fence.group(2), chunks)
                return
            if run[0] == self._fence_char and len(run) >= self._fence_len:
                self._close_code_block(chunks)
                return
            # Mismatched character or shorter run: ordinary code content

        if self._in_code_block:
            self._emit(RenderedChunk(CHUNK_CODE, self._render_code_line(line)), chunks)
            return

        if not line.strip():
            self._finalize_paragraph(chunks)
            return

        self._paragraph.append(line)

    def _open_code_block(self, char: str, length: int, info: str, chunks: List[RenderedChunk]) -> None:
        self._in_code_block = True
        self._fence_char = char
        self._fence_len = length
        self._code_lang = normalize_language(info)
        label = f" {ansi.ITALIC_ON}{self._code_lang}{ansi.ITALIC_OFF} " if self._code_lang else ""
        self._emit(RenderedChunk(CHUNK_FENCE, f"{ansi.DIM_ON}  ┌──{label}{ansi.DIM_OFF}"), chunks)

    def _close_code_block(self, chunks: List[RenderedChunk]) -> None:
        self._in_code_block = False
        self._fence_char = ""
        self._fence_len = 0
        self._code_lang = ""
        self._emit(RenderedChunk(CHUNK_FENCE, f"{ansi.DIM_ON}  └──{ansi.DIM_OFF}"), chunks)

    def _render_code_line(self, line: str) -> str:
        code = highlight_line(line, self._code_lang) if self._highlight else line
        return f"{ansi.DIM_ON}  │ {ansi.DIM_OFF}{code}"

    def _finalize_paragraph(self, chunks: List[RenderedChunk]) -> None:
        if not self._paragraph:
            return
        text = "\n".join(self._paragraph)
        self._paragraph = []
        try:
            rendered = self._block_renderer.render(text)
        except Exception:
            logger.warning("Markdown rendering failed, emitting raw text", exc_info=True)
            rendered = text
        self._emit(RenderedChunk(CHUNK_PARAGRAPH, rendered), chunks)
