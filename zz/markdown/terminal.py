# zz/markdown/terminal.py
"""Block renderers over a markdown-it syntax tree.

``MarkdownRenderer`` parses a finalized paragraph with markdown-it-py and walks
the resulting tree, dispatching each node to a ``block_<type>`` or
``inline_<type>`` method. Node kinds without a method use the plain-text
fallbacks. The base class produces plain text; ``TerminalRenderer`` overrides
the styling hooks to emit ANSI escapes. Other output targets subclass the base
and leave the streaming logic untouched.

Usage:
    renderer = TerminalRenderer(width=100)
    print(renderer.render("# Title\\n\\n- [x] done\\n- [ ] todo"))
"""

import re
from typing import List, Optional, Tuple

from markdown_it import MarkdownIt
from markdown_it.tree import SyntaxTreeNode

from zz.markdown import ansi
from zz.markdown.highlight import highlight_line, normalize_language

# Box-drawing characters for table rendering
BOX_CHARS = {
    "top_left": "┌",
    "top_right": "┐",
    "bottom_left": "└",
    "bottom_right": "┘",
    "horizontal": "─",
    "vertical": "│",
    "t_down": "┬",
    "t_up": "┴",
    "t_right": "├",
    "t_left": "┤",
    "cross": "┼",
}

TASK_PATTERN = re.compile(r"^\[([ xX])\]\s+")
ALIGN_PATTERN = re.compile(r"text-align:\s*(left|right|center)")

MAX_RULE_WIDTH = 80


def create_parser() -> MarkdownIt:
    """CommonMark parser with GFM tables and strikethrough enabled."""
    return MarkdownIt("commonmark").enable(["table", "strikethrough"])


class MarkdownRenderer:
    """Plain-text renderer and visitor interface.

    Block methods return a list of lines; inline methods return a string.

    Args:
        width: Console width, used for horizontal rules.
    """

    def __init__(self, width: int = 80):
        self._width = max(20, width)
        self._parser = create_parser()

    def set_console_width(self, width: int) -> None:
        """Update the console width for rendering."""
        self._width = max(20, width)

    # ==================== Entry points ====================

    def render(self, text: str) -> str:
        """Render a markdown document to a string (no trailing newline)."""
        root = SyntaxTreeNode(self._parser.parse(text))
        return "\n".join(self.render_blocks(root.children))

    def render_blocks(self, nodes: List[SyntaxTreeNode]) -> List[str]:
        lines: List[str] = []
        for node in nodes:
            lines.extend(self.render_block(node))
        return lines

    def render_block(self, node: SyntaxTreeNode) -> List[str]:
        method = getattr(self, f"block_{node.type}", None)
        if method is None:
            return self.block_fallback(node)
        return method(node)

    def render_inline(self, node: Optional[SyntaxTreeNode]) -> str:
        """Render an ``inline`` container (or any inline node) to a string."""
        if node is None:
            return ""
        if node.type == "inline":
            return "".join(self.render_inline(child) for child in node.children)
        method = getattr(self, f"inline_{node.type}", None)
        if method is None:
            return self.inline_fallback(node)
        return method(node)

    def render_children(self, node: SyntaxTreeNode) -> str:
        return "".join(self.render_inline(child) for child in node.children)

    # ==================== Fallbacks ====================

    def block_fallback(self, node: SyntaxTreeNode) -> List[str]:
        """Plain text for unknown block kinds."""
        if node.children:
            return self.render_blocks(node.children)
        return node.content.rstrip("\n").split("\n") if node.content else []

    def inline_fallback(self, node: SyntaxTreeNode) -> str:
        """Plain text for unknown inline kinds."""
        if node.children:
            return self.render_children(node)
        return node.content

    # ==================== Styling hooks ====================

    def style_heading(self, level: int, text: str) -> str:
        return f"{'#' * level} {text}"

    def style_strong(self, text: str) -> str:
        return f"**{text}**"

    def style_em(self, text: str) -> str:
        return f"*{text}*"

    def style_strike(self, text: str) -> str:
        return f"~~{text}~~"

    def style_code_inline(self, text: str) -> str:
        return f"`{text}`"

    def style_link(self, text: str, href: str) -> str:
        if not href or href == text:
            return text
        return f"{text} ({href})"

    def style_quote_prefix(self) -> str:
        return "> "

    def style_rule(self) -> str:
        return "-" * 3

    def style_bullet(self, depth: int) -> str:
        return "- "

    def style_checkbox(self, checked: bool) -> str:
        return "[x] " if checked else "[ ] "

    def style_code_line(self, line: str, language: str) -> str:
        return "    " + line

    def style_table_header(self, text: str) -> str:
        return text

    def style_table_border(self, text: str) -> str:
        return text

    # ==================== Block nodes ====================

    def block_paragraph(self, node: SyntaxTreeNode) -> List[str]:
        inline = node.children[0] if node.children else None
        return self.render_inline(inline).split("\n")

    def block_heading(self, node: SyntaxTreeNode) -> List[str]:
        level = int(node.tag[1:]) if node.tag[1:].isdigit() else 1
        inline = node.children[0] if node.children else None
        return [self.style_heading(level, self.render_inline(inline))]

    def block_bullet_list(self, node: SyntaxTreeNode) -> List[str]:
        depth = self._list_depth(node)
        lines: List[str] = []
        for item in node.children:
            lines.extend(self._render_list_item(item, self.style_bullet(depth)))
        return lines

    def block_ordered_list(self, node: SyntaxTreeNode) -> List[str]:
        start = node.attrs.get("start", 1)
        try:
            number = int(start)
        except (TypeError, ValueError):
            number = 1
        lines: List[str] = []
        for item in node.children:
            lines.extend(self._render_list_item(item, f"{number}. "))
            number += 1
        return lines

    def block_list_item(self, node: SyntaxTreeNode) -> List[str]:
        return self._render_list_item(node, self.style_bullet(0))

    def block_blockquote(self, node: SyntaxTreeNode) -> List[str]:
        prefix = self.style_quote_prefix()
        return [prefix + line for line in self.render_blocks(node.children)]

    def block_hr(self, node: SyntaxTreeNode) -> List[str]:
        return [self.style_rule()]

    def block_code_block(self, node: SyntaxTreeNode) -> List[str]:
        language = normalize_language(node.info) if node.type == "fence" else ""
        code = node.content.rstrip("\n")
        return [self.style_code_line(line, language) for line in code.split("\n")]

    def block_fence(self, node: SyntaxTreeNode) -> List[str]:
        return self.block_code_block(node)

    def block_html_block(self, node: SyntaxTreeNode) -> List[str]:
        return node.content.rstrip("\n").split("\n")

    def block_table(self, node: SyntaxTreeNode) -> List[str]:
        headers, rows, alignments = self._collect_table(node)
        return self.render_table(headers, rows, alignments)

    # ==================== Inline nodes ====================

    def inline_text(self, node: SyntaxTreeNode) -> str:
        return node.content

    def inline_softbreak(self, node: SyntaxTreeNode) -> str:
        return "\n"

    def inline_hardbreak(self, node: SyntaxTreeNode) -> str:
        return "\n"

    def inline_strong(self, node: SyntaxTreeNode) -> str:
        return self.style_strong(self.render_children(node))

    def inline_em(self, node: SyntaxTreeNode) -> str:
        return self.style_em(self.render_children(node))

    def inline_s(self, node: SyntaxTreeNode) -> str:
        return self.style_strike(self.render_children(node))

    def inline_code_inline(self, node: SyntaxTreeNode) -> str:
        return self.style_code_inline(node.content)

    def inline_link(self, node: SyntaxTreeNode) -> str:
        href = str(node.attrs.get("href", ""))
        return self.style_link(self.render_children(node), href)

    def inline_image(self, node: SyntaxTreeNode) -> str:
        alt = self.render_children(node) or node.content
        return f"[image: {alt}]"

    def inline_html_inline(self, node: SyntaxTreeNode) -> str:
        return node.content

    # ==================== Lists ====================

    def _list_depth(self, node: SyntaxTreeNode) -> int:
        depth = 0
        parent = node.parent
        while parent is not None:
            if parent.type in ("bullet_list", "ordered_list"):
                depth += 1
            parent = parent.parent
        return depth

    def _task_state(self, item: SyntaxTreeNode) -> Optional[bool]:
        """Checkbox state of a task list item, stripping the ``[ ]`` marker.

        Returns:
            True/False for checked/unchecked task items, None otherwise.
        """
        first = item.children[0] if item.children else None
        if first is None or first.type != "paragraph" or not first.children:
            return None
        inline = first.children[0]
        if not inline.children or inline.children[0].type != "text":
            return None
        text_node = inline.children[0]
        match = TASK_PATTERN.match(text_node.content)
        if not match or text_node.token is None:
            return None
        text_node.token = text_node.token.copy(content=text_node.content[match.end():])
        return match.group(1) in ("x", "X")

    def _render_list_item(self, item: SyntaxTreeNode, marker: str) -> List[str]:
        checked = self._task_state(item)
        if checked is not None:
            marker = self.style_checkbox(checked)
        body = self.render_blocks(item.children) or [""]
        indent = " " * ansi.display_width(marker)
        return [marker + body[0]] + [indent + line for line in body[1:]]

    # ==================== Tables ====================

    def _collect_table(
        self, node: SyntaxTreeNode
    ) -> Tuple[List[str], List[List[str]], List[str]]:
        """Rendered header cells, body rows and column alignments."""
        headers: List[str] = []
        rows: List[List[str]] = []
        alignments: List[str] = []
        for section in node.children:
            for tr in section.children:
                cells = []
                for cell in tr.children:
                    text = self.render_inline(cell.children[0] if cell.children else None)
                    if section.type == "thead":
                        match = ALIGN_PATTERN.search(str(cell.attrs.get("style", "")))
                        alignments.append(match.group(1) if match else "left")
                    cells.append(text)
                if section.type == "thead":
                    headers = cells
                else:
                    rows.append(cells)
        return headers, rows, alignments

    def render_table(
        self, headers: List[str], rows: List[List[str]], alignments: List[str]
    ) -> List[str]:
        """Render a table with box-drawing characters.

        Column widths are the widest visible cell in each column; escape
        sequences in rendered cells are not counted.
        """
        all_rows = ([headers] if headers else []) + rows
        num_cols = max((len(row) for row in all_rows), default=0)
        if num_cols == 0:
            return []

        all_rows = [row + [""] * (num_cols - len(row)) for row in all_rows]
        alignments = alignments + ["left"] * (num_cols - len(alignments))

        col_widths = [
            max(1, max(ansi.display_width(row[i]) for row in all_rows))
            for i in range(num_cols)
        ]

        lines = [self._make_border("top", col_widths)]
        body = all_rows
        if headers:
            header = [self.style_table_header(cell) for cell in all_rows[0]]
            lines.append(self._make_row(header, col_widths, alignments))
            lines.append(self._make_border("middle", col_widths))
            body = all_rows[1:]
        for row in body:
            lines.append(self._make_row(row, col_widths, alignments))
        lines.append(self._make_border("bottom", col_widths))
        return lines

    def _make_border(self, position: str, col_widths: List[int]) -> str:
        """Create a horizontal border line."""
        if position == "top":
            left, mid, right = BOX_CHARS["top_left"], BOX_CHARS["t_down"], BOX_CHARS["top_right"]
        elif position == "middle":
            left, mid, right = BOX_CHARS["t_right"], BOX_CHARS["cross"], BOX_CHARS["t_left"]
        else:  # bottom
            left, mid, right = BOX_CHARS["bottom_left"], BOX_CHARS["t_up"], BOX_CHARS["bottom_right"]

        horiz = BOX_CHARS["horizontal"]
        segments = [horiz * (w + 2) for w in col_widths]
        return self.style_table_border(left + mid.join(segments) + right)

    def _make_row(self, cells: List[str], col_widths: List[int], alignments: List[str]) -> str:
        """Create a data row with proper alignment."""
        vert = self.style_table_border(BOX_CHARS["vertical"])
        formatted = [
            f" {ansi.pad_to_width(cell, width, align)} "
            for cell, width, align in zip(cells, col_widths, alignments)
        ]
        return vert + vert.join(formatted) + vert


class TerminalRenderer(MarkdownRenderer):
    """Renders markdown as ANSI-styled terminal text."""

    def style_heading(self, level: int, text: str) -> str:
        if level == 1:
            return f"{ansi.HEADING_FG}{ansi.BOLD_ON}{ansi.UNDERLINE_ON}{text}{ansi.RESET}"
        if level == 2:
            return f"{ansi.HEADING_FG}{ansi.BOLD_ON}{text}{ansi.RESET}"
        return f"{ansi.BOLD_ON}{text}{ansi.BOLD_OFF}"

    def style_strong(self, text: str) -> str:
        return f"{ansi.BOLD_ON}{text}{ansi.BOLD_OFF}"

    def style_em(self, text: str) -> str:
        return f"{ansi.ITALIC_ON}{text}{ansi.ITALIC_OFF}"

    def style_strike(self, text: str) -> str:
        return f"{ansi.STRIKETHROUGH_ON}{text}{ansi.STRIKETHROUGH_OFF}"

    def style_code_inline(self, text: str) -> str:
        return f"{ansi.INLINE_CODE_FG}{ansi.INLINE_CODE_BG}{text}{ansi.FG_DEFAULT}{ansi.BG_DEFAULT}"

    def style_link(self, text: str, href: str) -> str:
        styled = f"{ansi.LINK_FG}{ansi.UNDERLINE_ON}{text}{ansi.UNDERLINE_OFF}{ansi.FG_DEFAULT}"
        if not href or href == text:
            return styled
        return f"{styled} {ansi.DIM_ON}({href}){ansi.DIM_OFF}"

    def style_quote_prefix(self) -> str:
        return f"{ansi.DIM_ON}│{ansi.DIM_OFF} "

    def style_rule(self) -> str:
        return f"{ansi.DIM_ON}{'─' * min(self._width, MAX_RULE_WIDTH)}{ansi.DIM_OFF}"

    def style_bullet(self, depth: int) -> str:
        return ("•", "◦", "▪")[depth % 3] + " "

    def style_checkbox(self, checked: bool) -> str:
        if checked:
            return f"{ansi.CHECKED_FG}☑{ansi.FG_DEFAULT} "
        return "☐ "

    def style_code_line(self, line: str, language: str) -> str:
        return f"{ansi.DIM_ON}  │ {ansi.DIM_OFF}{highlight_line(line, language)}"

    def style_table_header(self, text: str) -> str:
        return f"{ansi.BOLD_ON}{text}{ansi.BOLD_OFF}"

    def style_table_border(self, text: str) -> str:
        return f"{ansi.DIM_ON}{text}{ansi.DIM_OFF}"
