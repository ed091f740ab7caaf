# zz/markdown/tests/test_terminal.py
"""Tests for the block renderers."""

import pytest

from zz.markdown import ansi
from zz.markdown.terminal import MarkdownRenderer, TerminalRenderer

TABLE = """| A | BB |
|---|---|
| x | yyyy |"""


@pytest.fixture
def plain():
    return MarkdownRenderer()


@pytest.fixture
def term():
    return TerminalRenderer(width=40)


class TestTables:
    """Tests for table rendering."""

    def test_plain_table(self, plain):
        """Columns are as wide as their widest cell."""
        assert plain.render(TABLE).split("\n") == [
            "┌───┬──────┐",
            "│ A │ BB   │",
            "├───┼──────┤",
            "│ x │ yyyy │",
            "└───┴──────┘",
        ]

    def test_styled_table_widths_ignore_escapes(self, term):
        """Styling does not change the visible layout."""
        lines = term.render(TABLE).split("\n")

        assert [ansi.strip_ansi(line) for line in lines] == [
            "┌───┬──────┐",
            "│ A │ BB   │",
            "├───┼──────┤",
            "│ x │ yyyy │",
            "└───┴──────┘",
        ]
        assert ansi.BOLD_ON in lines[1]
        assert len({ansi.display_width(line) for line in lines}) == 1

    def test_inline_styles_in_cells(self, term):
        """Cells with inline code keep their columns aligned."""
        lines = term.render("| name | value |\n|---|---|\n| `k` | **v** |").split("\n")
        assert len({ansi.display_width(line) for line in lines}) == 1

    def test_alignment(self, plain):
        """Right and center alignment pad on the proper side."""
        lines = plain.render("| left | right | mid |\n|:--|--:|:-:|\n| a | b | c |").split("\n")
        assert lines[3] == "│ a    │     b │  c  │"

    def test_wide_characters(self, plain):
        """CJK cells count two columns per character."""
        lines = plain.render("| 名前 | x |\n|---|---|\n| a | b |").split("\n")
        assert lines[3] == "│ a    │ b │"


class TestLists:
    """Tests for list rendering."""

    def test_bullets(self, term):
        """Bullet lists use a glyph per nesting level."""
        lines = term.render("- one\n- two\n  - nested").split("\n")
        assert lines[0] == "• one"
        assert lines[1] == "• two"
        assert lines[2] == "  ◦ nested"

    def test_ordered_list_start(self, plain):
        """Ordered lists keep their starting number."""
        assert plain.render("3. c\n4. d").split("\n") == ["3. c", "4. d"]

    def test_task_list(self, term):
        """Checkbox items replace the bullet."""
        lines = term.render("- [x] done\n- [ ] todo").split("\n")
        assert ansi.strip_ansi(lines[0]) == "☑ done"
        assert lines[1] == "☐ todo"

    def test_plain_task_list(self, plain):
        """The plain renderer keeps textual checkboxes."""
        assert plain.render("- [X] done").split("\n") == ["[x] done"]


class TestBlocks:
    """Tests for headings, quotes, rules and code."""

    def test_headings(self, term):
        """Headings are bold; h1 is underlined."""
        h1 = term.render("# Title")
        h3 = term.render("### Small")
        assert ansi.strip_ansi(h1) == "Title"
        assert ansi.UNDERLINE_ON in h1
        assert h3 == f"{ansi.BOLD_ON}Small{ansi.BOLD_OFF}"

    def test_plain_heading(self, plain):
        """The plain renderer keeps the markdown marker."""
        assert plain.render("## Sub") == "## Sub"

    def test_blockquote(self, term):
        """Quoted lines get a bar prefix."""
        lines = term.render("> quoted\n> more").split("\n")
        assert [ansi.strip_ansi(line) for line in lines] == ["│ quoted", "│ more"]

    def test_horizontal_rule(self, term):
        """Rules span the console width."""
        assert ansi.strip_ansi(term.render("---")) == "─" * 40

    def test_rule_width_capped(self):
        """Rules never exceed 80 columns."""
        renderer = TerminalRenderer(width=200)
        assert ansi.display_width(renderer.render("***")) == 80

    def test_fenced_code(self, plain):
        """Complete code blocks inside a paragraph buffer are indented."""
        assert plain.render("```\na\nb\n```").split("\n") == ["    a", "    b"]


class TestInline:
    """Tests for inline elements."""

    def test_emphasis(self, plain):
        """Plain rendering round-trips emphasis markers."""
        assert plain.render("**b** *i* ~~s~~ `c`") == "**b** *i* ~~s~~ `c`"

    def test_terminal_emphasis(self, term):
        """Terminal rendering replaces markers with escapes."""
        out = term.render("**b** *i*")
        assert ansi.strip_ansi(out) == "b i"
        assert ansi.BOLD_ON in out
        assert ansi.ITALIC_ON in out

    def test_link(self, plain):
        """Links show their target after the text."""
        assert plain.render("[docs](https://example.com)") == "docs (https://example.com)"

    def test_autolink_not_repeated(self, plain):
        """A link whose text is its target is shown once."""
        assert plain.render("<https://example.com>") == "https://example.com"

    def test_soft_breaks_kept(self, plain):
        """Line breaks inside a paragraph survive."""
        assert plain.render("one\ntwo") == "one\ntwo"

    def test_set_console_width(self, term):
        """Width changes apply to later renders."""
        term.set_console_width(30)
        assert ansi.display_width(term.render("---")) == 30
