# zz/markdown/ansi.py
"""ANSI styling primitives and display-width helpers.

Widths are measured on the visible text only: escape sequences are stripped
first, then wide characters (CJK, emoji) are counted with wcwidth.
"""

import re

import wcwidth


def _hex_to_ansi_fg(hex_color: str) -> str:
    """Convert hex color to ANSI 24-bit foreground escape code.

    Args:
        hex_color: Hex color string like "#87d7d7".

    Returns:
        ANSI escape code string.
    """
    hex_color = hex_color.lstrip('#')
    r = int(hex_color[0:2], 16)
    g = int(hex_color[2:4], 16)
    b = int(hex_color[4:6], 16)
    return f"\x1b[38;2;{r};{g};{b}m"


def _hex_to_ansi_bg(hex_color: str) -> str:
    """Convert hex color to ANSI 24-bit background escape code."""
    hex_color = hex_color.lstrip('#')
    r = int(hex_color[0:2], 16)
    g = int(hex_color[2:4], 16)
    b = int(hex_color[4:6], 16)
    return f"\x1b[48;2;{r};{g};{b}m"


# ANSI attribute codes
BOLD_ON = "\x1b[1m"
BOLD_OFF = "\x1b[22m"
DIM_ON = "\x1b[2m"
DIM_OFF = "\x1b[22m"
ITALIC_ON = "\x1b[3m"
ITALIC_OFF = "\x1b[23m"
UNDERLINE_ON = "\x1b[4m"
UNDERLINE_OFF = "\x1b[24m"
STRIKETHROUGH_ON = "\x1b[9m"
STRIKETHROUGH_OFF = "\x1b[29m"
FG_DEFAULT = "\x1b[39m"
BG_DEFAULT = "\x1b[49m"
RESET = "\x1b[0m"

# Default colors (teal inline code on a slightly blue-tinted dark surface)
INLINE_CODE_FG = _hex_to_ansi_fg("#87d7d7")
INLINE_CODE_BG = _hex_to_ansi_bg("#2d2d3d")
LINK_FG = _hex_to_ansi_fg("#5f87ff")
HEADING_FG = _hex_to_ansi_fg("#d787ff")
CHECKED_FG = _hex_to_ansi_fg("#87d787")

# CSI sequences (colors, cursor movement) and OSC sequences (hyperlinks)
ANSI_ESCAPE_PATTERN = re.compile(r"\x1b\[[0-?]*[ -/]*[@-~]|\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)")


def strip_ansi(text: str) -> str:
    """Remove ANSI escape sequences from ``text``."""
    return ANSI_ESCAPE_PATTERN.sub("", text)


def display_width(text: str) -> int:
    """Visible width of ``text`` in terminal columns.

    Escape sequences take no columns; wide characters take two.
    """
    width = 0
    for char in strip_ansi(text):
        char_width = wcwidth.wcwidth(char)
        # wcwidth returns -1 for non-printable characters, treat as 0
        if char_width >= 0:
            width += char_width
    return width


def pad_to_width(text: str, target_width: int, align: str = "left") -> str:
    """Pad ``text`` to ``target_width`` visible columns.

    Args:
        text: The string to pad (may contain escape sequences).
        target_width: The desired display width.
        align: 'left', 'right', or 'center'.
    """
    padding_needed = max(0, target_width - display_width(text))

    if align == "right":
        return " " * padding_needed + text
    elif align == "center":
        left_pad = padding_needed // 2
        right_pad = padding_needed - left_pad
        return " " * left_pad + text + " " * right_pad
    else:  # left
        return text + " " * padding_needed
