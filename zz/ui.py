"""Rich console helpers for the terminal client."""

import re
from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.status import Status
from rich.text import Text

# Shared consoles: regular output and errors
console = Console(highlight=False)
err_console = Console(stderr=True, highlight=False)

COMMANDS_HINT = "Commands: /interrupt, /help, /exit"

HELP_TEXT = """\
[bold]Commands[/bold]
  [cyan]/help[/cyan]       Show this help
  [cyan]/interrupt[/cyan]  Interrupt the running turn (or press Ctrl+C)
  [cyan]/exit[/cyan]       Quit"""

_BOLD_PATTERN = re.compile(r"\*\*(.+?)\*\*")


def print_welcome(thread_id: str, out: Optional[Console] = None) -> None:
    """Banner shown once the thread is ready."""
    out = out or console
    out.print(f"[bold cyan]zz[/bold cyan] [dim]— {escape(thread_id)}[/dim]")
    out.print(f"[dim]{COMMANDS_HINT}[/dim]")
    out.print()


def print_help(out: Optional[Console] = None) -> None:
    (out or console).print(HELP_TEXT)


def print_error(message: str, out: Optional[Console] = None) -> None:
    """Print an error in red on stderr."""
    (out or err_console).print(f"[red]{escape(message)}[/red]")


def print_ansi(text: str, out: Optional[Console] = None) -> None:
    """Print pre-rendered text that already carries ANSI escapes."""
    (out or console).print(Text.from_ansi(text), soft_wrap=True)


def print_dim(text: str, out: Optional[Console] = None) -> None:
    (out or console).print(Text(text, style="dim"), soft_wrap=True)


def print_approval(tag: str, description: str, style: str = "yellow", out: Optional[Console] = None) -> None:
    """Print an approval outcome line, e.g. ``[auto-approved] ls -la``.

    Args:
        tag: Outcome word, printed in brackets.
        description: Rich markup describing the action.
        style: Style of the tag.
    """
    (out or console).print(f"  [{style}]\\[{tag}][/{style}] {description}")


def reasoning_section_divider(number: int, out: Optional[Console] = None) -> None:
    """Rule announcing reasoning section ``number``."""
    (out or console).rule(f"[dim] reasoning #{number} [/dim]", style="dim")


def markup_reasoning_line(line: str) -> str:
    """Convert ``**bold**`` in a reasoning line to rich markup."""
    return _BOLD_PATTERN.sub(r"[bold]\1[/bold]", escape(line))


class WaitingSpinner:
    """Spinner shown between sending input and the first token."""

    def __init__(self, out: Optional[Console] = None, message: str = "thinking..."):
        self._status = Status(f"[dim]{message}[/dim]", console=out or console, spinner="dots")
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    def start(self) -> None:
        if not self._active:
            self._active = True
            self._status.start()

    def stop(self) -> None:
        if self._active:
            self._active = False
            self._status.stop()


class ReasoningDisplay:
    """Transient status line with the latest line of reasoning.

    Reasoning deltas accumulate; only the last non-empty line is shown.
    """

    def __init__(self, out: Optional[Console] = None):
        self._status = Status("", console=out or console, spinner="dots")
        self._buffer = ""
        self._active = False

    @property
    def text(self) -> str:
        return self._buffer

    @property
    def last_line(self) -> str:
        for line in reversed(self._buffer.splitlines()):
            if line.strip():
                return line.strip()
        return ""

    def update(self, delta: str) -> None:
        self._buffer += delta
        self._status.update(f"[dim italic]{markup_reasoning_line(self.last_line)}[/dim italic]")
        if not self._active:
            self._active = True
            self._status.start()

    def section_break(self) -> None:
        """Start a new section: the next delta replaces the shown line."""
        self._buffer = ""

    def stop(self) -> None:
        if self._active:
            self._active = False
            self._status.stop()
        self._buffer = ""
