"""Terminal consumer of session events.

Turns the session's event stream into terminal output:

- rendered markdown chunks from the streaming renderer
- a spinner until the first token, then a transient reasoning line
- reasoning-only mode: full reasoning text in numbered sections
- command output, dimmed, one line at a time
- approval outcomes, and y/n prompts in prompt mode
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Set

from prompt_toolkit import PromptSession
from rich.console import Console

from zz import ui
from zz.config import Config
from zz.events import (
    AppEvent,
    ApprovalRequestEvent,
    CommandOutputDeltaEvent,
    DebugTagEvent,
    Decision,
    ErrorEvent,
    ReasoningDeltaEvent,
    ReasoningSectionBreakEvent,
    ResponseDeltaEvent,
    ThreadReadyEvent,
    TurnCompleteEvent,
    WaitingStartEvent,
    WaitingStopEvent,
)
from zz.markdown import RenderedChunk, StreamingMarkdownRenderer

logger = logging.getLogger(__name__)

AskFunction = Callable[[str], Awaitable[str]]

APPROVAL_PROMPT = "  approve? [y/N] "


class TerminalClient:
    """Prints session events to the terminal.

    Args:
        config: Client configuration (reasoning-only mode).
        out: Console for regular output.
        ask: Coroutine function used to ask the user a question
            (default: a prompt_toolkit prompt).
        show_welcome: Print the banner when the thread becomes ready.
    """

    def __init__(
        self,
        config: Config,
        out: Optional[Console] = None,
        ask: Optional[AskFunction] = None,
        show_welcome: bool = True,
    ):
        self._config = config
        self._out = out or ui.console
        self._ask = ask or self._prompt_toolkit_ask
        self._prompt_session: Optional[PromptSession] = None
        self._show_welcome = show_welcome

        self.renderer = StreamingMarkdownRenderer(on_chunk=self._on_chunk)
        self.renderer.set_console_width(self._out.width)

        self._spinner = ui.WaitingSpinner(out=self._out)
        self._reasoning = ui.ReasoningDisplay(out=self._out)

        # Per-turn state
        self._cmd_buffer = ""
        self._reasoning_line_buffer = ""
        self._reasoning_section = 0
        self._needs_reasoning_header = True
        self._streaming = False

        self._approval_tasks: Set[asyncio.Task] = set()

    # ==================== Event dispatch ====================

    def handle_event(self, event: AppEvent) -> None:
        """Session event callback."""
        if isinstance(event, ThreadReadyEvent):
            if self._show_welcome:
                ui.print_welcome(event.thread_id, out=self._out)

        elif isinstance(event, WaitingStartEvent):
            self._start_turn()

        elif isinstance(event, WaitingStopEvent):
            self._spinner.stop()

        elif isinstance(event, ReasoningDeltaEvent):
            self._on_reasoning_delta(event.delta)

        elif isinstance(event, ReasoningSectionBreakEvent):
            self._reasoning.section_break()
            if self._config.reasoning_only:
                self._flush_reasoning_line()
                self._needs_reasoning_header = True

        elif isinstance(event, ResponseDeltaEvent):
            # Content is printed by the renderer through _on_chunk
            if not self._config.reasoning_only:
                self._streaming = True

        elif isinstance(event, CommandOutputDeltaEvent):
            self._on_command_output(event.delta)

        elif isinstance(event, DebugTagEvent):
            self._clear_transient()
            self._out.print(f"[bold magenta]\\[{event.tag}][/bold magenta]")

        elif isinstance(event, ApprovalRequestEvent):
            self._on_approval(event)

        elif isinstance(event, TurnCompleteEvent):
            self._end_turn()

        elif isinstance(event, ErrorEvent):
            self._clear_transient()
            ui.print_error(event.message)

        else:
            logger.debug("Ignoring event %s", event.type)

    # ==================== Turn lifecycle ====================

    def _start_turn(self) -> None:
        self._cmd_buffer = ""
        self._reasoning_line_buffer = ""
        self._reasoning_section = 0
        self._needs_reasoning_header = True
        self._streaming = False
        self._spinner.start()

    def _end_turn(self) -> None:
        self._clear_transient()
        if self._cmd_buffer:
            ui.print_dim(self._cmd_buffer, out=self._out)
            self._cmd_buffer = ""
        self._flush_reasoning_line()
        self._streaming = False

    def _clear_transient(self) -> None:
        """Remove the spinner and reasoning line before printing."""
        self._spinner.stop()
        self._reasoning.stop()

    # ==================== Output ====================

    def _on_chunk(self, chunk: RenderedChunk) -> None:
        self._clear_transient()
        ui.print_ansi(chunk.text, out=self._out)

    def _on_reasoning_delta(self, delta: str) -> None:
        if self._streaming:
            # Response was streaming: a new reasoning cycle starts
            self._streaming = False
            self._needs_reasoning_header = True

        if not self._config.reasoning_only:
            self._reasoning.update(delta)
            return

        self._clear_transient()
        if self._needs_reasoning_header:
            self._needs_reasoning_header = False
            self._flush_reasoning_line()
            self._reasoning_section += 1
            ui.reasoning_section_divider(self._reasoning_section, out=self._out)

        lines = (self._reasoning_line_buffer + delta).split("\n")
        self._reasoning_line_buffer = lines.pop()
        for line in lines:
            self._print_reasoning_line(line)

    def _flush_reasoning_line(self) -> None:
        if self._reasoning_line_buffer:
            self._print_reasoning_line(self._reasoning_line_buffer)
            self._reasoning_line_buffer = ""

    def _print_reasoning_line(self, line: str) -> None:
        self._out.print(f"[dim]{ui.markup_reasoning_line(line)}[/dim]", soft_wrap=True)

    def _on_command_output(self, delta: str) -> None:
        self._clear_transient()
        lines = (self._cmd_buffer + delta).split("\n")
        self._cmd_buffer = lines.pop()
        for line in lines:
            ui.print_dim(line, out=self._out)

    # ==================== Approvals ====================

    def _on_approval(self, event: ApprovalRequestEvent) -> None:
        self._clear_transient()
        if event.respond is None:
            if event.decision is Decision.ACCEPT:
                ui.print_approval("auto-approved", event.description, style="green", out=self._out)
            else:
                ui.print_approval("denied", event.description, style="red", out=self._out)
            return

        task = asyncio.ensure_future(self._ask_approval(event))
        self._approval_tasks.add(task)
        task.add_done_callback(self._approval_tasks.discard)

    async def _ask_approval(self, event: ApprovalRequestEvent) -> Decision:
        """Ask the user and answer the request.

        The request is always answered: a prompt that fails or is cancelled
        counts as a decline, so the backend stream is never left waiting.
        """
        decision = Decision.DECLINE
        try:
            self._out.print(f"[yellow]Approval requested:[/yellow] {event.description}")
            try:
                answer = await self._ask(APPROVAL_PROMPT)
            except (EOFError, KeyboardInterrupt):
                answer = ""
            except Exception:
                logger.exception("Approval prompt failed; declining")
                answer = ""

            if answer.strip().lower() in ("y", "yes"):
                decision = Decision.ACCEPT
                ui.print_approval("approved", event.description, style="green", out=self._out)
            else:
                ui.print_approval("declined", event.description, style="red", out=self._out)
        finally:
            if event.respond is not None:
                event.respond(decision)
        return decision

    async def _prompt_toolkit_ask(self, message: str) -> str:
        if self._prompt_session is None:
            self._prompt_session = PromptSession()
        return await self._prompt_session.prompt_async(message)
