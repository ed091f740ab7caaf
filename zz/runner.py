"""Interactive REPL and single-shot runners."""

import asyncio
import logging
import signal
from typing import Callable, List, Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.history import InMemoryHistory

from zz import ui
from zz.config import Config
from zz.errors import UnexpectedExitError, ZzError
from zz.session import BridgeSession
from zz.terminal_client import TerminalClient

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130

HISTORY_LIMIT = 100

PROMPT = [("ansigreen", "you> ")]

DEBUG_PROMPT = """\
Do the following steps one at a time, explaining your reasoning at each step:
1. List the files in the current directory
2. Pick 3 files.
3. For each file, determine if it is a text file or a binary file.
4. Reason and Wait for 1 second on each step."""


class BoundedHistory(InMemoryHistory):
    """In-memory prompt history keeping the newest ``limit`` distinct entries.

    Consecutive duplicates are stored once.
    """

    def __init__(self, limit: int = HISTORY_LIMIT):
        super().__init__()
        self.limit = limit

    def append_string(self, string: str) -> None:
        strings = self.get_strings()
        if strings and strings[-1] == string:
            return
        super().append_string(string)
        # _loaded_strings is newest first, _storage oldest first
        del self._loaded_strings[self.limit:]
        del self._storage[:-self.limit]


def _install_sigint(callback: Callable[[], None]) -> bool:
    """Route SIGINT to ``callback`` on the running loop."""
    try:
        asyncio.get_running_loop().add_signal_handler(signal.SIGINT, callback)
    except (NotImplementedError, RuntimeError):
        # No loop signal support (e.g. Windows): KeyboardInterrupt applies
        return False
    return True


def _remove_sigint() -> None:
    try:
        asyncio.get_running_loop().remove_signal_handler(signal.SIGINT)
    except (NotImplementedError, RuntimeError):
        pass


def create_session(config: Config, client: TerminalClient) -> BridgeSession:
    """Session wired to ``client`` for events and rendering."""
    session = BridgeSession(config, renderer=client.renderer)
    session.set_event_callback(client.handle_event)
    return session


async def connect(session: BridgeSession) -> Optional[str]:
    """Start the thread behind a "Connecting" spinner.

    Returns:
        The thread id, or None if the user pressed Ctrl+C.

    Raises:
        ZzError: If the thread could not be started.
    """
    loop = asyncio.get_running_loop()
    start_future = session.start()
    interrupted: "asyncio.Future[None]" = loop.create_future()

    def on_sigint() -> None:
        if not interrupted.done():
            interrupted.set_result(None)

    _install_sigint(on_sigint)
    try:
        with ui.console.status("[dim]Connecting to codex...[/dim]"):
            await asyncio.wait({start_future, interrupted}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        _remove_sigint()

    if not start_future.done():
        logger.info("Connection interrupted by user")
        return None
    return start_future.result()


async def run_turn(session: BridgeSession, text: str) -> None:
    """Run one turn; Ctrl+C interrupts it instead of killing the client.

    Raises:
        ZzError: If the turn cannot start or fails.
    """
    turn = session.run_turn(text)
    _install_sigint(session.interrupt_turn)
    try:
        await turn
    finally:
        _remove_sigint()


async def _connect_or_exit(session: BridgeSession) -> Optional[int]:
    """Connect; on failure return the exit status to use."""
    try:
        thread_id = await connect(session)
    except ZzError as e:
        ui.print_error("Failed to start thread")
        ui.print_error(str(e))
        session.stop()
        return EXIT_FAILURE
    if thread_id is None:
        session.stop()
        return EXIT_INTERRUPTED
    return None


async def run_single_shot(config: Config, query: str) -> int:
    """Answer one query and exit.

    Returns:
        Process exit status.
    """
    client = TerminalClient(config, show_welcome=False)
    session = create_session(config, client)

    status = await _connect_or_exit(session)
    if status is not None:
        return status

    try:
        await run_turn(session, query)
    except ZzError as e:
        ui.print_error(str(e))
        return EXIT_FAILURE
    finally:
        session.stop()
    return EXIT_OK


async def run_debug(config: Config) -> int:
    """Single-shot run of a fixed multi-step prompt with debug tags on."""
    config.debug = True
    return await run_single_shot(config, DEBUG_PROMPT)


def parse_command(line: str) -> Optional[str]:
    """Return the REPL command named by ``line`` ("help", "interrupt", "exit")."""
    if line in ("/help", "/interrupt", "/exit"):
        return line[1:]
    return None


async def run_repl(config: Config, prompt_session: Optional[PromptSession] = None) -> int:
    """Interactive loop: read input, run turns, handle slash commands.

    Returns:
        Process exit status.
    """
    client = TerminalClient(config)
    session = create_session(config, client)

    status = await _connect_or_exit(session)
    if status is not None:
        return status

    prompt_session = prompt_session or PromptSession(history=BoundedHistory())
    exit_status = EXIT_OK

    try:
        while True:
            try:
                line = (await prompt_session.prompt_async(PROMPT)).strip()
            except KeyboardInterrupt:
                continue
            except EOFError:
                break

            if not line:
                continue

            command = parse_command(line)
            if command == "exit":
                break
            if command == "help":
                ui.print_help()
                continue
            if command == "interrupt":
                if not session.interrupt_turn():
                    ui.print_dim("No turn in progress.")
                continue

            try:
                await run_turn(session, line)
            except UnexpectedExitError as e:
                ui.print_error(str(e))
                exit_status = EXIT_FAILURE
                break
            except ZzError as e:
                ui.print_error(str(e))
    finally:
        session.stop()

    return exit_status


__all__: List[str] = [
    "BoundedHistory",
    "DEBUG_PROMPT",
    "connect",
    "create_session",
    "parse_command",
    "run_debug",
    "run_repl",
    "run_single_shot",
    "run_turn",
]
