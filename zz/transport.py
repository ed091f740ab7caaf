"""Bridge transport to a ``codex app-server`` subprocess.

Spawns the backend, writes newline-delimited JSON messages to its stdin and
reads newline-delimited JSON from its stdout. Every decoded message is routed
to one of four callbacks:

- on_event: messages scoped to a thread (``params.threadId`` or
  ``params.thread.id``), delivered as a :class:`BridgeEvent`
- on_global_message: everything else (responses, unscoped notifications)
- on_protocol_error: a line that is not valid UTF-8 JSON; reading stops
- on_process_exit: the backend exited

Callbacks may be plain functions or coroutine functions. Each one is awaited
before the next line is read, which keeps events in arrival order and lets a
handler hold up the stream (e.g. while an approval is pending). A handler that
raises is logged and the stream continues, so process exit is still reported.

Usage:
    transport = BridgeTransport(TransportHandlers(on_event=..., ...))
    transport.start()
    transport.send({"method": "initialize", "id": 1, "params": {...}})
"""

import asyncio
import inspect
import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from zz.errors import ProtocolError
from zz.protocol import thread_id_of, turn_id_of

logger = logging.getLogger(__name__)

# Largest single line accepted from the backend
MAX_MESSAGE_SIZE = 16 * 1024 * 1024  # 16 MB

DEFAULT_CODEX_BIN = "codex"


@dataclass(frozen=True)
class BridgeEvent:
    """A thread-scoped message from the backend.

    Attributes:
        kind: Method name of the notification or server request.
        thread_id: Thread the message belongs to.
        turn_id: Turn the message belongs to, if any.
        payload_json: The full message as received.
    """
    kind: str
    thread_id: str
    turn_id: Optional[str]
    payload_json: str


MaybeAwaitable = Union[None, Awaitable[None]]


@dataclass
class TransportHandlers:
    """Callbacks invoked by the transport, in arrival order."""
    on_event: Callable[[BridgeEvent], MaybeAwaitable]
    on_global_message: Callable[[Dict[str, Any]], MaybeAwaitable]
    on_protocol_error: Callable[[Exception], MaybeAwaitable]
    on_process_exit: Callable[[Optional[int]], MaybeAwaitable]


class BridgeTransport:
    """Line-delimited JSON transport over a codex app-server subprocess.

    ``start()``, ``send()`` and ``stop()`` are synchronous: messages sent
    before the process is up are queued and written in order once it is.

    Args:
        handlers: Callbacks for decoded messages.
        codex_bin: Path to the codex binary.
        cwd: Working directory for the backend.
        args: Extra arguments after ``app-server``.
    """

    def __init__(
        self,
        handlers: TransportHandlers,
        codex_bin: Optional[str] = None,
        cwd: Optional[str] = None,
        args: Optional[List[str]] = None,
    ):
        self._handlers = handlers
        self._codex_bin = codex_bin or DEFAULT_CODEX_BIN
        self._cwd = cwd or os.getcwd()
        self._args = list(args or [])

        self._process: Optional[asyncio.subprocess.Process] = None
        self._outbox: "asyncio.Queue[Optional[Dict[str, Any]]]" = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None
        self._writer_task: Optional[asyncio.Task] = None
        self._stopped = False

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done() and not self._stopped

    def start(self) -> None:
        """Spawn the backend and begin reading.

        Idempotent while the backend is running. Once it has exited, the next
        call spawns a fresh process; messages queued for the old one are
        discarded.
        """
        if self._stopped:
            return
        if self._task is not None:
            if not self._task.done():
                return
            logger.info("Respawning %s app-server", self._codex_bin)
            self._outbox = asyncio.Queue()
            self._process = None
            self._writer_task = None
        self._task = asyncio.get_running_loop().create_task(self._run())

    def send(self, message: Dict[str, Any]) -> None:
        """Queue a message for the backend."""
        if self._stopped:
            logger.debug("Dropping message after stop: %s", message.get("method", message.get("id")))
            return
        self._outbox.put_nowait(message)

    def stop(self) -> None:
        """Terminate the backend. Idempotent."""
        if self._stopped:
            return
        self._stopped = True
        self._outbox.put_nowait(None)
        if self._process is not None and self._process.returncode is None:
            try:
                self._process.terminate()
            except ProcessLookupError:
                pass
        current = asyncio.current_task()
        if self._task is not None and self._task is not current:
            self._task.cancel()

    # ==================== Internals ====================

    async def _dispatch(self, callback: Callable[..., MaybeAwaitable], arg: Any) -> None:
        """Invoke a handler; a failing handler is logged and reading goes on."""
        try:
            result = callback(arg)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Transport handler %s failed", getattr(callback, "__name__", callback))

    async def _run(self) -> None:
        try:
            self._process = await asyncio.create_subprocess_exec(
                self._codex_bin,
                "app-server",
                *self._args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
                cwd=self._cwd,
                limit=MAX_MESSAGE_SIZE,
            )
        except OSError as e:
            logger.error("Failed to start %s app-server: %s", self._codex_bin, e)
            await self._dispatch(self._handlers.on_process_exit, None)
            return

        logger.info("Started %s app-server (pid=%s)", self._codex_bin, self._process.pid)
        self._writer_task = asyncio.get_running_loop().create_task(self._write_loop())
        try:
            await self._read_loop()
            code = await self._process.wait()
            logger.info("codex app-server exited with code %s", code)
            if not self._stopped:
                await self._dispatch(self._handlers.on_process_exit, code)
        except asyncio.CancelledError:
            pass
        finally:
            if self._writer_task is not None:
                self._writer_task.cancel()

    async def _write_loop(self) -> None:
        assert self._process is not None and self._process.stdin is not None
        while True:
            message = await self._outbox.get()
            if message is None:
                return
            line = json.dumps(message) + "\n"
            try:
                self._process.stdin.write(line.encode("utf-8"))
                await self._process.stdin.drain()
            except (BrokenPipeError, ConnectionResetError) as e:
                logger.warning("Backend stdin closed: %s", e)
                return

    async def _read_loop(self) -> None:
        assert self._process is not None and self._process.stdout is not None
        while not self._stopped:
            try:
                raw = await self._process.stdout.readline()
            except ValueError as e:
                # Line longer than the stream limit
                await self._dispatch(self._handlers.on_protocol_error, ProtocolError(str(e)))
                return
            if not raw:
                return  # EOF

            try:
                payload_json = raw.decode("utf-8").strip()
            except UnicodeDecodeError as e:
                logger.error("Invalid UTF-8 from backend: %r", raw[:200])
                await self._dispatch(
                    self._handlers.on_protocol_error,
                    ProtocolError(f"invalid UTF-8 from backend: {e}"),
                )
                return
            if not payload_json:
                continue
            try:
                message = json.loads(payload_json)
            except json.JSONDecodeError as e:
                logger.error("Undecodable line from backend: %s", payload_json[:200])
                await self._dispatch(
                    self._handlers.on_protocol_error,
                    ProtocolError(f"invalid JSON from backend: {e}"),
                )
                return

            await self._route(message, payload_json)

    async def _route(self, message: Any, payload_json: str) -> None:
        if not isinstance(message, dict):
            await self._dispatch(
                self._handlers.on_protocol_error,
                ProtocolError(f"expected a JSON object, got {type(message).__name__}"),
            )
            return

        thread_id = thread_id_of(message) if "method" in message else None
        if thread_id is not None:
            event = BridgeEvent(
                kind=message["method"],
                thread_id=thread_id,
                turn_id=turn_id_of(message),
                payload_json=payload_json,
            )
            await self._dispatch(self._handlers.on_event, event)
        else:
            await self._dispatch(self._handlers.on_global_message, message)
