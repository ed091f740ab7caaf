"""Session state machine for a codex app-server conversation.

``BridgeSession`` owns the thread and turn lifecycle, allocates request ids,
correlates responses with the requests that caused them, and turns inbound
backend messages into consumer events.

Thread states:  Uninitialized -> Starting -> Ready
Turn states:    Idle -> Active -> Idle

All handlers run on one asyncio event loop. The transport awaits each handler
before reading the next message, so events are processed strictly in arrival
order. An approval request suspends that processing until it is answered.

Usage:
    session = BridgeSession(config)
    session.set_event_callback(on_event)
    thread_id = await session.start()
    await session.run_turn("hello")
    session.stop()
"""

import asyncio
import json
import logging
import os
import sys
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Protocol, Union

from zz import protocol
from zz.approvals import ApprovalFlow
from zz.config import Config
from zz.errors import InvalidStateError, RequestRejectedError, UnexpectedExitError
from zz.events import (
    AppEvent,
    CommandOutputDeltaEvent,
    DebugTagEvent,
    ErrorEvent,
    EventCallback,
    ReasoningDeltaEvent,
    ReasoningSectionBreakEvent,
    ResponseDeltaEvent,
    ThreadReadyEvent,
    TurnCompleteEvent,
    WaitingStartEvent,
    WaitingStopEvent,
)
from zz.markdown import StreamingMarkdownRenderer
from zz.protocol import EventCategory, Method
from zz.settle import Settleable
from zz.transport import BridgeEvent, BridgeTransport, TransportHandlers

logger = logging.getLogger(__name__)


# =============================================================================
# State variants
# =============================================================================

@dataclass
class ThreadUninitialized:
    pass


@dataclass
class ThreadStarting:
    pending: Settleable


@dataclass
class ThreadReady:
    thread_id: str


ThreadState = Union[ThreadUninitialized, ThreadStarting, ThreadReady]


@dataclass
class TurnFlags:
    """Per-turn display flags, reset at the start of every turn."""
    got_first_token: bool = False
    assistant_line_open: bool = False
    command_output_open: bool = False
    reasoning_started: bool = False


@dataclass
class TurnIdle:
    pass


@dataclass
class TurnActive:
    pending: Settleable
    turn_id: Optional[str] = None
    flags: TurnFlags = field(default_factory=TurnFlags)


TurnState = Union[TurnIdle, TurnActive]


class Transport(Protocol):
    """What the session needs from a transport."""

    def start(self) -> None: ...

    def send(self, message: Dict[str, Any]) -> None: ...

    def stop(self) -> None: ...


TransportFactory = Callable[[TransportHandlers], Transport]


# =============================================================================
# Session
# =============================================================================

class BridgeSession:
    """Drives one conversation thread with the backend.

    Args:
        config: Client configuration.
        renderer: Streaming markdown renderer fed with assistant deltas. The
            session resets it at every turn start and flushes it when a turn
            settles.
        transport_factory: Builds the transport from the session's handlers
            (default: a BridgeTransport running ``codex app-server``).
        cwd: Working directory sent in thread/start.
        exit_process: Called with the exit status after a fatal protocol error.
    """

    def __init__(
        self,
        config: Config,
        renderer: Optional[StreamingMarkdownRenderer] = None,
        transport_factory: Optional[TransportFactory] = None,
        cwd: Optional[str] = None,
        exit_process: Callable[[int], Any] = sys.exit,
    ):
        self._config = config
        self._renderer = renderer
        self._cwd = cwd or os.getcwd()
        self._exit_process = exit_process

        handlers = TransportHandlers(
            on_event=self.handle_event,
            on_global_message=self.handle_global_message,
            on_protocol_error=self.handle_protocol_error,
            on_process_exit=self.handle_process_exit,
        )
        if transport_factory is None:
            self._transport: Transport = BridgeTransport(
                handlers, codex_bin=config.codex_bin, cwd=self._cwd
            )
        else:
            self._transport = transport_factory(handlers)

        self._next_id = 1
        self._thread: ThreadState = ThreadUninitialized()
        self._turn: TurnState = TurnIdle()
        self._stopped = False
        self._handshake_sent = False
        self._event_callback: Optional[EventCallback] = None

        # request id -> method name, until the matching response arrives
        self._pending_requests: Dict[int, str] = {}

        self._approvals = ApprovalFlow(config.approval_mode, self._transport.send)

    # ==================== Properties ====================

    @property
    def thread_state(self) -> ThreadState:
        return self._thread

    @property
    def turn_state(self) -> TurnState:
        return self._turn

    @property
    def thread_id(self) -> Optional[str]:
        return self._thread.thread_id if isinstance(self._thread, ThreadReady) else None

    @property
    def pending_requests(self) -> Dict[int, str]:
        """Snapshot of outstanding request ids and their methods."""
        return dict(self._pending_requests)

    @property
    def approvals(self) -> ApprovalFlow:
        return self._approvals

    @property
    def renderer(self) -> Optional[StreamingMarkdownRenderer]:
        return self._renderer

    def set_event_callback(self, callback: Optional[EventCallback]) -> None:
        """Register the consumer callback (replaces any previous one)."""
        self._event_callback = callback

    # ==================== Public API ====================

    def start(self) -> "asyncio.Future[str]":
        """Start the backend and a new thread.

        Returns:
            Future resolving with the thread id. When the thread is already
            Ready, the future is resolved immediately and nothing is sent.

        Raises:
            InvalidStateError: If the session was stopped.
        """
        if isinstance(self._thread, ThreadReady):
            return Settleable.resolved(self._thread.thread_id).future
        if isinstance(self._thread, ThreadStarting):
            return self._thread.pending.future
        if self._stopped:
            raise InvalidStateError("Session is stopped.")

        pending: Settleable[str] = Settleable()
        self._thread = ThreadStarting(pending)
        self._transport.start()

        if not self._handshake_sent:
            self._handshake_sent = True
            self._send(protocol.build_initialize(self._request_id()))
            self._send(protocol.build_initialized())

        self._send(protocol.build_thread_start(
            self._request_id(),
            model=self._config.model,
            cwd=self._cwd,
            approval_policy=self._config.protocol_approval_policy,
            sandbox=self._config.protocol_sandbox,
        ))
        return pending.future

    def run_turn(self, text: str) -> "asyncio.Future[None]":
        """Send user input as a new turn.

        Returns:
            Future resolved when the turn completes, rejected on turn error.

        Raises:
            InvalidStateError: If the thread is not ready or a turn is
                already active.
        """
        if not isinstance(self._thread, ThreadReady):
            raise InvalidStateError("Thread not ready.")
        if isinstance(self._turn, TurnActive):
            raise InvalidStateError(
                "A turn is already in progress. Wait for completion or use /interrupt."
            )

        thread_id = self._thread.thread_id
        self._emit(WaitingStartEvent())

        pending: Settleable[None] = Settleable()
        self._turn = TurnActive(pending=pending)
        if self._renderer is not None:
            self._renderer.reset()

        self._send(protocol.build_turn_start(self._request_id(), thread_id, text))
        return pending.future

    def interrupt_turn(self) -> bool:
        """Ask the backend to interrupt the active turn (best effort).

        The turn still settles through its normal completion or error path.

        Returns:
            True if an interrupt request was sent.
        """
        if not isinstance(self._thread, ThreadReady):
            return False
        if not isinstance(self._turn, TurnActive) or not self._turn.turn_id:
            return False
        self._send(protocol.build_turn_interrupt(
            self._request_id(), self._thread.thread_id, self._turn.turn_id
        ))
        return True

    def stop(self) -> None:
        """Tear down the transport. Idempotent."""
        if self._stopped:
            return
        self._stopped = True
        self._transport.stop()

    # ==================== Internals ====================

    def _request_id(self) -> int:
        request_id = self._next_id
        self._next_id += 1
        return request_id

    def _send(self, message: Dict[str, Any]) -> None:
        self._transport.send(message)
        request_id = message.get("id")
        if isinstance(request_id, int) and "method" in message:
            self._pending_requests[request_id] = message["method"]

    def _emit(self, event: AppEvent) -> None:
        if self._event_callback is not None:
            self._event_callback(event)

    def _active_turn(self) -> Optional[TurnActive]:
        return self._turn if isinstance(self._turn, TurnActive) else None

    def _on_first_token(self) -> None:
        turn = self._active_turn()
        if turn is not None and not turn.flags.got_first_token:
            turn.flags.got_first_token = True
            self._emit(WaitingStopEvent())

    def _settle_turn(self, error: Optional[BaseException] = None) -> bool:
        """Settle the active turn: flush output, emit turn-complete, go Idle.

        Returns:
            False if no turn was active (nothing happened).
        """
        turn = self._active_turn()
        if turn is None:
            return False
        self._turn = TurnIdle()
        try:
            if self._renderer is not None:
                self._renderer.flush()
            self._emit(TurnCompleteEvent())
        finally:
            if error is None:
                turn.pending.resolve(None)
            else:
                turn.pending.reject(error)
        return True

    def _fail_thread_start(self, error: BaseException) -> bool:
        if not isinstance(self._thread, ThreadStarting):
            return False
        pending = self._thread.pending
        self._thread = ThreadUninitialized()
        pending.reject(error)
        return True

    # ==================== Event handlers ====================

    async def handle_event(self, event: BridgeEvent) -> None:
        """Handle a thread-scoped message from the transport."""
        decoded = protocol.decode(event.kind, event.payload_json)
        if decoded is None:
            return
        category = decoded.category

        if category is EventCategory.THREAD_LIFECYCLE:
            if event.kind == Method.THREAD_STARTED and isinstance(self._thread, ThreadStarting):
                pending = self._thread.pending
                self._thread = ThreadReady(event.thread_id)
                logger.info("Thread ready: %s", event.thread_id)
                self._emit(ThreadReadyEvent(thread_id=event.thread_id))
                pending.resolve(event.thread_id)
            return

        if category is EventCategory.TURN_LIFECYCLE:
            turn = self._active_turn()
            if event.kind == Method.TURN_STARTED:
                if turn is not None and event.turn_id and turn.turn_id is None:
                    turn.turn_id = event.turn_id
            elif event.kind == Method.TURN_COMPLETED:
                if turn is not None and turn.turn_id and event.turn_id and turn.turn_id != event.turn_id:
                    logger.debug("Ignoring completion of stale turn %s", event.turn_id)
                    return
                self._settle_turn()
            return

        if category in (EventCategory.REASONING_DELTA, EventCategory.REASONING_SECTION_BREAK):
            self._on_first_token()
            turn = self._active_turn()
            if turn is not None:
                turn.flags.reasoning_started = True
                if turn.flags.assistant_line_open:
                    # A new reasoning cycle ends the response segment
                    turn.flags.assistant_line_open = False
                    if self._renderer is not None:
                        self._renderer.flush()
            if category is EventCategory.REASONING_SECTION_BREAK:
                self._emit(ReasoningSectionBreakEvent())
            else:
                self._emit(ReasoningDeltaEvent(delta=decoded.delta or ""))
            return

        if category is EventCategory.ASSISTANT_DELTA:
            self._on_first_token()
            if self._config.reasoning_only:
                return
            turn = self._active_turn()
            if turn is not None and not turn.flags.assistant_line_open:
                turn.flags.assistant_line_open = True
                if self._config.debug:
                    self._emit(DebugTagEvent(tag="response"))
            delta = decoded.delta or ""
            self._emit(ResponseDeltaEvent(delta=delta))
            if self._renderer is not None:
                self._renderer.feed(delta)
            return

        if category is EventCategory.COMMAND_OUTPUT_DELTA:
            self._on_first_token()
            turn = self._active_turn()
            if self._config.debug and turn is not None and not turn.flags.command_output_open:
                turn.flags.command_output_open = True
                self._emit(DebugTagEvent(tag="command"))
            self._emit(CommandOutputDeltaEvent(delta=decoded.delta or ""))
            return

        if category is EventCategory.APPROVAL_REQUEST:
            self._on_first_token()
            await self._approvals.handle(event.kind, event.payload_json, self._emit)
            return

        if category is EventCategory.SERVER_ERROR:
            self._emit_server_error(decoded.message)

    async def handle_global_message(self, message: Dict[str, Any]) -> None:
        """Handle an unscoped response or notification."""
        if protocol.is_response(message):
            method = self._pending_requests.pop(message["id"], None)
            error = message.get("error")
            if error is None:
                return

            if isinstance(error, dict):
                err = RequestRejectedError(method, str(error.get("message", "")), error.get("code"))
            else:
                err = RequestRejectedError(method, str(error))
            logger.warning("%s", err)

            if method == Method.THREAD_START and self._fail_thread_start(err):
                return
            if method == Method.TURN_START and self._settle_turn(err):
                return
            self._emit(ErrorEvent(message=str(err)))
            return

        if protocol.is_notification(message):
            category = protocol.classify(message["method"])
            if category is EventCategory.SERVER_ERROR:
                self._emit_server_error(message)

    def _emit_server_error(self, message: Optional[Dict[str, Any]]) -> None:
        params = protocol.get_params(message)
        self._emit(ErrorEvent(message=f"server: {json.dumps(params)}"))

    def handle_protocol_error(self, error: Exception) -> None:
        """The connection can no longer be trusted: fail everything and exit."""
        logger.error("Protocol error: %s", error)
        self._settle_turn(error)
        self._emit(ErrorEvent(message=f"protocol: {error}"))
        self._fail_thread_start(error)
        self._approvals.cancel_all(error)
        self.stop()
        self._exit_process(1)

    def handle_process_exit(self, code: Optional[int]) -> None:
        """The backend exited: fail outstanding work, keep the session object."""
        logger.warning("codex app-server exited (code=%s)", code)
        error = UnexpectedExitError(code)
        # A respawned backend needs the handshake again
        self._handshake_sent = False
        self._pending_requests.clear()
        self._fail_thread_start(error)
        if isinstance(self._thread, ThreadReady):
            # The thread lived in the old process
            self._thread = ThreadUninitialized()
        self._settle_turn(error)
