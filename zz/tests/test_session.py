"""Tests for the session state machine.

A fake transport records outgoing messages; inbound traffic is fed straight
into the session's handlers, the way the real transport delivers it.
"""

import asyncio
import json

import pytest

from zz.config import ApprovalMode, Config
from zz.errors import (
    InvalidStateError,
    ProtocolError,
    RequestRejectedError,
    UnexpectedExitError,
)
from zz.events import Decision, EventType
from zz.markdown import StreamingMarkdownRenderer
from zz.protocol import Method
from zz.session import (
    BridgeSession,
    ThreadReady,
    ThreadStarting,
    ThreadUninitialized,
    TurnActive,
    TurnIdle,
)
from zz.transport import BridgeEvent


class FakeTransport:
    """Records what the session sends."""

    def __init__(self, handlers):
        self.handlers = handlers
        self.sent = []
        self.started = 0
        self.stopped = False

    def start(self):
        self.started += 1

    def send(self, message):
        self.sent.append(message)

    def stop(self):
        self.stopped = True

    def methods(self):
        return [m.get("method") for m in self.sent]


class Harness:
    """Session plus its fake transport, recorded events and exit calls."""

    def __init__(self, renderer=None, **config_kwargs):
        self.exits = []
        self.events = []
        self.transport = None

        def factory(handlers):
            self.transport = FakeTransport(handlers)
            return self.transport

        self.session = BridgeSession(
            Config(**config_kwargs),
            renderer=renderer,
            transport_factory=factory,
            cwd="/work",
            exit_process=self.exits.append,
        )
        self.session.set_event_callback(self.events.append)

    def types(self):
        return [e.type for e in self.events]

    async def notify(self, method, thread_id="T1", turn_id=None, **params):
        params = {"threadId": thread_id, **params}
        if turn_id:
            params["turnId"] = turn_id
        payload = json.dumps({"method": method, "params": params})
        await self.session.handle_event(BridgeEvent(method, thread_id, turn_id, payload))

    async def request(self, method, request_id, thread_id="T1", **params):
        params = {"threadId": thread_id, **params}
        payload = json.dumps({"id": request_id, "method": method, "params": params})
        await self.session.handle_event(BridgeEvent(method, thread_id, None, payload))

    async def ready(self):
        future = self.session.start()
        await self.notify(Method.THREAD_STARTED)
        return await future

    async def active_turn(self, text="hello", turn_id="G1"):
        await self.ready()
        turn = self.session.run_turn(text)
        await self.notify(Method.TURN_STARTED, turn_id=turn_id)
        return turn


class TestStart:
    """Tests for thread startup."""

    @pytest.mark.asyncio
    async def test_handshake_and_thread_start(self):
        """start() sends initialize, initialized and thread/start in order."""
        h = Harness(model="gpt-x")
        h.session.start()

        assert h.transport.started == 1
        assert h.transport.methods() == ["initialize", "initialized", "thread/start"]
        params = h.transport.sent[2]["params"]
        assert params["model"] == "gpt-x"
        assert params["cwd"] == "/work"
        assert params["approvalPolicy"] == "untrusted"
        assert params["sandbox"] == "workspace-write"
        assert isinstance(h.session.thread_state, ThreadStarting)

    @pytest.mark.asyncio
    async def test_thread_started_resolves(self):
        """thread/started moves the thread to Ready and emits thread-ready."""
        h = Harness()
        thread_id = await h.ready()

        assert thread_id == "T1"
        assert h.session.thread_state == ThreadReady("T1")
        assert h.session.thread_id == "T1"
        assert h.types() == [EventType.THREAD_READY]

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self):
        """Repeated start() calls send thread/start once."""
        h = Harness()
        first = h.session.start()
        second = h.session.start()
        assert first is second

        await h.notify(Method.THREAD_STARTED)
        third = h.session.start()

        assert third.done()
        assert third.result() == "T1"
        assert h.transport.methods().count("thread/start") == 1

    @pytest.mark.asyncio
    async def test_request_ids_are_tracked(self):
        """Requests are recorded until their response arrives."""
        h = Harness()
        h.session.start()
        assert h.session.pending_requests == {1: "initialize", 2: "thread/start"}

        await h.session.handle_global_message({"id": 1, "result": {}})
        assert h.session.pending_requests == {2: "thread/start"}


class TestTurns:
    """Tests for turn lifecycle."""

    @pytest.mark.asyncio
    async def test_end_to_end_event_order(self):
        """A simple turn produces the expected event sequence."""
        h = Harness()
        await h.ready()

        turn = h.session.run_turn("hello")
        assert h.transport.sent[-1]["method"] == "turn/start"
        assert h.transport.sent[-1]["params"]["threadId"] == "T1"

        await h.notify(Method.TURN_STARTED, turn_id="G1")
        await h.notify(Method.AGENT_MESSAGE_DELTA, turn_id="G1", delta="Hi")
        await h.notify(Method.TURN_COMPLETED, turn_id="G1")

        assert h.types() == [
            EventType.THREAD_READY,
            EventType.WAITING_START,
            EventType.WAITING_STOP,
            EventType.RESPONSE_DELTA,
            EventType.TURN_COMPLETE,
        ]
        assert h.events[3].delta == "Hi"
        assert await turn is None
        assert isinstance(h.session.turn_state, TurnIdle)

    @pytest.mark.asyncio
    async def test_run_turn_before_ready(self):
        """Turns need a ready thread."""
        h = Harness()
        with pytest.raises(InvalidStateError):
            h.session.run_turn("hello")
        h.session.start()
        with pytest.raises(InvalidStateError):
            h.session.run_turn("hello")

    @pytest.mark.asyncio
    async def test_run_turn_while_active(self):
        """A second turn while one is active is rejected without side effects."""
        h = Harness()
        await h.active_turn()
        sent_before = list(h.transport.sent)
        events_before = list(h.events)

        with pytest.raises(InvalidStateError):
            h.session.run_turn("again")

        assert h.transport.sent == sent_before
        assert h.events == events_before
        assert isinstance(h.session.turn_state, TurnActive)

    @pytest.mark.asyncio
    async def test_duplicate_turn_completed(self):
        """A second turn/completed after settling is ignored."""
        h = Harness()
        turn = await h.active_turn()

        await h.notify(Method.TURN_COMPLETED, turn_id="G1")
        await h.notify(Method.TURN_COMPLETED, turn_id="G1")

        assert h.types().count(EventType.TURN_COMPLETE) == 1
        assert await turn is None

    @pytest.mark.asyncio
    async def test_stale_turn_completed(self):
        """Completion of another turn id does not settle the active turn."""
        h = Harness()
        turn = await h.active_turn(turn_id="G2")

        await h.notify(Method.TURN_COMPLETED, turn_id="G1")

        assert not turn.done()
        assert isinstance(h.session.turn_state, TurnActive)

    @pytest.mark.asyncio
    async def test_waiting_stop_once_per_turn(self):
        """Only the first token of a turn emits waiting-stop."""
        h = Harness()
        await h.active_turn()
        await h.notify(Method.REASONING_SUMMARY_DELTA, delta="thinking")
        await h.notify(Method.AGENT_MESSAGE_DELTA, delta="a")
        await h.notify(Method.AGENT_MESSAGE_DELTA, delta="b")

        assert h.types().count(EventType.WAITING_STOP) == 1

    @pytest.mark.asyncio
    async def test_empty_delta_ignored(self):
        """Deltas with no text produce no events."""
        h = Harness()
        await h.active_turn()
        before = len(h.events)

        await h.notify(Method.AGENT_MESSAGE_DELTA, delta="")

        assert len(h.events) == before

    @pytest.mark.asyncio
    async def test_unknown_notification_ignored(self):
        """Unrecognized methods are dropped."""
        h = Harness()
        await h.active_turn()
        before = len(h.events)

        await h.notify("item/newThing", foo=1)
        await h.notify(Method.RATE_LIMITS_UPDATED)

        assert len(h.events) == before

    @pytest.mark.asyncio
    async def test_interrupt(self):
        """Interrupt needs a known turn id and sends turn/interrupt."""
        h = Harness()
        assert h.session.interrupt_turn() is False

        await h.active_turn(turn_id="G7")

        assert h.session.interrupt_turn() is True
        assert h.transport.sent[-1]["method"] == "turn/interrupt"
        assert h.transport.sent[-1]["params"] == {"threadId": "T1", "turnId": "G7"}


class TestStreamingOutput:
    """Tests for reasoning, response and command output handling."""

    @pytest.mark.asyncio
    async def test_reasoning_events(self):
        """Reasoning deltas and section breaks pass through."""
        h = Harness()
        await h.active_turn()
        await h.notify(Method.REASONING_SUMMARY_DELTA, delta="**Plan**")
        await h.notify(Method.REASONING_SECTION_BREAK)
        await h.notify(Method.REASONING_RAW_DELTA, delta="more")

        assert h.types()[-4:] == [
            EventType.WAITING_STOP,
            EventType.REASONING_DELTA,
            EventType.REASONING_SECTION_BREAK,
            EventType.REASONING_DELTA,
        ]
        assert h.events[-1].delta == "more"

    @pytest.mark.asyncio
    async def test_reasoning_only_suppresses_response(self):
        """In reasoning-only mode response deltas only stop the spinner."""
        h = Harness(reasoning_only=True)
        await h.active_turn()
        await h.notify(Method.AGENT_MESSAGE_DELTA, delta="Hi")

        assert EventType.RESPONSE_DELTA not in h.types()
        assert EventType.WAITING_STOP in h.types()

    @pytest.mark.asyncio
    async def test_command_output(self):
        """Command output deltas are passed through."""
        h = Harness()
        await h.active_turn()
        await h.notify(Method.COMMAND_OUTPUT_DELTA, delta="line 1\n")

        assert h.events[-1].type is EventType.COMMAND_OUTPUT_DELTA
        assert h.events[-1].delta == "line 1\n"

    @pytest.mark.asyncio
    async def test_debug_tags(self):
        """Debug mode tags the first response and command output of a turn."""
        h = Harness(debug=True)
        await h.active_turn()
        await h.notify(Method.AGENT_MESSAGE_DELTA, delta="a")
        await h.notify(Method.AGENT_MESSAGE_DELTA, delta="b")
        await h.notify(Method.COMMAND_OUTPUT_DELTA, delta="out")
        await h.notify(Method.COMMAND_OUTPUT_DELTA, delta="put")

        tags = [e.tag for e in h.events if e.type is EventType.DEBUG_TAG]
        assert tags == ["response", "command"]

    @pytest.mark.asyncio
    async def test_renderer_fed_and_flushed(self):
        """Response text reaches the renderer and is flushed at turn end."""
        chunks = []
        renderer = StreamingMarkdownRenderer(on_chunk=chunks.append, highlight=False)
        h = Harness(renderer=renderer)
        await h.active_turn()

        await h.notify(Method.AGENT_MESSAGE_DELTA, delta="Hello ")
        await h.notify(Method.AGENT_MESSAGE_DELTA, delta="world")
        assert chunks == []

        await h.notify(Method.TURN_COMPLETED, turn_id="G1")

        assert len(chunks) == 1
        assert "Hello world" in chunks[0].text
        assert renderer.peek() == ""


class TestApprovals:
    """Tests for approval handling inside the session."""

    @pytest.mark.asyncio
    async def test_auto_approve(self):
        """Auto-approve answers without waiting."""
        h = Harness(approval_mode=ApprovalMode.AUTO_APPROVE)
        await h.active_turn()

        await h.request(Method.COMMAND_APPROVAL, 42, command="ls")

        assert h.transport.sent[-1] == {"id": 42, "result": {"decision": "accept"}}
        assert h.events[-1].type is EventType.APPROVAL_REQUEST
        assert h.events[-1].decision is Decision.ACCEPT

    @pytest.mark.asyncio
    async def test_prompt_blocks_event_processing(self):
        """Event handling waits until the approval is answered."""
        h = Harness()
        await h.active_turn()

        task = asyncio.ensure_future(h.request(Method.FILE_CHANGE_APPROVAL, 9, itemId="i1"))
        await asyncio.sleep(0)
        assert not task.done()

        approval = h.events[-1]
        assert approval.type is EventType.APPROVAL_REQUEST
        approval.respond(Decision.DECLINE)
        await task

        assert h.transport.sent[-1] == {"id": 9, "result": {"decision": "decline"}}


class TestErrors:
    """Tests for error correlation and fatal conditions."""

    @pytest.mark.asyncio
    async def test_thread_start_rejected(self):
        """An error response to thread/start rejects start and resets the thread."""
        h = Harness()
        future = h.session.start()

        await h.session.handle_global_message(
            {"id": 2, "error": {"message": "bad model", "code": -32600}}
        )

        with pytest.raises(RequestRejectedError) as exc_info:
            await future
        assert exc_info.value.method == "thread/start"
        assert exc_info.value.code == -32600
        assert "bad model" in str(exc_info.value)
        assert isinstance(h.session.thread_state, ThreadUninitialized)
        assert EventType.ERROR not in h.types()

    @pytest.mark.asyncio
    async def test_turn_start_rejected(self):
        """An error response to turn/start settles the turn with the error."""
        h = Harness()
        await h.ready()
        turn = h.session.run_turn("hello")
        turn_request_id = h.transport.sent[-1]["id"]

        await h.session.handle_global_message(
            {"id": turn_request_id, "error": {"message": "busy", "code": 1}}
        )

        with pytest.raises(RequestRejectedError):
            await turn
        assert h.types()[-1] is EventType.TURN_COMPLETE
        assert isinstance(h.session.turn_state, TurnIdle)

    @pytest.mark.asyncio
    async def test_untracked_error_response(self):
        """Errors for other requests become error events."""
        h = Harness()
        await h.ready()

        await h.session.handle_global_message({"id": 99, "error": {"message": "nope", "code": 5}})

        assert h.events[-1].type is EventType.ERROR
        assert "nope" in h.events[-1].message

    @pytest.mark.asyncio
    async def test_server_error_notification(self):
        """A global error notification is reported with its params."""
        h = Harness()
        await h.session.handle_global_message({"method": "error", "params": {"message": "boom"}})

        assert h.events[-1].type is EventType.ERROR
        assert h.events[-1].message == 'server: {"message": "boom"}'

    @pytest.mark.asyncio
    async def test_protocol_error_is_fatal(self):
        """A protocol error fails the turn, stops the transport and exits 1."""
        h = Harness()
        turn = await h.active_turn()

        h.session.handle_protocol_error(ProtocolError("invalid JSON from backend"))

        with pytest.raises(ProtocolError):
            await turn
        assert EventType.TURN_COMPLETE in h.types()
        assert h.events[-1].type is EventType.ERROR
        assert h.events[-1].message == "protocol: invalid JSON from backend"
        assert h.transport.stopped
        assert h.exits == [1]

    @pytest.mark.asyncio
    async def test_process_exit_during_turn(self):
        """Backend exit rejects the active turn."""
        h = Harness()
        turn = await h.active_turn()

        h.session.handle_process_exit(1)

        with pytest.raises(UnexpectedExitError) as exc_info:
            await turn
        assert str(exc_info.value) == "codex app-server exited unexpectedly (code=1)"
        assert h.exits == []

    @pytest.mark.asyncio
    async def test_process_exit_during_start(self):
        """Backend exit while starting rejects the start."""
        h = Harness()
        future = h.session.start()

        h.session.handle_process_exit(None)

        with pytest.raises(UnexpectedExitError):
            await future
        assert isinstance(h.session.thread_state, ThreadUninitialized)

    @pytest.mark.asyncio
    async def test_start_after_process_exit_repeats_handshake(self):
        """A start() after the backend exited respawns it and handshakes again."""
        h = Harness()
        first = h.session.start()
        h.session.handle_process_exit(None)
        with pytest.raises(UnexpectedExitError):
            await first

        second = h.session.start()
        assert h.transport.started == 2
        assert h.transport.methods()[3:] == ["initialize", "initialized", "thread/start"]
        assert isinstance(h.session.thread_state, ThreadStarting)

        await h.notify(Method.THREAD_STARTED, thread_id="T2")
        assert await second == "T2"

    @pytest.mark.asyncio
    async def test_process_exit_when_ready_requires_new_thread(self):
        """A thread from an exited backend is dropped; start() creates a new one."""
        h = Harness()
        await h.ready()

        h.session.handle_process_exit(0)

        assert isinstance(h.session.thread_state, ThreadUninitialized)
        with pytest.raises(InvalidStateError):
            h.session.run_turn("hello")
        h.session.start()
        assert h.transport.methods()[-1] == "thread/start"
        assert h.transport.methods().count("initialize") == 2

    @pytest.mark.asyncio
    async def test_failing_consumer_still_settles_turn(self):
        """A consumer that raises on turn-complete does not leave the turn pending."""
        h = Harness()
        turn = await h.active_turn()

        def consumer(event):
            if event.type is EventType.TURN_COMPLETE:
                raise RuntimeError("consumer bug")

        h.session.set_event_callback(consumer)
        with pytest.raises(RuntimeError):
            h.session.handle_process_exit(3)

        with pytest.raises(UnexpectedExitError):
            await turn
        assert isinstance(h.session.turn_state, TurnIdle)

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self):
        """stop() can be called repeatedly and blocks a new start."""
        h = Harness()
        h.session.stop()
        h.session.stop()

        assert h.transport.stopped
        with pytest.raises(InvalidStateError):
            h.session.start()
