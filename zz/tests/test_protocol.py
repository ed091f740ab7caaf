# zz/tests/test_protocol.py
"""Tests for protocol classification, delta extraction and message builders."""

import json

import pytest

from zz import protocol
from zz.protocol import EventCategory, Method


def _notification(method, params=None):
    return json.dumps({"method": method, "params": params or {}})


class TestClassify:
    """Tests for method classification."""

    @pytest.mark.parametrize("method,category", [
        ("thread/started", EventCategory.THREAD_LIFECYCLE),
        ("turn/started", EventCategory.TURN_LIFECYCLE),
        ("turn/completed", EventCategory.TURN_LIFECYCLE),
        ("item/reasoning/summaryTextDelta", EventCategory.REASONING_DELTA),
        ("item/reasoning/textDelta", EventCategory.REASONING_DELTA),
        ("item/reasoning/summaryPartAdded", EventCategory.REASONING_SECTION_BREAK),
        ("item/agentMessage/delta", EventCategory.ASSISTANT_DELTA),
        ("item/commandExecution/outputDelta", EventCategory.COMMAND_OUTPUT_DELTA),
        ("item/commandExecution/requestApproval", EventCategory.APPROVAL_REQUEST),
        ("item/fileChange/requestApproval", EventCategory.APPROVAL_REQUEST),
        ("error", EventCategory.SERVER_ERROR),
        ("account/rateLimits/updated", EventCategory.IGNORABLE_NOOP),
    ])
    def test_known_methods(self, method, category):
        """Each known method maps to its category."""
        assert protocol.classify(method) is category

    def test_unknown_method(self):
        """Unknown methods are not classified."""
        assert protocol.classify("item/somethingNew") is None
        assert protocol.decode("item/somethingNew", _notification("item/somethingNew")) is None


class TestExtractDelta:
    """Tests for params.delta extraction."""

    def test_string_delta(self):
        """A non-empty string delta is returned as is."""
        payload = _notification(Method.AGENT_MESSAGE_DELTA, {"delta": "hello"})
        assert protocol.extract_delta(payload) == "hello"

    def test_empty_delta(self):
        """An empty delta yields nothing."""
        payload = _notification(Method.AGENT_MESSAGE_DELTA, {"delta": ""})
        assert protocol.extract_delta(payload) is None

    def test_non_string_delta(self):
        """A numeric delta yields nothing."""
        payload = _notification(Method.AGENT_MESSAGE_DELTA, {"delta": 5})
        assert protocol.extract_delta(payload) is None

    def test_missing_params(self):
        """A message without params yields nothing."""
        assert protocol.extract_delta(json.dumps({"method": "x"})) is None

    def test_invalid_json(self):
        """Undecodable payloads yield nothing instead of raising."""
        assert protocol.extract_delta("{not json") is None


class TestDecode:
    """Tests for decoding notifications into typed events."""

    def test_assistant_delta(self):
        """Delta categories carry the delta text."""
        event = protocol.decode(
            Method.AGENT_MESSAGE_DELTA,
            _notification(Method.AGENT_MESSAGE_DELTA, {"threadId": "T1", "delta": "Hi"}),
        )
        assert event is not None
        assert event.category is EventCategory.ASSISTANT_DELTA
        assert event.delta == "Hi"

    def test_delta_without_text_is_dropped(self):
        """A delta notification with an empty delta produces no event."""
        payload = _notification(Method.REASONING_SUMMARY_DELTA, {"delta": ""})
        assert protocol.decode(Method.REASONING_SUMMARY_DELTA, payload) is None

    def test_lifecycle_keeps_message(self):
        """Non-delta categories keep the parsed message."""
        payload = _notification(Method.TURN_COMPLETED, {"threadId": "T1", "turn": {"id": "G1"}})
        event = protocol.decode(Method.TURN_COMPLETED, payload)
        assert event.category is EventCategory.TURN_LIFECYCLE
        assert event.delta is None
        assert event.message["params"]["turn"]["id"] == "G1"


class TestMessageShape:
    """Tests for response/notification detection and id extraction."""

    def test_response_detection(self):
        """Numeric id without method is a response."""
        assert protocol.is_response({"id": 3, "result": {}})
        assert not protocol.is_response({"id": 3, "method": "x"})
        assert not protocol.is_response({"id": "3", "result": {}})
        assert not protocol.is_response({"id": True, "result": {}})
        assert not protocol.is_response([1, 2])

    def test_notification_detection(self):
        """Anything with a method field is a notification."""
        assert protocol.is_notification({"method": "error"})
        assert not protocol.is_notification({"id": 1})

    def test_thread_id_forms(self):
        """Thread id comes from threadId or thread.id."""
        assert protocol.thread_id_of({"params": {"threadId": "T1"}}) == "T1"
        assert protocol.thread_id_of({"params": {"thread": {"id": "T2"}}}) == "T2"
        assert protocol.thread_id_of({"params": {}}) is None
        assert protocol.thread_id_of({"result": {}}) is None

    def test_turn_id_forms(self):
        """Turn id comes from turnId or turn.id."""
        assert protocol.turn_id_of({"params": {"turnId": "G1"}}) == "G1"
        assert protocol.turn_id_of({"params": {"turn": {"id": "G2"}}}) == "G2"
        assert protocol.turn_id_of({"params": {"threadId": "T"}}) is None


class TestBuilders:
    """Tests for outgoing message builders."""

    def test_initialize(self):
        """initialize carries client info and null capabilities."""
        msg = protocol.build_initialize(1)
        assert msg["method"] == "initialize"
        assert msg["id"] == 1
        assert msg["params"]["clientInfo"]["name"] == "zz_cli"
        assert msg["params"]["capabilities"] is None

    def test_initialized_has_no_id(self):
        """initialized is a notification."""
        assert protocol.build_initialized() == {"method": "initialized"}

    def test_thread_start(self):
        """thread/start carries model, cwd, policy and sandbox."""
        msg = protocol.build_thread_start(
            3, model="gpt-x", cwd="/work", approval_policy="untrusted", sandbox="workspace-write"
        )
        assert msg["method"] == "thread/start"
        assert msg["params"] == {
            "model": "gpt-x",
            "cwd": "/work",
            "approvalPolicy": "untrusted",
            "sandbox": "workspace-write",
            "experimentalRawEvents": False,
        }

    def test_turn_start(self):
        """turn/start wraps the text in a single text input item."""
        msg = protocol.build_turn_start(4, "T1", "hello")
        assert msg["params"]["threadId"] == "T1"
        assert msg["params"]["input"] == [{"type": "text", "text": "hello", "text_elements": []}]

    def test_turn_interrupt(self):
        """turn/interrupt names both thread and turn."""
        msg = protocol.build_turn_interrupt(5, "T1", "G1")
        assert msg == {"method": "turn/interrupt", "id": 5, "params": {"threadId": "T1", "turnId": "G1"}}
