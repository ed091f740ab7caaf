"""Protocol helpers for codex app-server JSON messages.

Classifies inbound notifications into semantic categories and extracts
streamed deltas. Methods that are not recognized classify as ``None`` and are
ignored by the session, so newer backends can add notifications freely.

Usage:
    from zz.protocol import decode, EventCategory

    event = decode("item/agentMessage/delta", payload_json)
    if event and event.category is EventCategory.ASSISTANT_DELTA:
        print(event.delta)
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class Method:
    """Method names exchanged with the backend."""

    # Client -> Server
    INITIALIZE = "initialize"
    INITIALIZED = "initialized"
    THREAD_START = "thread/start"
    TURN_START = "turn/start"
    TURN_INTERRUPT = "turn/interrupt"
    MODEL_LIST = "model/list"

    # Server -> Client
    THREAD_STARTED = "thread/started"
    TURN_STARTED = "turn/started"
    TURN_COMPLETED = "turn/completed"

    AGENT_MESSAGE_DELTA = "item/agentMessage/delta"

    REASONING_SUMMARY_DELTA = "item/reasoning/summaryTextDelta"
    REASONING_SECTION_BREAK = "item/reasoning/summaryPartAdded"
    REASONING_RAW_DELTA = "item/reasoning/textDelta"

    COMMAND_OUTPUT_DELTA = "item/commandExecution/outputDelta"
    COMMAND_APPROVAL = "item/commandExecution/requestApproval"
    FILE_CHANGE_APPROVAL = "item/fileChange/requestApproval"

    SERVER_ERROR = "error"
    RATE_LIMITS_UPDATED = "account/rateLimits/updated"


class EventCategory(str, Enum):
    """Semantic category of an inbound notification."""
    THREAD_LIFECYCLE = "thread-lifecycle"
    TURN_LIFECYCLE = "turn-lifecycle"
    REASONING_DELTA = "reasoning-delta"
    REASONING_SECTION_BREAK = "reasoning-section-break"
    ASSISTANT_DELTA = "assistant-delta"
    COMMAND_OUTPUT_DELTA = "command-output-delta"
    APPROVAL_REQUEST = "approval-request"
    SERVER_ERROR = "server-error"
    IGNORABLE_NOOP = "ignorable-noop"


_CATEGORIES: Dict[str, EventCategory] = {
    Method.THREAD_STARTED: EventCategory.THREAD_LIFECYCLE,
    Method.TURN_STARTED: EventCategory.TURN_LIFECYCLE,
    Method.TURN_COMPLETED: EventCategory.TURN_LIFECYCLE,
    Method.REASONING_SUMMARY_DELTA: EventCategory.REASONING_DELTA,
    Method.REASONING_RAW_DELTA: EventCategory.REASONING_DELTA,
    Method.REASONING_SECTION_BREAK: EventCategory.REASONING_SECTION_BREAK,
    Method.AGENT_MESSAGE_DELTA: EventCategory.ASSISTANT_DELTA,
    Method.COMMAND_OUTPUT_DELTA: EventCategory.COMMAND_OUTPUT_DELTA,
    Method.COMMAND_APPROVAL: EventCategory.APPROVAL_REQUEST,
    Method.FILE_CHANGE_APPROVAL: EventCategory.APPROVAL_REQUEST,
    Method.SERVER_ERROR: EventCategory.SERVER_ERROR,
    Method.RATE_LIMITS_UPDATED: EventCategory.IGNORABLE_NOOP,
}

# Categories whose only useful content is params.delta
_DELTA_CATEGORIES = frozenset({
    EventCategory.REASONING_DELTA,
    EventCategory.ASSISTANT_DELTA,
    EventCategory.COMMAND_OUTPUT_DELTA,
})


@dataclass(frozen=True)
class DecodedEvent:
    """A classified inbound notification.

    Attributes:
        method: Raw method name.
        category: Semantic category.
        delta: Extracted text for delta categories, else None.
        message: The parsed message object (None if it was not an object).
    """
    method: str
    category: EventCategory
    delta: Optional[str] = None
    message: Optional[Dict[str, Any]] = None


def classify(method: str) -> Optional[EventCategory]:
    """Return the category of ``method``, or None when it is unknown."""
    return _CATEGORIES.get(method)


def parse_server_message(payload_json: str) -> Optional[Any]:
    """Parse a JSON payload, returning None (and logging) if it is invalid."""
    try:
        return json.loads(payload_json)
    except (TypeError, ValueError):
        logger.error("Failed to parse server message: %s", str(payload_json)[:200])
        return None


def get_params(message: Any) -> Optional[Dict[str, Any]]:
    """Return the ``params`` object of a message, if it has one."""
    if not isinstance(message, dict):
        return None
    params = message.get("params")
    return params if isinstance(params, dict) else None


def extract_delta(message: Any) -> Optional[str]:
    """Read ``params.delta`` from a message.

    Absent, non-string and empty values all yield None.

    Args:
        message: Parsed message object or raw JSON string.
    """
    if isinstance(message, str):
        message = parse_server_message(message)
    params = get_params(message)
    if params is None:
        return None
    delta = params.get("delta")
    if isinstance(delta, str) and delta:
        return delta
    return None


def is_notification(message: Any) -> bool:
    """A message with a method field is a notification (or server request)."""
    return isinstance(message, dict) and "method" in message


def is_response(message: Any) -> bool:
    """A message with a numeric id and no method field is a response."""
    if not isinstance(message, dict) or is_notification(message):
        return False
    msg_id = message.get("id")
    return isinstance(msg_id, int) and not isinstance(msg_id, bool)


def decode(method: str, payload_json: str) -> Optional[DecodedEvent]:
    """Decode an inbound notification into a typed event.

    Args:
        method: The notification method name.
        payload_json: The full JSON message as received from the transport.

    Returns:
        A DecodedEvent, or None when the method is unknown or a delta
        notification carries no usable delta.
    """
    category = classify(method)
    if category is None:
        return None

    message = parse_server_message(payload_json)
    if not isinstance(message, dict):
        message = None

    if category in _DELTA_CATEGORIES:
        delta = extract_delta(message)
        if delta is None:
            return None
        return DecodedEvent(method, category, delta=delta, message=message)

    return DecodedEvent(method, category, message=message)


def thread_id_of(message: Any) -> Optional[str]:
    """Thread id named by a message (``params.threadId`` or ``params.thread.id``)."""
    params = get_params(message)
    if params is None:
        return None
    thread_id = params.get("threadId")
    if isinstance(thread_id, str) and thread_id:
        return thread_id
    thread = params.get("thread")
    if isinstance(thread, dict) and isinstance(thread.get("id"), str):
        return thread["id"]
    return None


def turn_id_of(message: Any) -> Optional[str]:
    """Turn id named by a message (``params.turnId`` or ``params.turn.id``)."""
    params = get_params(message)
    if params is None:
        return None
    turn_id = params.get("turnId")
    if isinstance(turn_id, str) and turn_id:
        return turn_id
    turn = params.get("turn")
    if isinstance(turn, dict) and isinstance(turn.get("id"), str):
        return turn["id"]
    return None


# =============================================================================
# Outgoing messages
# =============================================================================

CLIENT_INFO = {
    "name": "zz_cli",
    "title": "zz",
    "version": "0.1.0",
}


def build_initialize(request_id: int) -> Dict[str, Any]:
    """Capabilities handshake request."""
    return {
        "method": Method.INITIALIZE,
        "id": request_id,
        "params": {"clientInfo": dict(CLIENT_INFO), "capabilities": None},
    }


def build_initialized() -> Dict[str, Any]:
    """Handshake-acknowledged notification."""
    return {"method": Method.INITIALIZED}


def build_thread_start(
    request_id: int,
    model: Optional[str],
    cwd: str,
    approval_policy: str,
    sandbox: str,
) -> Dict[str, Any]:
    return {
        "method": Method.THREAD_START,
        "id": request_id,
        "params": {
            "model": model,
            "cwd": cwd,
            "approvalPolicy": approval_policy,
            "sandbox": sandbox,
            "experimentalRawEvents": False,
        },
    }


def build_turn_start(request_id: int, thread_id: str, text: str) -> Dict[str, Any]:
    return {
        "method": Method.TURN_START,
        "id": request_id,
        "params": {
            "threadId": thread_id,
            "input": [{"type": "text", "text": text, "text_elements": []}],
        },
    }


def build_turn_interrupt(request_id: int, thread_id: str, turn_id: str) -> Dict[str, Any]:
    return {
        "method": Method.TURN_INTERRUPT,
        "id": request_id,
        "params": {"threadId": thread_id, "turnId": turn_id},
    }


def build_model_list(request_id: int) -> Dict[str, Any]:
    return {"method": Method.MODEL_LIST, "id": request_id, "params": {}}
