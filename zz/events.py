"""Consumer-facing event taxonomy.

The session emits these events to a single consumer callback, in the order
the underlying backend notifications arrived.

Event Flow:
    Session -> Consumer: lifecycle, streaming deltas, approvals, errors
    Consumer -> Session: approval decisions via ApprovalRequestEvent.respond
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional, Union


# =============================================================================
# Event Types
# =============================================================================

class EventType(str, Enum):
    """All consumer-facing event types."""

    THREAD_READY = "thread-ready"
    WAITING_START = "waiting-start"
    WAITING_STOP = "waiting-stop"
    REASONING_DELTA = "reasoning-delta"
    REASONING_SECTION_BREAK = "reasoning-section-break"
    RESPONSE_DELTA = "response-delta"
    COMMAND_OUTPUT_DELTA = "command-output-delta"
    APPROVAL_REQUEST = "approval-request"
    TURN_COMPLETE = "turn-complete"
    ERROR = "error"
    DEBUG_TAG = "debug-tag"


class Decision(str, Enum):
    """Approval decision sent back to the backend."""
    ACCEPT = "accept"
    DECLINE = "decline"


# =============================================================================
# Base Event
# =============================================================================

@dataclass
class AppEvent:
    """Base class for all consumer events."""
    type: EventType

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a plain dict (callbacks are omitted)."""
        d = {k: v for k, v in self.__dict__.items() if not callable(v)}
        d["type"] = self.type.value
        return d


@dataclass
class ThreadReadyEvent(AppEvent):
    """The backend assigned a thread id; the session is ready for turns."""
    type: EventType = field(default=EventType.THREAD_READY)
    thread_id: str = ""


@dataclass
class WaitingStartEvent(AppEvent):
    """A turn was sent; nothing has been received for it yet."""
    type: EventType = field(default=EventType.WAITING_START)


@dataclass
class WaitingStopEvent(AppEvent):
    """The first token of the turn arrived."""
    type: EventType = field(default=EventType.WAITING_STOP)


@dataclass
class ReasoningDeltaEvent(AppEvent):
    type: EventType = field(default=EventType.REASONING_DELTA)
    delta: str = ""


@dataclass
class ReasoningSectionBreakEvent(AppEvent):
    type: EventType = field(default=EventType.REASONING_SECTION_BREAK)


@dataclass
class ResponseDeltaEvent(AppEvent):
    type: EventType = field(default=EventType.RESPONSE_DELTA)
    delta: str = ""


@dataclass
class CommandOutputDeltaEvent(AppEvent):
    type: EventType = field(default=EventType.COMMAND_OUTPUT_DELTA)
    delta: str = ""


@dataclass
class ApprovalRequestEvent(AppEvent):
    """The backend asks permission to run a command or change a file.

    In prompt mode ``respond`` must be called exactly once. In auto-approve
    and deny modes the decision has already been sent: ``respond`` is None
    and ``decision`` records what was answered.
    """
    type: EventType = field(default=EventType.APPROVAL_REQUEST)
    kind: str = ""
    payload_json: str = ""
    description: str = ""
    respond: Optional[Callable[[Decision], None]] = None
    decision: Optional[Decision] = None


@dataclass
class TurnCompleteEvent(AppEvent):
    type: EventType = field(default=EventType.TURN_COMPLETE)


@dataclass
class ErrorEvent(AppEvent):
    type: EventType = field(default=EventType.ERROR)
    message: str = ""


@dataclass
class DebugTagEvent(AppEvent):
    type: EventType = field(default=EventType.DEBUG_TAG)
    tag: str = ""


AnyAppEvent = Union[
    ThreadReadyEvent,
    WaitingStartEvent,
    WaitingStopEvent,
    ReasoningDeltaEvent,
    ReasoningSectionBreakEvent,
    ResponseDeltaEvent,
    CommandOutputDeltaEvent,
    ApprovalRequestEvent,
    TurnCompleteEvent,
    ErrorEvent,
    DebugTagEvent,
]

EventCallback = Callable[[AppEvent], None]
