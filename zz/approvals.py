"""Approval flow for backend-initiated permission requests.

The backend asks before executing a command or applying a file change. How
the request is answered depends on the configured approval mode:

- auto-approve: "accept" is sent immediately, nothing is retained
- deny: "decline" is sent immediately, nothing is retained
- prompt: the consumer receives a ``respond`` callback and the flow suspends
  until it is called

Each approval id is answered exactly once. A payload without an id or method
cannot be correlated with a reply, so it is declined locally and never shown
to the consumer.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Union

from rich.markup import escape

from zz.config import ApprovalMode
from zz.errors import MalformedPayloadError
from zz.events import ApprovalRequestEvent, Decision, EventCallback
from zz.protocol import Method, parse_server_message
from zz.settle import Settleable

logger = logging.getLogger(__name__)

ApprovalId = Union[int, str]


@dataclass
class ApprovalPayload:
    """Parsed approval request.

    Attributes:
        id: Request id to echo in the decision.
        method: Action kind (command execution or file change).
        params: Free-form parameters (command, cwd, reason, itemId).
    """
    id: ApprovalId
    method: str
    params: Dict[str, Any] = field(default_factory=dict)


def parse_approval_payload(payload_json: str) -> Optional[ApprovalPayload]:
    """Parse an approval request, returning None if it is malformed."""
    msg = parse_server_message(payload_json)
    if not isinstance(msg, dict):
        return None

    approval_id = msg.get("id")
    if isinstance(approval_id, bool) or not isinstance(approval_id, (int, str)):
        return None

    method = msg.get("method")
    if not isinstance(method, str):
        return None

    params = msg.get("params")
    return ApprovalPayload(
        id=approval_id,
        method=method,
        params=params if isinstance(params, dict) else {},
    )


def _require_payload(payload_json: str) -> ApprovalPayload:
    payload = parse_approval_payload(payload_json)
    if payload is None:
        raise MalformedPayloadError(
            f"approval without id or method: {str(payload_json)[:200]}"
        )
    return payload


def _str_param(params: Dict[str, Any], key: str) -> Optional[str]:
    value = params.get(key)
    return value if isinstance(value, str) and value else None


def _describe_command(params: Dict[str, Any]) -> str:
    command = _str_param(params, "command")
    cwd = _str_param(params, "cwd")
    reason = _str_param(params, "reason")

    parts = []
    if command:
        parts.append(f"[bold white]{escape(command)}[/]")
    if cwd:
        parts.append(f"[grey50](in {escape(cwd)})[/]")
    if reason:
        parts.append(f"[dim]— {escape(reason)}[/]")
    return " ".join(parts) if parts else "command execution"


def _describe_file_change(params: Dict[str, Any]) -> str:
    reason = _str_param(params, "reason")
    item_id = _str_param(params, "itemId")

    parts = ["File change"]
    if item_id:
        parts.append(f"[bold white]{escape(item_id)}[/]")
    if reason:
        parts.append(f"[dim]— {escape(reason)}[/]")
    return " ".join(parts)


def describe_approval(payload: ApprovalPayload) -> str:
    """Human-readable description of an approval request (rich markup)."""
    if payload.method == Method.COMMAND_APPROVAL:
        return _describe_command(payload.params)
    if payload.method == Method.FILE_CHANGE_APPROVAL:
        return _describe_file_change(payload.params)
    return f"Unknown approval: {escape(payload.method)}"


def build_command_execution_approval_response(
    approval_id: ApprovalId, decision: Decision
) -> Dict[str, Any]:
    """Decision message for ``item/commandExecution/requestApproval``."""
    return {"id": approval_id, "result": {"decision": Decision(decision).value}}


def build_file_change_approval_response(
    approval_id: ApprovalId, decision: Decision
) -> Dict[str, Any]:
    """Decision message for ``item/fileChange/requestApproval``."""
    return {"id": approval_id, "result": {"decision": Decision(decision).value}}


_RESPONSE_BUILDERS = {
    Method.COMMAND_APPROVAL: build_command_execution_approval_response,
    Method.FILE_CHANGE_APPROVAL: build_file_change_approval_response,
}


class ApprovalFlow:
    """Resolves approval requests according to the approval mode.

    Args:
        mode: Configured approval mode.
        send: Callable that writes an outgoing message to the transport.
    """

    def __init__(self, mode: ApprovalMode, send: Callable[[Dict[str, Any]], None]):
        self._mode = ApprovalMode(mode)
        self._send = send
        self._pending: Dict[ApprovalId, Settleable[Decision]] = {}

    @property
    def mode(self) -> ApprovalMode:
        return self._mode

    @property
    def pending_count(self) -> int:
        """Number of approvals waiting for a decision."""
        return len(self._pending)

    def _send_decision(self, kind: str, approval_id: ApprovalId, decision: Decision) -> None:
        builder = _RESPONSE_BUILDERS.get(kind)
        if builder is None:
            logger.warning("No decision shape for approval kind %s (id=%r)", kind, approval_id)
            return
        self._send(builder(approval_id, decision))
        logger.debug("Sent %s for approval %r (%s)", Decision(decision).value, approval_id, kind)

    async def handle(self, kind: str, payload_json: str, emit: EventCallback) -> Decision:
        """Resolve one approval request.

        Returns only after a decision has been sent (or the request was
        declined locally because it was malformed).

        Args:
            kind: Method name of the approval notification.
            payload_json: Full JSON message of the request.
            emit: Consumer event callback.

        Returns:
            The decision taken.
        """
        try:
            payload = _require_payload(payload_json)
        except MalformedPayloadError as exc:
            logger.warning("Declining approval locally: %s", exc)
            return Decision.DECLINE

        description = describe_approval(payload)

        if self._mode is not ApprovalMode.PROMPT:
            decision = (
                Decision.ACCEPT if self._mode is ApprovalMode.AUTO_APPROVE else Decision.DECLINE
            )
            self._send_decision(kind, payload.id, decision)
            emit(ApprovalRequestEvent(
                kind=kind,
                payload_json=payload_json,
                description=description,
                decision=decision,
            ))
            return decision

        pending: Settleable[Decision] = Settleable()
        self._pending[payload.id] = pending

        def respond(decision: Decision) -> None:
            if not pending.is_pending:
                logger.debug("Ignoring repeated decision for approval %r", payload.id)
                return
            decision = Decision(decision)
            self._send_decision(kind, payload.id, decision)
            pending.resolve(decision)

        emit(ApprovalRequestEvent(
            kind=kind,
            payload_json=payload_json,
            description=description,
            respond=respond,
        ))
        try:
            return await pending.future
        finally:
            self._pending.pop(payload.id, None)

    def cancel_all(self, error: BaseException) -> None:
        """Reject every approval still waiting for a decision."""
        for pending in list(self._pending.values()):
            pending.reject(error)
        self._pending.clear()
