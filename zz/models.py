"""Model discovery through a short-lived backend process.

Used by the setup wizard to offer a model list. Discovery never fails
loudly: any error or a timeout yields an empty list and the wizard falls
back to free-form entry.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from zz import protocol
from zz.transport import BridgeEvent, BridgeTransport, TransportHandlers

logger = logging.getLogger(__name__)

MODEL_LIST_TIMEOUT = 15.0  # seconds


@dataclass
class ModelInfo:
    """A model offered by the backend."""
    id: str
    model: str
    display_name: str
    description: str = ""
    is_default: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional["ModelInfo"]:
        model_id = data.get("id")
        if not isinstance(model_id, str) or not model_id:
            return None
        model = data.get("model") if isinstance(data.get("model"), str) else model_id
        return cls(
            id=model_id,
            model=model,
            display_name=data.get("displayName") or model,
            description=data.get("description") or "",
            is_default=bool(data.get("isDefault", False)),
        )


def parse_model_list(result: Any) -> List[ModelInfo]:
    """Parse a model/list result (``{"data": [...]}`` or a bare list)."""
    items = result.get("data") if isinstance(result, dict) else result
    if not isinstance(items, list):
        return []
    models = []
    for item in items:
        if isinstance(item, dict):
            info = ModelInfo.from_dict(item)
            if info is not None:
                models.append(info)
    return models


async def fetch_available_models(
    codex_bin: Optional[str] = None,
    timeout: float = MODEL_LIST_TIMEOUT,
) -> List[ModelInfo]:
    """Ask a fresh backend process for its model list.

    Args:
        codex_bin: Path to the codex binary.
        timeout: Seconds to wait for the reply.

    Returns:
        Models reported by the backend, or an empty list on any failure.
    """
    loop = asyncio.get_running_loop()
    reply: "asyncio.Future[List[ModelInfo]]" = loop.create_future()
    request_id = 2

    def finish(models: List[ModelInfo]) -> None:
        if not reply.done():
            reply.set_result(models)

    def on_global_message(message: Dict[str, Any]) -> None:
        if not protocol.is_response(message) or message.get("id") != request_id:
            return
        if "error" in message:
            logger.warning("model/list failed: %s", message["error"])
            finish([])
        else:
            finish(parse_model_list(message.get("result")))

    def on_protocol_error(error: Exception) -> None:
        logger.warning("Protocol error during model discovery: %s", error)
        finish([])

    def on_process_exit(code: Optional[int]) -> None:
        logger.warning("Backend exited during model discovery (code=%s)", code)
        finish([])

    def on_event(event: BridgeEvent) -> None:
        pass

    transport = BridgeTransport(
        TransportHandlers(
            on_event=on_event,
            on_global_message=on_global_message,
            on_protocol_error=on_protocol_error,
            on_process_exit=on_process_exit,
        ),
        codex_bin=codex_bin,
    )
    transport.start()
    transport.send(protocol.build_initialize(1))
    transport.send(protocol.build_initialized())
    transport.send(protocol.build_model_list(request_id))

    try:
        return await asyncio.wait_for(reply, timeout)
    except asyncio.TimeoutError:
        logger.warning("model/list timed out after %.0fs", timeout)
        return []
    finally:
        transport.stop()


__all__ = ["ModelInfo", "fetch_available_models", "parse_model_list"]
