import logging
from typing import Optional, Dict, Any, Union

from pydantic import BaseModel
from fastapi.websockets import WebSocketState

from services.registry import ConnectionRegistry

logger = logging.getLogger(__name__)

Event = Union[BaseModel, Dict[str, Any]]


def _to_payload(event: Event) -> Dict[str, Any]:
    if isinstance(event, BaseModel):
        return event.model_dump(mode="json", by_alias=True)
    return event


def _is_open(ws: Any) -> bool:
    if ws is None:
        return False
    return all(
        getattr(ws, attr, WebSocketState.CONNECTED) == WebSocketState.CONNECTED
        for attr in ("client_state", "application_state")
    )


class EventBroadcaster:
    """
    Fans events out to registered connections.
    Best-effort: closed sockets are skipped and send failures are logged,
    never raised. The next broadcast carries fresh state anyway.
    """

    def __init__(self, registry: ConnectionRegistry):
        self._registry = registry

    async def _deliver(self, player_id: str, ws: Any, payload: Dict[str, Any]) -> bool:
        if not _is_open(ws):
            return False
        try:
            await ws.send_json(payload)
        except Exception as exc:
            logger.warning(f"send of {payload.get('type')} to {player_id} failed: {exc}")
            return False
        return True

    async def send_to(self, player_id: str, event: Event) -> bool:
        """Send a private event to a single player."""
        ws = self._registry.connection_for(player_id)
        return await self._deliver(player_id, ws, _to_payload(event))

    async def broadcast_all(self, event: Event) -> int:
        return await self.broadcast_except(None, event)

    async def broadcast_except(self, excluded_id: Optional[str], event: Event) -> int:
        """Broadcast to every open connection except `excluded_id`. Returns delivery count."""
        payload = _to_payload(event)
        delivered = 0
        for pid, ws in self._registry.connections():
            if pid == excluded_id:
                continue
            if await self._deliver(pid, ws, payload):
                delivered += 1
        return delivered
