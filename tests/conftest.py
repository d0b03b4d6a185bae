from typing import Any, Dict, List

import pytest
from fastapi.websockets import WebSocketState

from config import Settings
from engine.game_master import GameMaster


class FakeConnection:
    """Stands in for a starlette WebSocket: records every JSON payload sent."""

    def __init__(self, open: bool = True, fail: bool = False):
        self.sent: List[Dict[str, Any]] = []
        self.fail = fail
        self.application_state = (
            WebSocketState.CONNECTED if open else WebSocketState.DISCONNECTED
        )

    async def send_json(self, data: Dict[str, Any]) -> None:
        if self.fail:
            raise RuntimeError("socket gone")
        self.sent.append(data)

    def close(self) -> None:
        self.application_state = WebSocketState.DISCONNECTED

    def types(self) -> List[str]:
        return [m["type"] for m in self.sent]

    def of_type(self, msg_type: str) -> List[Dict[str, Any]]:
        return [m for m in self.sent if m["type"] == msg_type]

    def clear(self) -> None:
        self.sent.clear()


@pytest.fixture
def settings() -> Settings:
    return Settings(round_duration_seconds=3, tick_interval_seconds=0.01)


@pytest.fixture
async def game(settings):
    gm = GameMaster(settings)
    yield gm
    await gm.shutdown()


@pytest.fixture
async def house(game):
    """P1, P2, P3 joined, outboxes cleared."""
    conns = {}
    for i, (x, y) in enumerate([(100, 100), (200, 200), (300, 300)], start=1):
        pid = f"P{i}"
        conns[pid] = FakeConnection()
        await game.join(pid, f"Player {i}", "🙂", x, y, connection=conns[pid])
    for conn in conns.values():
        conn.clear()
    return conns
