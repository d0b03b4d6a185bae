"""
WebSocket Hub — real-time connection handling for the Mystery House.

URL: / or /ws  (the browser client connects to the bare host)

Connection flow:
  1. Accept connection (no player yet — identity arrives with playerJoin)
  2. Message loop: parse JSON, hand each envelope to the GameMaster
  3. Remember every id this socket successfully joined as
  4. On disconnect: leave() each of those ids, bound to this socket only

Client → server message types (see models/messages.py):
  playerJoin      — register and receive a gameState snapshot
  playerMove      — position update, echoed to everyone else
  killPlayer      — kill; the session's first kill creates the killer
  accusePlayer    — accuse; a wrong guess kills the accuser
  weaponPickup    — record the held weapon (private)
  chatMessage     — chat bubble relay
  activity        — furniture interaction relay

Nothing is ever sent back for a rejected or malformed message; the client's
only feedback is the absence of the expected broadcast.
"""
import json
import logging
from typing import Set

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from engine.game_master import GameMaster
from models.game import ActionResult

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])


@router.websocket("/")
@router.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    game: GameMaster = ws.app.state.game
    await ws.accept()
    joined_ids: Set[str] = set()

    try:
        while True:
            raw = await ws.receive_text()
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                logger.debug("Dropping non-JSON frame")
                continue
            if not isinstance(data, dict):
                logger.debug("Dropping non-object frame")
                continue

            result = await _handle_message(game, ws, data)
            if result.accepted and data.get("type") == "playerJoin" and result.player_id:
                joined_ids.add(result.player_id)

    except WebSocketDisconnect:
        pass
    finally:
        for player_id in joined_ids:
            await game.leave(player_id, ws)


# ── Message dispatcher ─────────────────────────────────────────────────────────

async def _handle_message(game: GameMaster, ws: WebSocket, data: dict) -> ActionResult:
    msg_type = data.get("type", "")
    try:
        result = await game.handle_message(data, ws)
    except WebSocketDisconnect:
        raise
    except Exception:
        logger.exception("Unhandled error in _handle_message (type=%s)", msg_type)
        return ActionResult(accepted=False)

    if not result.accepted:
        logger.debug("Dropped %s: %s", msg_type, result.reason.value if result.reason else "error")
    return result
