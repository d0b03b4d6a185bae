"""
Game HTTP endpoints.

Routes:
  GET  /api/game    — Public session snapshot (roles hidden) for late state queries
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter, Request

from engine.game_master import GameMaster

logger = logging.getLogger(__name__)

router = APIRouter(tags=["game"])


@router.get("/game")
async def get_game_state(request: Request) -> Dict[str, Any]:
    game: GameMaster = request.app.state.game
    return game.public_state()
