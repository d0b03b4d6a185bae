"""
WebSocket message shapes.

Wire format is a flat JSON envelope `{type, ...fields}` with camelCase keys.
Python attributes stay snake_case; the alias generator maps them.
"""
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Optional, List, Dict, Any, Literal, Type

from models.game import Winner, Role


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# ── Client → server ───────────────────────────────────────────────────────────

class PlayerJoin(_WireModel):
    type: Literal["playerJoin"] = "playerJoin"
    id: str = Field(min_length=1)
    name: str
    avatar: str = ""
    x: float = 0.0
    y: float = 0.0


class PlayerMove(_WireModel):
    type: Literal["playerMove"] = "playerMove"
    id: str
    x: float
    y: float


class KillPlayer(_WireModel):
    type: Literal["killPlayer"] = "killPlayer"
    killer_id: str
    victim_id: str
    x: Optional[float] = None
    y: Optional[float] = None
    weapon: Optional[str] = None


class AccusePlayer(_WireModel):
    type: Literal["accusePlayer"] = "accusePlayer"
    accuser_id: str
    target_id: str


class WeaponPickup(_WireModel):
    type: Literal["weaponPickup"] = "weaponPickup"
    id: str
    weapon: str


class ChatMessage(_WireModel):
    type: Literal["chatMessage"] = "chatMessage"
    id: str
    message: str = ""
    emoji: str = ""


class Activity(_WireModel):
    type: Literal["activity"] = "activity"
    player_id: str
    activity: str


INBOUND_MESSAGES: Dict[str, Type[_WireModel]] = {
    "playerJoin": PlayerJoin,
    "playerMove": PlayerMove,
    "killPlayer": KillPlayer,
    "accusePlayer": AccusePlayer,
    "weaponPickup": WeaponPickup,
    "chatMessage": ChatMessage,
    "activity": Activity,
}


# ── Server → client ───────────────────────────────────────────────────────────

class GameStateEvent(_WireModel):
    type: Literal["gameState"] = "gameState"
    players: List[Dict[str, Any]]
    blood_stains: List[Dict[str, Any]]
    game_started: bool


class PlayerMovedEvent(_WireModel):
    type: Literal["playerMoved"] = "playerMoved"
    id: str
    x: float
    y: float


class FirstKillEvent(_WireModel):
    type: Literal["firstKill"] = "firstKill"
    killer_id: str
    victim_id: str


class PlayerKilledEvent(_WireModel):
    type: Literal["playerKilled"] = "playerKilled"
    killer_id: str
    victim_id: str
    x: float
    y: float
    weapon: Optional[str] = None


class PlayerAccusedEvent(_WireModel):
    type: Literal["playerAccused"] = "playerAccused"
    accuser_id: str
    target_id: str
    correct: bool


class TimerUpdateEvent(_WireModel):
    type: Literal["timerUpdate"] = "timerUpdate"
    time: int


class GameOverEvent(_WireModel):
    type: Literal["gameOver"] = "gameOver"
    winner: Winner
    message: str
    killer_name: Optional[str] = None
    kills: int = 0


class RoleAssignedEvent(_WireModel):
    type: Literal["roleAssigned"] = "roleAssigned"
    role: Role


class ChatMessageEvent(_WireModel):
    type: Literal["chatMessage"] = "chatMessage"
    id: str
    message: str
    emoji: str


class ActivityEvent(_WireModel):
    type: Literal["activity"] = "activity"
    player_id: str
    activity: str
