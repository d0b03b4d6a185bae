from pydantic import BaseModel
from typing import Optional, List, Dict, Any, Set
from enum import Enum


class Role(str, Enum):
    UNASSIGNED = "unassigned"
    INNOCENT = "innocent"
    KILLER = "killer"  # Created by the session's first kill, never pre-picked


class Winner(str, Enum):
    INNOCENTS = "innocents"
    KILLER = "killer"


class RejectReason(str, Enum):
    MALFORMED = "malformed"
    UNKNOWN_TYPE = "unknown_type"
    UNKNOWN_PLAYER = "unknown_player"
    ACTOR_DEAD = "actor_dead"
    TARGET_DEAD = "target_dead"
    SELF_TARGET = "self_target"
    NOT_KILLER = "not_killer"
    NOT_STARTED = "not_started"
    GAME_OVER = "game_over"
    TOO_FAR = "too_far"
    EMPTY_MESSAGE = "empty_message"


class PlayerState(BaseModel):
    id: str
    name: str
    avatar: str = ""
    x: float = 0.0
    y: float = 0.0
    alive: bool = True
    role: Role = Role.UNASSIGNED
    weapon: Optional[str] = None  # Held-weapon indicator, set on pickup

    def to_public(self) -> Dict[str, Any]:
        """Safe representation — omits role and weapon (hidden during game)."""
        return {
            "id": self.id,
            "name": self.name,
            "avatar": self.avatar,
            "x": self.x,
            "y": self.y,
            "alive": self.alive,
        }


class BloodStain(BaseModel):
    id: str
    x: float
    y: float


class SessionState(BaseModel):
    killer_id: Optional[str] = None
    killer_name: Optional[str] = None  # Kept for the game-over card even if the killer leaves
    first_kill_happened: bool = False
    blood_stains: List[BloodStain] = []  # Append-only; length is the kill count
    dead_ids: Set[str] = set()  # Outlives the connection so a rejoin cannot resurrect
    game_started: bool = False
    game_over: bool = False
    winner: Optional[Winner] = None

    @property
    def kills(self) -> int:
        return len(self.blood_stains)


class ActionResult(BaseModel):
    """Outcome of one inbound request. Rejections never reach the wire."""

    accepted: bool
    reason: Optional[RejectReason] = None
    player_id: Optional[str] = None

    @classmethod
    def ok(cls, player_id: Optional[str] = None) -> "ActionResult":
        return cls(accepted=True, player_id=player_id)

    @classmethod
    def rejected(cls, reason: RejectReason) -> "ActionResult":
        return cls(accepted=False, reason=reason)
