import logging
from typing import Optional, List, Dict, Any, Iterator, Tuple

from models.game import PlayerState

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """
    Authoritative map of player id → public state + live transport handle.

    The handle is stored beside the model, never on it, so snapshots can be
    built without leaking sockets. Lookups of unknown ids return None and
    callers decide what that means.
    """

    def __init__(self):
        self._players: Dict[str, PlayerState] = {}
        self._connections: Dict[str, Any] = {}

    # ── Membership ─────────────────────────────────────────────────────────────

    def join(
        self,
        player_id: str,
        name: str,
        avatar: str,
        x: float,
        y: float,
        connection: Any = None,
    ) -> PlayerState:
        """
        Register a player, or rebind an existing id to a new connection.

        Re-joining keeps alive/role/weapon so a reconnecting client cannot
        resurrect itself or shed the killer role.
        """
        player = self._players.get(player_id)
        if player is None:
            player = PlayerState(id=player_id, name=name, avatar=avatar, x=x, y=y)
            self._players[player_id] = player
        else:
            logger.info("Player %s re-joined; rebinding connection", player_id)
            player.name = name
            player.avatar = avatar
            player.x = x
            player.y = y
        self._connections[player_id] = connection
        return player

    def remove(self, player_id: str, connection: Any = None) -> Optional[PlayerState]:
        """
        Drop a player. No-op if absent.

        With `connection`, only removes when that handle is the one currently
        bound, so a stale socket closing after a re-join leaves the entry alone.
        """
        if player_id not in self._players:
            return None
        if connection is not None and self._connections.get(player_id) is not connection:
            return None
        self._connections.pop(player_id, None)
        return self._players.pop(player_id)

    def clear(self) -> None:
        self._players.clear()
        self._connections.clear()

    # ── Queries ────────────────────────────────────────────────────────────────

    def get(self, player_id: str) -> Optional[PlayerState]:
        return self._players.get(player_id)

    def connection_for(self, player_id: str) -> Any:
        return self._connections.get(player_id)

    def connections(self) -> List[Tuple[str, Any]]:
        return list(self._connections.items())

    def all_alive(self) -> List[PlayerState]:
        return [p for p in self._players.values() if p.alive]

    def snapshot(self) -> List[Dict[str, Any]]:
        return [p.to_public() for p in self._players.values()]

    def __len__(self) -> int:
        return len(self._players)

    def __contains__(self, player_id: object) -> bool:
        return player_id in self._players

    def __iter__(self) -> Iterator[PlayerState]:
        return iter(list(self._players.values()))
