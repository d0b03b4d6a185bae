"""
Game Master — Pure deterministic Python.

Responsibilities:
- Join / move / leave bookkeeping through the ConnectionRegistry
- The first-kill rule: whoever lands the session's first kill becomes the killer
- Kill and accusation adjudication
- Win condition checks (all innocents dead, killer unmasked, timer expiry)
- Starting and stopping the Round Timer
- Relaying chat and activity chatter

Every request runs under one asyncio.Lock, broadcasts included, so events go
out in exactly the order requests were processed. Timer ticks take the same
lock. Requests that fail a precondition return ActionResult.rejected(...) and
broadcast nothing.
"""
import asyncio
import logging
import math
from typing import Optional, Dict, Any, Callable, Awaitable

from pydantic import ValidationError

from config import Settings
from models.game import (
    Role, Winner, RejectReason, PlayerState, BloodStain, SessionState, ActionResult,
)
from models.messages import (
    INBOUND_MESSAGES,
    PlayerJoin, PlayerMove, KillPlayer, AccusePlayer, WeaponPickup, ChatMessage, Activity,
    GameStateEvent, PlayerMovedEvent, FirstKillEvent, PlayerKilledEvent,
    PlayerAccusedEvent, TimerUpdateEvent, GameOverEvent, RoleAssignedEvent,
    ChatMessageEvent, ActivityEvent,
)
from services.registry import ConnectionRegistry
from services.broadcaster import EventBroadcaster
from engine.round_timer import RoundTimer

logger = logging.getLogger(__name__)


class GameMaster:
    """
    Owner and sole writer of the Game Session.
    One instance per process, created by the app lifespan.
    """

    GAME_OVER_MESSAGES: Dict[str, str] = {
        "all_dead": "The killer eliminated everyone in the house!",
        "unmasked": "{accuser} unmasked the killer: {killer}!",
        "timeout": "Time ran out! The killer failed to finish the job.",
        "abandoned": "No innocents remain in the house. The killer wins!",
        "backfired": "The killer accused {target} and paid for it with their life!",
    }

    def __init__(self, settings: Settings):
        self.settings = settings
        self.registry = ConnectionRegistry()
        self.broadcaster = EventBroadcaster(self.registry)
        self.session = SessionState()
        self.timer = self._new_timer()
        self._lock = asyncio.Lock()
        self._handlers: Dict[type, Callable[[Any, Any], Awaitable[ActionResult]]] = {
            PlayerJoin: self._on_join,
            PlayerMove: self._on_move,
            KillPlayer: self._on_kill,
            AccusePlayer: self._on_accuse,
            WeaponPickup: self._on_weapon_pickup,
            ChatMessage: self._on_chat,
            Activity: self._on_activity,
        }

    def _new_timer(self) -> RoundTimer:
        return RoundTimer(
            on_tick=self._on_timer_tick,
            on_expire=self._on_timer_expired,
            tick_interval=self.settings.tick_interval_seconds,
        )

    # ── Entry points ───────────────────────────────────────────────────────────

    async def handle_message(self, data: Dict[str, Any], connection: Any = None) -> ActionResult:
        """Parse one inbound envelope and run its handler under the session lock."""
        msg_type = data.get("type")
        model_cls = INBOUND_MESSAGES.get(msg_type) if isinstance(msg_type, str) else None
        if model_cls is None:
            return ActionResult.rejected(RejectReason.UNKNOWN_TYPE)
        try:
            msg = model_cls.model_validate(data)
        except ValidationError as exc:
            logger.debug("Malformed %s: %s", msg_type, exc.errors())
            return ActionResult.rejected(RejectReason.MALFORMED)

        async with self._lock:
            return await self._handlers[model_cls](msg, connection)

    async def join(self, player_id: str, name: str, avatar: str = "",
                   x: float = 0.0, y: float = 0.0, connection: Any = None) -> ActionResult:
        msg = PlayerJoin(id=player_id, name=name, avatar=avatar, x=x, y=y)
        async with self._lock:
            return await self._on_join(msg, connection)

    async def move(self, player_id: str, x: float, y: float) -> ActionResult:
        async with self._lock:
            return await self._on_move(PlayerMove(id=player_id, x=x, y=y), None)

    async def kill(self, killer_id: str, victim_id: str, x: Optional[float] = None,
                   y: Optional[float] = None, weapon: Optional[str] = None) -> ActionResult:
        msg = KillPlayer(killer_id=killer_id, victim_id=victim_id, x=x, y=y, weapon=weapon)
        async with self._lock:
            return await self._on_kill(msg, None)

    async def accuse(self, accuser_id: str, target_id: str) -> ActionResult:
        async with self._lock:
            return await self._on_accuse(AccusePlayer(accuser_id=accuser_id, target_id=target_id), None)

    async def leave(self, player_id: str, connection: Any = None) -> ActionResult:
        """Transport closed. Removes the player if `connection` is still the bound one."""
        async with self._lock:
            removed = self.registry.remove(player_id, connection)
            if removed is None:
                return ActionResult.rejected(RejectReason.UNKNOWN_PLAYER)
            logger.info("Player %s (%s) left (%d remaining)", removed.name, player_id, len(self.registry))

            if len(self.registry) == 0 and self.settings.reset_when_empty:
                self._reset_session()
                return ActionResult.ok(player_id)

            await self.broadcaster.broadcast_all(self._game_state_event())
            await self._check_game_over(reason="abandoned")
            return ActionResult.ok(player_id)

    async def shutdown(self) -> None:
        self.timer.stop()
        await self.timer.wait()

    # ── Handlers (lock held) ───────────────────────────────────────────────────

    async def _on_join(self, msg: PlayerJoin, connection: Any) -> ActionResult:
        player = self.registry.join(msg.id, msg.name, msg.avatar, msg.x, msg.y, connection)
        logger.info("Player %s (%s) joined (%d total)", player.name, player.id, len(self.registry))

        # Fresh entry after the first kill: a returning player gets their fate back,
        # anyone new is an innocent
        if self.session.game_started and player.role == Role.UNASSIGNED:
            player.role = Role.KILLER if player.id == self.session.killer_id else Role.INNOCENT
            player.alive = player.id not in self.session.dead_ids
            await self.broadcaster.send_to(player.id, RoleAssignedEvent(role=player.role))

        state = self._game_state_event()
        await self.broadcaster.send_to(player.id, state)
        await self.broadcaster.broadcast_all(state)
        return ActionResult.ok(player.id)

    async def _on_move(self, msg: PlayerMove, connection: Any) -> ActionResult:
        player = self.registry.get(msg.id)
        rejection = self._check_actor(player)
        if rejection:
            return rejection
        player.x, player.y = msg.x, msg.y
        await self.broadcaster.broadcast_except(
            player.id, PlayerMovedEvent(id=player.id, x=msg.x, y=msg.y)
        )
        return ActionResult.ok(player.id)

    async def _on_kill(self, msg: KillPlayer, connection: Any) -> ActionResult:
        if self.session.game_over:
            return ActionResult.rejected(RejectReason.GAME_OVER)
        killer = self.registry.get(msg.killer_id)
        victim = self.registry.get(msg.victim_id)
        rejection = self._check_actor(killer) or self._check_target(killer, victim)
        if rejection:
            return rejection
        # Role is only enforced once the first kill has created it
        if self.session.first_kill_happened and killer.id != self.session.killer_id:
            return ActionResult.rejected(RejectReason.NOT_KILLER)
        if not self._within_reach(killer, victim):
            return ActionResult.rejected(RejectReason.TOO_FAR)

        # ── Step 1: victim dies ───────────────────────────────────────────────
        self._mark_dead(victim)
        if msg.weapon:
            killer.weapon = msg.weapon
        x = msg.x if msg.x is not None else victim.x
        y = msg.y if msg.y is not None else victim.y

        # ── Step 2: first-kill latch creates the killer ──────────────────────
        if not self.session.first_kill_happened:
            self._assign_killer(killer)
            await self.broadcaster.broadcast_all(
                FirstKillEvent(killer_id=killer.id, victim_id=victim.id)
            )
            self.timer.start(self.settings.round_duration_seconds)

        # ── Step 3: blood stain ──────────────────────────────────────────────
        stain = BloodStain(id=f"blood-{self.session.kills + 1}", x=x, y=y)
        self.session.blood_stains.append(stain)

        # ── Step 4: generic kill event, first kill included ──────────────────
        await self.broadcaster.broadcast_all(PlayerKilledEvent(
            killer_id=killer.id, victim_id=victim.id, x=x, y=y, weapon=killer.weapon,
        ))
        logger.info("%s killed %s (kill #%d)", killer.name, victim.name, self.session.kills)

        # ── Step 5: did that finish the house off? ───────────────────────────
        await self._check_game_over(reason="all_dead")
        return ActionResult.ok(killer.id)

    async def _on_accuse(self, msg: AccusePlayer, connection: Any) -> ActionResult:
        if self.session.game_over:
            return ActionResult.rejected(RejectReason.GAME_OVER)
        accuser = self.registry.get(msg.accuser_id)
        target = self.registry.get(msg.target_id)
        rejection = self._check_actor(accuser) or self._check_target(accuser, target)
        if rejection:
            return rejection
        if not self.session.game_started:
            return ActionResult.rejected(RejectReason.NOT_STARTED)

        correct = target.id == self.session.killer_id
        if correct:
            self._mark_dead(target)
        else:
            self._mark_dead(accuser)  # Wrong guess costs the accuser their life
        logger.info(
            "%s accused %s — %s", accuser.name, target.name, "correct" if correct else "wrong",
        )
        await self.broadcaster.broadcast_all(PlayerAccusedEvent(
            accuser_id=accuser.id, target_id=target.id, correct=correct,
        ))

        if correct:
            message = self.GAME_OVER_MESSAGES["unmasked"].format(
                accuser=accuser.name, killer=target.name,
            )
            await self._end_game(Winner.INNOCENTS, message)
        elif accuser.id == self.session.killer_id:
            message = self.GAME_OVER_MESSAGES["backfired"].format(target=target.name)
            await self._end_game(Winner.INNOCENTS, message)
        else:
            await self._check_game_over(reason="all_dead")
        return ActionResult.ok(accuser.id)

    async def _on_weapon_pickup(self, msg: WeaponPickup, connection: Any) -> ActionResult:
        player = self.registry.get(msg.id)
        rejection = self._check_actor(player)
        if rejection:
            return rejection
        player.weapon = msg.weapon
        logger.debug("%s picked up %s", player.name, msg.weapon)
        return ActionResult.ok(player.id)

    async def _on_chat(self, msg: ChatMessage, connection: Any) -> ActionResult:
        player = self.registry.get(msg.id)
        rejection = self._check_actor(player)
        if rejection:
            return rejection
        text = msg.message.strip()[: self.settings.max_chat_length]
        if not text and not msg.emoji:
            return ActionResult.rejected(RejectReason.EMPTY_MESSAGE)
        await self.broadcaster.broadcast_except(
            player.id, ChatMessageEvent(id=player.id, message=text, emoji=msg.emoji),
        )
        return ActionResult.ok(player.id)

    async def _on_activity(self, msg: Activity, connection: Any) -> ActionResult:
        player = self.registry.get(msg.player_id)
        rejection = self._check_actor(player)
        if rejection:
            return rejection
        await self.broadcaster.broadcast_except(
            player.id, ActivityEvent(player_id=player.id, activity=msg.activity),
        )
        return ActionResult.ok(player.id)

    # ── Timer callbacks ────────────────────────────────────────────────────────

    async def _on_timer_tick(self, remaining: int) -> None:
        async with self._lock:
            if self.session.game_over:
                return
            await self.broadcaster.broadcast_all(TimerUpdateEvent(time=remaining))

    async def _on_timer_expired(self) -> None:
        async with self._lock:
            if self.session.game_over:
                return
            logger.info("Time expired with the killer still at large")
            await self._end_game(Winner.INNOCENTS, self.GAME_OVER_MESSAGES["timeout"])

    # ── Rules ──────────────────────────────────────────────────────────────────

    def _check_actor(self, actor: Optional[PlayerState]) -> Optional[ActionResult]:
        if actor is None:
            return ActionResult.rejected(RejectReason.UNKNOWN_PLAYER)
        if not actor.alive:
            return ActionResult.rejected(RejectReason.ACTOR_DEAD)
        return None

    def _check_target(self, actor: PlayerState, target: Optional[PlayerState]) -> Optional[ActionResult]:
        if target is None:
            return ActionResult.rejected(RejectReason.UNKNOWN_PLAYER)
        if target.id == actor.id:
            return ActionResult.rejected(RejectReason.SELF_TARGET)
        if not target.alive:
            return ActionResult.rejected(RejectReason.TARGET_DEAD)
        return None

    def _within_reach(self, killer: PlayerState, victim: PlayerState) -> bool:
        limit = self.settings.max_interaction_distance
        if limit is None:
            return True
        return math.hypot(killer.x - victim.x, killer.y - victim.y) <= limit

    def _mark_dead(self, player: PlayerState) -> None:
        player.alive = False
        self.session.dead_ids.add(player.id)

    def _assign_killer(self, killer: PlayerState) -> None:
        """First-kill latch: flips once per session, never reassigned."""
        self.session.first_kill_happened = True
        self.session.killer_id = killer.id
        self.session.killer_name = killer.name
        self.session.game_started = True
        for player in self.registry:
            player.role = Role.KILLER if player.id == killer.id else Role.INNOCENT
        logger.info("First kill — %s (%s) is now the killer", killer.name, killer.id)

    def alive_innocents(self) -> int:
        return sum(1 for p in self.registry.all_alive() if p.id != self.session.killer_id)

    async def _check_game_over(self, reason: str) -> bool:
        """Killer wins once no alive non-killer remains. Returns True if the game ended.

        The killer has to still be in the house to claim it; otherwise the
        round runs on and the timer decides.
        """
        if not self.session.game_started or self.session.game_over:
            return False
        killer = self.registry.get(self.session.killer_id)
        if killer is None or not killer.alive:
            return False
        if self.alive_innocents() > 0:
            return False
        await self._end_game(Winner.KILLER, self.GAME_OVER_MESSAGES[reason])
        return True

    async def _end_game(self, winner: Winner, message: str) -> None:
        if self.session.game_over:
            return
        self.session.game_over = True
        self.session.winner = winner
        self.timer.stop()

        await self.broadcaster.broadcast_all(GameOverEvent(
            winner=winner,
            message=message,
            killer_name=self.session.killer_name,
            kills=self.session.kills,
        ))
        logger.info("Game over — winner: %s (%d kills)", winner.value, self.session.kills)

    def _reset_session(self) -> None:
        self.timer.stop()
        self.registry.clear()
        self.session = SessionState()
        self.timer = self._new_timer()
        logger.info("Session reset — house is empty")

    # ── Snapshots ──────────────────────────────────────────────────────────────

    def _game_state_event(self) -> GameStateEvent:
        return GameStateEvent(
            players=self.registry.snapshot(),
            blood_stains=[b.model_dump() for b in self.session.blood_stains],
            game_started=self.session.game_started,
        )

    def public_state(self) -> Dict[str, Any]:
        """Snapshot for late HTTP state queries."""
        state = self._game_state_event().to_wire()
        state.pop("type")
        state.update({
            "gameOver": self.session.game_over,
            "winner": self.session.winner.value if self.session.winner else None,
            "timeRemaining": self.timer.remaining if self.timer.running else None,
        })
        return state
