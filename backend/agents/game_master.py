"""
Game Master — per-chat round state machine. Pure deterministic Python.

Responsibilities:
- New round: retire the previous round message, reset the session, post a new one
- Join / Leave: roster edits from the current round message's buttons
- Begin: debounce, empty-roster notice, hand the round to the role assigner
- Staleness: presses on old or superseded round messages never touch state

Every transition holds the chat's session lease from start to finish,
including the full private-message fan-out of Begin.
"""
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from agents.role_assigner import RoleAssigner, role_assigner as default_role_assigner
from config import BotConfig
from models.game import Begin, ChatSession, Interaction, Join, Leave, MessageRef, NewRound
from services.session_store import SessionStore
from services.telegram_transport import Transport
from utils.render import (
    MSG_NO_PLAYERS,
    MSG_OBSOLETE,
    render_play,
    render_session,
    render_undelivered,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GameMaster:

    def __init__(
        self,
        store: SessionStore,
        transport: Transport,
        config: BotConfig,
        clock: Callable[[], datetime] = _utcnow,
        assigner: Optional[RoleAssigner] = None,
    ):
        self.store = store
        self.transport = transport
        self.config = config
        self.clock = clock
        self.assigner = assigner or default_role_assigner

    async def dispatch(self, interaction: Interaction) -> None:
        if isinstance(interaction, NewRound):
            await self.new_round(interaction)
        elif isinstance(interaction, Join):
            await self.join(interaction)
        elif isinstance(interaction, Leave):
            await self.leave(interaction)
        elif isinstance(interaction, Begin):
            await self.begin(interaction)
        else:
            raise TypeError(f"Unknown interaction: {type(interaction).__name__}")

    # ── Staleness ─────────────────────────────────────────────────────────────

    def _expired(self, message: MessageRef, now: datetime) -> bool:
        return now - message.sent_at > self.config.message_lifetime

    async def _reject_stale(self, message: MessageRef) -> None:
        await self.transport.notify(message.chat_id, MSG_OBSOLETE, reply_to=message)
        await self.transport.deactivate_controls(message)

    # ── Transitions ───────────────────────────────────────────────────────────

    async def new_round(self, action: NewRound) -> None:
        async with self.store.session(action.chat_id) as session:
            if session.last_message is not None:
                await self.transport.deactivate_controls(session.last_message)
            session.reset()
            session.deck = action.deck
            session.add_participant(action.actor)
            session.last_message = await self.transport.post_interactive(
                action.chat_id, render_session(session),
            )
            logger.info(
                "[%s] New round by %s (deck=%s)", action.chat_id, action.actor.id, action.deck.name,
            )

    async def join(self, action: Join) -> None:
        if self._expired(action.message, self.clock()):
            await self._reject_stale(action.message)
            return
        async with self.store.session(action.chat_id) as session:
            if not session.is_current(action.message):
                await self._reject_stale(action.message)
                return
            if session.add_participant(action.actor):
                await self._refresh(session)

    async def leave(self, action: Leave) -> None:
        if self._expired(action.message, self.clock()):
            await self._reject_stale(action.message)
            return
        async with self.store.session(action.chat_id) as session:
            if not session.is_current(action.message):
                await self._reject_stale(action.message)
                return
            if session.remove_participant(action.actor):
                await self._refresh(session)

    async def begin(self, action: Begin) -> None:
        started_at = self.clock()
        if self._expired(action.message, started_at):
            await self._reject_stale(action.message)
            return
        async with self.store.session(action.chat_id) as session:
            if not session.is_current(action.message):
                await self._reject_stale(action.message)
                return
            last = session.last_round_started_at
            if last is not None and started_at - last < self.config.debounce:
                return
            if not session.roster:
                await self.transport.notify(action.chat_id, MSG_NO_PLAYERS, reply_to=action.message)
                return
            if session.deck is None:
                raise RuntimeError(f"Chat {action.chat_id} has a round message but no deck")

            outcome = await self.assigner.resolve(
                self.transport, action.chat_id, session.roster, session.deck,
            )
            session.roster = outcome.players

            if outcome.failed:
                text = render_undelivered(outcome.failed, self.config.username)
            else:
                text = render_play(outcome.players, self.config.username, action.private)
            if await self.transport.notify(action.chat_id, text):
                session.last_round_started_at = started_at

    async def _refresh(self, session: ChatSession) -> None:
        if session.last_message is None:
            return
        await self.transport.edit_interactive(session.last_message, render_session(session))
