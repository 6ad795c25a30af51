from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

import pytest

from agents.game_master import GameMaster
from agents.role_assigner import RoleAssigner
from config import BotConfig
from models.game import Deck, MessageRef, Participant
from services.session_store import LocalSessionStore

T0 = datetime(2026, 10, 18, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeTransport:
    """Records every call; private sends fail for ids listed in `failures`."""

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.next_message_id = 100
        self.posted: List[Tuple[int, str]] = []
        self.edited: List[Tuple[MessageRef, str]] = []
        self.deactivated: List[MessageRef] = []
        self.private: Dict[int, str] = {}
        self.notices: List[Tuple[int, str, Optional[MessageRef]]] = []
        self.failures: Dict[int, Exception] = {}
        self.send_delay = 0.0
        self.notify_ok = True

    async def post_interactive(self, chat_id: int, text: str) -> Optional[MessageRef]:
        self.next_message_id += 1
        self.posted.append((chat_id, text))
        return MessageRef(chat_id=chat_id, message_id=self.next_message_id, sent_at=self.clock())

    async def edit_interactive(self, ref: MessageRef, text: str) -> bool:
        self.edited.append((ref, text))
        return True

    async def deactivate_controls(self, ref: MessageRef) -> None:
        self.deactivated.append(ref)

    async def send_private(self, participant: Participant, text: str) -> None:
        if self.send_delay:
            await asyncio.sleep(self.send_delay)
        failure = self.failures.get(participant.id)
        if failure is not None:
            raise failure
        self.private[participant.id] = text

    async def notify(self, chat_id: int, text: str, reply_to: Optional[MessageRef] = None) -> bool:
        self.notices.append((chat_id, text, reply_to))
        return self.notify_ok


def make_player(pid: int, name: str = "") -> Participant:
    return Participant(id=pid, first_name=name or f"Player{pid}")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transport(clock: FakeClock) -> FakeTransport:
    return FakeTransport(clock)


@pytest.fixture
def store() -> LocalSessionStore:
    return LocalSessionStore()


@pytest.fixture
def bot_config() -> BotConfig:
    return BotConfig(username="oddbot")


@pytest.fixture
def game_master(store, transport, bot_config, clock) -> GameMaster:
    return GameMaster(store, transport, bot_config, clock=clock, assigner=RoleAssigner())


@pytest.fixture
def apple_deck() -> Deck:
    return Deck(name="fruit", words=["apple"])


@pytest.fixture
def players() -> List[Participant]:
    return [make_player(1, "Alice"), make_player(2, "Bob"), make_player(3, "Carol")]

