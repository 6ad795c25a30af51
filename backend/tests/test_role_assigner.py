from __future__ import annotations

import asyncio
import logging
import random

import pytest

from agents.role_assigner import RoleAssigner
from models.game import Deck, DeliveryFailure, Participant
from services.telegram_transport import DeliveryError
from utils.render import MSG_YOU_ARE_ODD_ONE_OUT


def test_assign_picks_one_odd_one_out_and_one_word(players) -> None:
    deck = Deck(name="d", words=["apple", "pear", "plum"])
    shuffled, odd, secret = RoleAssigner().assign(players, deck)
    assert sorted(p.id for p in shuffled) == [1, 2, 3]
    assert odd in shuffled
    assert secret in deck.words


def test_assign_does_not_mutate_roster(players) -> None:
    before = [p.id for p in players]
    RoleAssigner(rng=random.Random(3)).assign(players, Deck(name="d", words=["x"]))
    assert [p.id for p in players] == before


def test_assign_every_player_can_be_odd_one_out(players) -> None:
    assigner = RoleAssigner(rng=random.Random(1))
    deck = Deck(name="d", words=["x"])
    seen = {assigner.assign(players, deck)[1].id for _ in range(200)}
    assert seen == {1, 2, 3}


def test_assign_rejects_empty_roster() -> None:
    with pytest.raises(ValueError):
        RoleAssigner().assign([], Deck(name="d", words=["x"]))


@pytest.mark.asyncio
async def test_resolve_delivers_word_to_all_but_odd_one_out(transport, players, apple_deck) -> None:
    outcome = await RoleAssigner().resolve(transport, -1, players, apple_deck)
    assert outcome.secret == "apple"
    assert outcome.failed == []
    assert len(transport.private) == 3
    odd = [pid for pid, text in transport.private.items() if text == MSG_YOU_ARE_ODD_ONE_OUT]
    assert odd == [outcome.odd_one_out.id]
    assert sorted(text for text in transport.private.values() if text != MSG_YOU_ARE_ODD_ONE_OUT) == ["apple", "apple"]


@pytest.mark.asyncio
async def test_resolve_single_player_becomes_odd_one_out(transport, apple_deck) -> None:
    solo = Participant(id=10, first_name="Solo")
    outcome = await RoleAssigner().resolve(transport, -1, [solo], apple_deck)
    assert outcome.odd_one_out.id == 10
    assert transport.private == {10: MSG_YOU_ARE_ODD_ONE_OUT}


@pytest.mark.asyncio
async def test_deliver_runs_sends_concurrently_and_waits_for_all(players) -> None:
    in_flight = 0
    peak = 0
    release = asyncio.Event()
    finished = []

    class SlowTransport:
        async def send_private(self, participant, text):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await release.wait()
            in_flight -= 1
            finished.append(participant.id)

    task = asyncio.create_task(
        RoleAssigner().deliver(SlowTransport(), -1, players, players[0], "apple")
    )
    await asyncio.sleep(0.01)
    assert peak == 3
    assert not task.done()
    release.set()
    results = await asyncio.wait_for(task, timeout=0.5)
    assert sorted(finished) == [1, 2, 3]
    assert [r.participant.id for r in results] == [1, 2, 3]


@pytest.mark.asyncio
async def test_benign_failures_are_recorded_without_error_logs(transport, players, apple_deck, caplog) -> None:
    transport.failures = {
        2: DeliveryError(DeliveryFailure.RECIPIENT_NEVER_INITIATED),
        3: DeliveryError(DeliveryFailure.RECIPIENT_BLOCKED),
    }
    with caplog.at_level(logging.DEBUG, logger="agents.role_assigner"):
        outcome = await RoleAssigner().resolve(transport, -1, players, apple_deck)
    assert sorted(p.id for p in outcome.failed) == [2, 3]
    assert not [r for r in caplog.records if r.levelno >= logging.ERROR]


@pytest.mark.asyncio
async def test_other_failures_are_logged_and_aggregation_continues(transport, players, apple_deck, caplog) -> None:
    transport.failures = {
        1: DeliveryError(DeliveryFailure.OTHER, RuntimeError("flood wait")),
        2: RuntimeError("socket closed"),
    }
    with caplog.at_level(logging.ERROR, logger="agents.role_assigner"):
        outcome = await RoleAssigner().resolve(transport, -1, players, apple_deck)
    kinds = {r.participant.id: r.failure for r in outcome.results}
    assert kinds == {1: DeliveryFailure.OTHER, 2: DeliveryFailure.OTHER, 3: None}
    assert 3 in transport.private
    assert len([r for r in caplog.records if r.levelno >= logging.ERROR]) == 2
