from __future__ import annotations

import pytest

from services.decks import (
    CUSTOM_DECK_NAME,
    DECKS,
    DEFAULT_DECK,
    decode_topic,
    encode_topic,
    resolve_deck,
    select_deck,
    strip_command,
)


@pytest.mark.parametrize(
    "text, expected",
    [
        ("/play", ""),
        ("/play@oddbot animals", "animals"),
        ("/play   cat, dog ", "cat, dog"),
        ("animals", "animals"),
    ],
)
def test_strip_command(text: str, expected: str) -> None:
    assert strip_command(text) == expected


def test_empty_play_uses_default_deck() -> None:
    assert select_deck("/play") is None
    assert resolve_deck("/play") is DEFAULT_DECK


def test_known_deck_name_is_case_insensitive() -> None:
    assert select_deck("/play Animals") is DECKS["animals"]


def test_custom_words_become_custom_deck() -> None:
    deck = select_deck("/play cat, dog;  cat\nparrot")
    assert deck.name == CUSTOM_DECK_NAME
    assert deck.words == ["cat", "dog", "parrot"]


def test_single_unknown_word_is_a_one_word_deck() -> None:
    deck = select_deck("/play submarine")
    assert deck.words == ["submarine"]


def test_only_separators_fall_back_to_default() -> None:
    assert select_deck("/play , ;") is None


def test_topic_payload_round_trip_and_rejections() -> None:
    payload = encode_topic("кошка, собака")
    assert payload is not None and len(payload) <= 64
    assert decode_topic(payload) == "кошка, собака"
    assert decode_topic("startgroup") == ""
    assert decode_topic("t-%%%") == ""
    assert encode_topic("x" * 100) is None
