"""Chat-facing text. Every function here is a pure function of its arguments (HTML parse mode)."""
from html import escape
from typing import Iterable, List

from models.game import ChatSession, Participant
from services.decks import DECKS, DEFAULT_DECK, encode_topic

MSG_YOU_ARE_ODD_ONE_OUT = (
    "🐇 You are the odd one out! Everyone else got the same secret word. "
    "Listen carefully, blend in and try to guess it."
)
MSG_NO_PLAYERS = "Nobody has joined yet. Press Join first."
MSG_OBSOLETE = "This round is over. Start a new one with /play."

MSG_RULES = (
    "<b>Rules</b>\n"
    "1. Someone sends /play, everyone who wants to play presses Join.\n"
    "2. When everyone is in, press Begin. I send each player the secret word "
    "in a private message, except one player: the odd one out.\n"
    "3. Take turns saying one word or phrase related to the secret word. "
    "Don't make it too obvious, the odd one out is listening!\n"
    "4. After a few rounds, vote on who the odd one out is. If the odd one out "
    "survives the vote or names the secret word, they win."
)

MSG_ABOUT = (
    "A party game for group chats: everyone but one player gets the same "
    "secret word. Send /rules to learn how to play and /topics to pick a deck."
)


def player_html(p: Participant) -> str:
    return f'<a href="tg://user?id={p.id}">{escape(p.display_name)}</a>'


def players_html(players: Iterable[Participant]) -> str:
    return ", ".join(player_html(p) for p in players)


def render_session(session: ChatSession) -> str:
    deck = session.deck or DEFAULT_DECK
    lines: List[str] = [f"<b>Deck:</b> {escape(deck.name)} ({len(deck.words)} words)"]
    if session.roster:
        lines.append(f"<b>Players ({len(session.roster)}):</b> {players_html(session.roster)}")
    else:
        lines.append("<b>Players:</b> nobody yet")
    lines.append("Press Join to play, then Begin when everyone is in.")
    return "\n".join(lines)


def _bot_link(username: str) -> str:
    return f'<a href="https://t.me/{escape(username)}">@{escape(username)}</a>'


def render_play(players: List[Participant], username: str, private: bool) -> str:
    text = (
        f"Secret words sent to {players_html(players)}. "
        f"Check your private chat with {_bot_link(username)}."
    )
    if not private:
        text += " Take turns describing the word without saying it, then vote!"
    return text


def render_undelivered(players: List[Participant], username: str) -> str:
    return (
        f"I couldn't message {players_html(players)}. "
        f"Open a private chat with {_bot_link(username)} and press Start, "
        "then press Begin again."
    )


def render_help(username: str, private: bool) -> str:
    text = (
        "Hi! I host the odd-one-out word game.\n"
        "/play starts a round with the default deck, /play animals picks a deck, "
        "/play cat, dog, owl uses your own words.\n"
        "/rules explains the game, /topics lists the decks."
    )
    if private and username:
        text += (
            f'\n<a href="https://t.me/{escape(username)}?startgroup=startgroup">'
            "Add me to a group</a> to play with friends."
        )
    return text


def render_topics(username: str, private: bool) -> str:
    lines = ["<b>Decks</b>"]
    for name, deck in DECKS.items():
        payload = encode_topic(name)
        if private and username and payload:
            link = f'<a href="https://t.me/{escape(username)}?startgroup={payload}">{escape(name)}</a>'
        else:
            link = f"<code>/play {escape(name)}</code>"
        lines.append(f"{link} ({len(deck.words)} words)")
    return "\n".join(lines)
