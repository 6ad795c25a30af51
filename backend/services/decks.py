"""
Word decks and deck selection from /play text.

select_deck() returns None to mean "use the default deck":
  /play                      → None
  /play animals              → built-in "animals" deck
  /play cat, dog, parrot     → custom deck with those three words
"""
import base64
import binascii
import re
from typing import Dict, List, Optional

from models.game import Deck

_BUILTIN: Dict[str, List[str]] = {
    "places": [
        "airport", "beach", "library", "hospital", "circus", "submarine",
        "space station", "bakery", "museum", "train", "school", "theatre",
        "supermarket", "zoo", "church", "castle", "casino", "farm",
    ],
    "animals": [
        "cat", "dog", "elephant", "penguin", "giraffe", "octopus", "owl",
        "kangaroo", "shark", "camel", "hedgehog", "parrot", "snail", "wolf",
    ],
    "food": [
        "pizza", "sushi", "pancake", "borscht", "taco", "croissant",
        "ice cream", "omelette", "dumplings", "lasagna", "popcorn", "salad",
    ],
    "jobs": [
        "firefighter", "astronaut", "chef", "dentist", "pilot", "farmer",
        "teacher", "detective", "plumber", "journalist", "surgeon", "clown",
    ],
}

DEFAULT_DECK_NAME = "places"

DECKS: Dict[str, Deck] = {name: Deck(name=name, words=words) for name, words in _BUILTIN.items()}
DEFAULT_DECK: Deck = DECKS[DEFAULT_DECK_NAME]

CUSTOM_DECK_NAME = "custom"

_COMMAND_RE = re.compile(r"^/\w+(@\w+)?\s*")
_SEPARATOR_RE = re.compile(r"[,;\n]")

# Telegram limits deep-link payloads to 64 chars of [A-Za-z0-9_-]
MAX_PAYLOAD_LEN = 64
TOPIC_PREFIX = "t-"


def strip_command(text: str) -> str:
    return _COMMAND_RE.sub("", text or "", count=1).strip()


def select_deck(text: str) -> Optional[Deck]:
    topic = strip_command(text)
    if not topic:
        return None
    known = DECKS.get(topic.lower())
    if known is not None:
        return known
    words = [w.strip() for w in _SEPARATOR_RE.split(topic)]
    words = [w for w in words if w]
    if not words:
        return None
    return Deck(name=CUSTOM_DECK_NAME, words=words)


def resolve_deck(text: str) -> Deck:
    return select_deck(text) or DEFAULT_DECK


def encode_topic(topic: str) -> Optional[str]:
    """Encode /play text as a /start payload; None if it would not fit."""
    encoded = base64.urlsafe_b64encode(topic.encode("utf-8")).decode("ascii").rstrip("=")
    payload = TOPIC_PREFIX + encoded
    if len(payload) > MAX_PAYLOAD_LEN:
        return None
    return payload


def decode_topic(payload: str) -> str:
    """Inverse of encode_topic. Returns "" for anything that is not a topic payload."""
    if not payload or not payload.startswith(TOPIC_PREFIX) or len(payload) > MAX_PAYLOAD_LEN:
        return ""
    encoded = payload[len(TOPIC_PREFIX):]
    padded = encoded + "=" * (-len(encoded) % 4)
    try:
        return base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8").strip()
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return ""
