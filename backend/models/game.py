from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Literal, Union, Annotated
from enum import Enum
from datetime import datetime, timezone


def _utcnow() -> datetime:
    """Timezone-aware UTC datetime (replaces deprecated datetime.utcnow)."""
    return datetime.now(timezone.utc)


class Participant(BaseModel):
    id: int
    first_name: str = ""
    username: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.first_name or (f"@{self.username}" if self.username else str(self.id))


class Deck(BaseModel):
    name: str
    words: List[str]

    @field_validator("words")
    @classmethod
    def _non_empty_unique(cls, words: List[str]) -> List[str]:
        seen = set()
        out = []
        for w in words:
            w = w.strip()
            if w and w not in seen:
                seen.add(w)
                out.append(w)
        if not out:
            raise ValueError("a deck needs at least one word")
        return out


class MessageRef(BaseModel):
    """Reference to a posted chat message. Identity is (chat_id, message_id)."""

    chat_id: int
    message_id: int
    sent_at: datetime = Field(default_factory=_utcnow)

    def same_message(self, other: Optional["MessageRef"]) -> bool:
        return (
            other is not None
            and self.chat_id == other.chat_id
            and self.message_id == other.message_id
        )


class ChatSession(BaseModel):
    """
    Per-chat round state. Exactly one exists per chat id; it is reset in place
    by every new round and never deleted.
    Only the holder of the chat's lease may mutate it.
    """

    deck: Optional[Deck] = None
    roster: List[Participant] = []
    last_message: Optional[MessageRef] = None
    last_round_started_at: Optional[datetime] = None

    def reset(self) -> None:
        self.deck = None
        self.roster = []
        self.last_message = None

    def has_participant(self, participant_id: int) -> bool:
        return any(p.id == participant_id for p in self.roster)

    def add_participant(self, participant: Participant) -> bool:
        """Append to roster. Returns True if newly added, False if already present."""
        if self.has_participant(participant.id):
            return False
        self.roster.append(participant)
        return True

    def remove_participant(self, participant: Participant) -> bool:
        """Returns True if the participant was on the roster."""
        kept = [p for p in self.roster if p.id != participant.id]
        if len(kept) == len(self.roster):
            return False
        self.roster = kept
        return True

    def is_current(self, ref: MessageRef) -> bool:
        return ref.same_message(self.last_message)


# ── Interactions (one variant per transition) ─────────────────────────────────

class NewRound(BaseModel):
    kind: Literal["new_round"] = "new_round"
    chat_id: int
    actor: Participant
    deck: Deck
    private: bool = False


class Join(BaseModel):
    kind: Literal["join"] = "join"
    chat_id: int
    actor: Participant
    message: MessageRef


class Leave(BaseModel):
    kind: Literal["leave"] = "leave"
    chat_id: int
    actor: Participant
    message: MessageRef


class Begin(BaseModel):
    kind: Literal["begin"] = "begin"
    chat_id: int
    actor: Participant
    message: MessageRef
    private: bool = False


Interaction = Annotated[Union[NewRound, Join, Leave, Begin], Field(discriminator="kind")]


# ── Delivery results ──────────────────────────────────────────────────────────

class DeliveryFailure(str, Enum):
    RECIPIENT_NEVER_INITIATED = "recipient_never_initiated"
    RECIPIENT_BLOCKED = "recipient_blocked"
    OTHER = "other"

    @property
    def benign(self) -> bool:
        return self is not DeliveryFailure.OTHER


class DeliveryResult(BaseModel):
    participant: Participant
    failure: Optional[DeliveryFailure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None


class RoundOutcome(BaseModel):
    odd_one_out: Participant
    secret: str
    players: List[Participant]   # shuffled roster
    results: List[DeliveryResult]

    @property
    def failed(self) -> List[Participant]:
        return [r.participant for r in self.results if not r.ok]
