"""
Role Assigner — picks the odd one out and the secret word, then delivers them.

Responsibilities:
- Shuffle the roster with a cryptographically strong RNG
- Choose one odd-one-out and one secret word, uniformly at random
- Send every player their private message concurrently and wait for all of them
- Classify failed deliveries (benign "never started" / "blocked" vs operational)

Called by the game master while it holds the chat's lease.
"""
import asyncio
import logging
import secrets
from typing import List, Optional, Tuple

from models.game import Deck, DeliveryFailure, DeliveryResult, Participant, RoundOutcome
from services.telegram_transport import DeliveryError, Transport
from utils.render import MSG_YOU_ARE_ODD_ONE_OUT

logger = logging.getLogger(__name__)


class RoleAssigner:

    def __init__(self, rng: Optional[secrets.SystemRandom] = None):
        self.rng = rng or secrets.SystemRandom()

    def assign(self, roster: List[Participant], deck: Deck) -> Tuple[List[Participant], Participant, str]:
        """
        Returns (shuffled roster, odd one out, secret word).
        Raises ValueError on an empty roster.
        """
        if not roster:
            raise ValueError("Cannot assign roles to an empty roster")
        players = list(roster)
        self.rng.shuffle(players)
        odd_one_out = players[self.rng.randrange(len(players))]
        secret = deck.words[self.rng.randrange(len(deck.words))]
        return players, odd_one_out, secret

    async def _deliver_one(
        self, transport: Transport, chat_id: int, player: Participant, text: str,
    ) -> DeliveryResult:
        try:
            await transport.send_private(player, text)
        except DeliveryError as exc:
            if exc.kind.benign:
                logger.debug("[%s] %s not reachable (%s)", chat_id, player.id, exc.kind.value)
            else:
                logger.error("[%s] Failed to deliver word to %s: %s", chat_id, player.id, exc.cause or exc)
            return DeliveryResult(participant=player, failure=exc.kind)
        except Exception:
            logger.exception("[%s] Unexpected error delivering word to %s", chat_id, player.id)
            return DeliveryResult(participant=player, failure=DeliveryFailure.OTHER)
        return DeliveryResult(participant=player)

    async def deliver(
        self,
        transport: Transport,
        chat_id: int,
        players: List[Participant],
        odd_one_out: Participant,
        secret: str,
    ) -> List[DeliveryResult]:
        """
        One concurrent send per player. Returns only after every send has
        succeeded or failed; results are in `players` order.
        """
        sends = []
        for player in players:
            text = MSG_YOU_ARE_ODD_ONE_OUT if player.id == odd_one_out.id else secret
            sends.append(self._deliver_one(transport, chat_id, player, text))
        return list(await asyncio.gather(*sends))

    async def resolve(
        self, transport: Transport, chat_id: int, roster: List[Participant], deck: Deck,
    ) -> RoundOutcome:
        players, odd_one_out, secret = self.assign(roster, deck)
        results = await self.deliver(transport, chat_id, players, odd_one_out, secret)
        failed = sum(1 for r in results if not r.ok)
        logger.info(
            "[%s] Round resolved: %d players, %d undelivered (deck=%s)",
            chat_id, len(players), failed, deck.name,
        )
        return RoundOutcome(
            odd_one_out=odd_one_out, secret=secret, players=players, results=results,
        )


# Module-level singleton
role_assigner = RoleAssigner()
