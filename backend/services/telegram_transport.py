"""
Telegram side of the game: posting the joinable round message, editing it,
removing its buttons, private word delivery and plain notices.

Only send_private() raises (DeliveryError); every other call logs transport
failures and reports them through its return value.
"""
import logging
from typing import Optional, Protocol

from telegram import (
    Bot,
    InlineKeyboardButton,
    InlineKeyboardMarkup,
    LinkPreviewOptions,
    ReplyParameters,
)
from telegram.constants import ParseMode
from telegram.error import BadRequest, Forbidden, TelegramError

from config import BotConfig
from models.game import DeliveryFailure, MessageRef, Participant

logger = logging.getLogger(__name__)

CALLBACK_JOIN = "join"
CALLBACK_LEAVE = "leave"
CALLBACK_BEGIN = "begin"

_NO_PREVIEW = LinkPreviewOptions(is_disabled=True)


class DeliveryError(Exception):
    def __init__(self, kind: DeliveryFailure, cause: Optional[BaseException] = None):
        super().__init__(f"{kind.value}: {cause}" if cause else kind.value)
        self.kind = kind
        self.cause = cause


class Transport(Protocol):
    async def post_interactive(self, chat_id: int, text: str) -> Optional[MessageRef]: ...

    async def edit_interactive(self, ref: MessageRef, text: str) -> bool: ...

    async def deactivate_controls(self, ref: MessageRef) -> None: ...

    async def send_private(self, participant: Participant, text: str) -> None: ...

    async def notify(self, chat_id: int, text: str, reply_to: Optional[MessageRef] = None) -> bool: ...


def classify_send_error(exc: BaseException) -> DeliveryFailure:
    """Map a Bot API error from a private send to a delivery failure kind."""
    if isinstance(exc, Forbidden):
        msg = str(exc).lower()
        if "blocked" in msg:
            return DeliveryFailure.RECIPIENT_BLOCKED
        if "initiate" in msg:
            return DeliveryFailure.RECIPIENT_NEVER_INITIATED
    return DeliveryFailure.OTHER


def round_keyboard(config: BotConfig) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([[
        InlineKeyboardButton(config.join_label, callback_data=CALLBACK_JOIN),
        InlineKeyboardButton(config.leave_label, callback_data=CALLBACK_LEAVE),
        InlineKeyboardButton(config.begin_label, callback_data=CALLBACK_BEGIN),
    ]])


class TelegramTransport:
    def __init__(self, bot: Bot, config: BotConfig):
        self.bot = bot
        self.config = config

    async def post_interactive(self, chat_id: int, text: str) -> Optional[MessageRef]:
        try:
            msg = await self.bot.send_message(
                chat_id=chat_id,
                text=text,
                parse_mode=ParseMode.HTML,
                link_preview_options=_NO_PREVIEW,
                reply_markup=round_keyboard(self.config),
            )
        except TelegramError:
            logger.exception("[%s] Failed to post round message", chat_id)
            return None
        return MessageRef(chat_id=chat_id, message_id=msg.message_id, sent_at=msg.date)

    async def edit_interactive(self, ref: MessageRef, text: str) -> bool:
        try:
            await self.bot.edit_message_text(
                chat_id=ref.chat_id,
                message_id=ref.message_id,
                text=text,
                parse_mode=ParseMode.HTML,
                link_preview_options=_NO_PREVIEW,
                reply_markup=round_keyboard(self.config),
            )
        except BadRequest as exc:
            # Two presses rendering the same roster
            if "not modified" in str(exc).lower():
                return True
            logger.error("[%s] Failed to edit round message %s: %s", ref.chat_id, ref.message_id, exc)
            return False
        except TelegramError:
            logger.exception("[%s] Failed to edit round message %s", ref.chat_id, ref.message_id)
            return False
        return True

    async def deactivate_controls(self, ref: MessageRef) -> None:
        try:
            await self.bot.edit_message_reply_markup(
                chat_id=ref.chat_id, message_id=ref.message_id, reply_markup=None,
            )
        except TelegramError as exc:
            # Already without buttons, or deleted by an admin
            logger.warning("[%s] Could not remove buttons from %s: %s", ref.chat_id, ref.message_id, exc)

    async def send_private(self, participant: Participant, text: str) -> None:
        try:
            await self.bot.send_message(chat_id=participant.id, text=text)
        except TelegramError as exc:
            raise DeliveryError(classify_send_error(exc), exc) from exc

    async def notify(self, chat_id: int, text: str, reply_to: Optional[MessageRef] = None) -> bool:
        try:
            await self.bot.send_message(
                chat_id=chat_id,
                text=text,
                parse_mode=ParseMode.HTML,
                link_preview_options=_NO_PREVIEW,
                reply_parameters=(
                    ReplyParameters(message_id=reply_to.message_id, allow_sending_without_reply=True)
                    if reply_to else None
                ),
            )
        except TelegramError:
            logger.exception("[%s] Failed to send notice", chat_id)
            return False
        return True
