"""
Telegram command and button handlers.

Commands:
  /start [payload]   — Help text; a topic payload (from /topics links) starts a round
  /play [topic]      — New round with a built-in deck, custom words, or the default deck
  /rules /topics /about
Buttons on the round message:
  join / leave / begin
"""
import logging
from typing import Optional

from telegram import LinkPreviewOptions, Message, Update, User
from telegram.constants import ChatType
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from agents.game_master import GameMaster
from config import BotConfig
from models.game import Begin, Interaction, Join, Leave, MessageRef, NewRound, Participant
from services.decks import decode_topic, resolve_deck
from services.session_store import SessionStoreUnavailable
from services.telegram_transport import CALLBACK_BEGIN, CALLBACK_JOIN, CALLBACK_LEAVE
from utils.render import MSG_ABOUT, MSG_RULES, render_help, render_topics

logger = logging.getLogger(__name__)

GAME_MASTER_KEY = "game_master"
BOT_CONFIG_KEY = "bot_config"


def participant_from_user(user: User) -> Participant:
    return Participant(id=user.id, first_name=user.first_name or "", username=user.username)


def interaction_from_callback(data: str, user: User, message: Message) -> Optional[Interaction]:
    """Build a Join/Leave/Begin from a button press; None for unknown buttons."""
    ref = MessageRef(chat_id=message.chat.id, message_id=message.message_id, sent_at=message.date)
    actor = participant_from_user(user)
    if data == CALLBACK_JOIN:
        return Join(chat_id=ref.chat_id, actor=actor, message=ref)
    if data == CALLBACK_LEAVE:
        return Leave(chat_id=ref.chat_id, actor=actor, message=ref)
    if data == CALLBACK_BEGIN:
        return Begin(
            chat_id=ref.chat_id, actor=actor, message=ref,
            private=message.chat.type == ChatType.PRIVATE,
        )
    return None


def _game_master(context: ContextTypes.DEFAULT_TYPE) -> GameMaster:
    return context.bot_data[GAME_MASTER_KEY]


def _bot_config(context: ContextTypes.DEFAULT_TYPE) -> BotConfig:
    return context.bot_data[BOT_CONFIG_KEY]


async def _reply(update: Update, text: str) -> None:
    await update.effective_message.reply_html(
        text, link_preview_options=LinkPreviewOptions(is_disabled=True),
    )


# ── Commands ──────────────────────────────────────────────────────────────────

async def on_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    payload = context.args[0] if context.args else ""
    if payload == "startgroup":
        return
    topic = decode_topic(payload)
    if topic:
        await on_play(update, context, topic=topic)
        return
    private = update.effective_chat.type == ChatType.PRIVATE
    await _reply(update, render_help(_bot_config(context).username, private))


async def on_added_to_group(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    members = update.effective_message.new_chat_members or []
    if any(m.id == context.bot.id for m in members):
        await _reply(update, render_help(_bot_config(context).username, private=False))


async def on_rules(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _reply(update, MSG_RULES)


async def on_topics(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    private = update.effective_chat.type == ChatType.PRIVATE
    await _reply(update, render_topics(_bot_config(context).username, private))


async def on_about(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _reply(update, MSG_ABOUT)


async def on_play(
    update: Update, context: ContextTypes.DEFAULT_TYPE, topic: Optional[str] = None,
) -> None:
    chat = update.effective_chat
    text = topic if topic is not None else (update.effective_message.text or "")
    action = NewRound(
        chat_id=chat.id,
        actor=participant_from_user(update.effective_user),
        deck=resolve_deck(text),
        private=chat.type == ChatType.PRIVATE,
    )
    try:
        await _game_master(context).dispatch(action)
    except SessionStoreUnavailable:
        logger.exception("[%s] Session store unavailable for /play", chat.id)
        await _reply(update, "Something went wrong, please try /play again in a moment.")


# ── Buttons ───────────────────────────────────────────────────────────────────

async def on_button(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    # Answer before dispatch; a Begin can outlast the callback window
    await query.answer()
    message = query.message
    if message is None or not isinstance(message, Message):
        # Inaccessible message: nothing to validate against
        return
    action = interaction_from_callback(query.data or "", query.from_user, message)
    if action is None:
        logger.warning("[%s] Unknown button %r", message.chat.id, query.data)
        return
    try:
        await _game_master(context).dispatch(action)
    except SessionStoreUnavailable:
        logger.exception("[%s] Session store unavailable for %s", message.chat.id, action.kind)
        await context.bot.send_message(
            chat_id=message.chat.id, text="Something went wrong, please try again.",
        )


async def on_error(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    logger.error("Unhandled error while processing update %s", update, exc_info=context.error)


def register_handlers(application: Application, game_master: GameMaster, config: BotConfig) -> None:
    application.bot_data[GAME_MASTER_KEY] = game_master
    application.bot_data[BOT_CONFIG_KEY] = config
    application.add_handler(CommandHandler("start", on_start))
    application.add_handler(CommandHandler("play", on_play))
    application.add_handler(CommandHandler("rules", on_rules))
    application.add_handler(CommandHandler("topics", on_topics))
    application.add_handler(CommandHandler("about", on_about))
    application.add_handler(MessageHandler(filters.StatusUpdate.NEW_CHAT_MEMBERS, on_added_to_group))
    application.add_handler(CallbackQueryHandler(on_button))
    application.add_error_handler(on_error)
