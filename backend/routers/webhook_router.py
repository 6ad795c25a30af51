"""
Telegram webhook endpoint.

Routes:
  POST /telegram/webhook — Bot API pushes updates here when a webhook URL is configured
"""
import hmac
import logging

from fastapi import APIRouter, Header, HTTPException, Request
from telegram import Update

from config import settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["telegram"])


@router.post("/telegram/webhook")
async def telegram_webhook(
    request: Request,
    x_telegram_bot_api_secret_token: str = Header(default=""),
):
    expected = settings.telegram_webhook_secret
    if expected and not hmac.compare_digest(x_telegram_bot_api_secret_token, expected):
        raise HTTPException(status_code=403, detail="Bad webhook secret")
    application = getattr(request.app.state, "telegram_app", None)
    if application is None:
        raise HTTPException(status_code=503, detail="Bot not started")
    data = await request.json()
    update = Update.de_json(data, application.bot)
    # Queue instead of processing inline so Telegram gets its 200 immediately
    await application.update_queue.put(update)
    return {"ok": True}
