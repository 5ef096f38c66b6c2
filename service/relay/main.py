import asyncio
import json
import time
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import PlainTextResponse

from relay.config import get_settings
from relay.services.completion import close_completion_client
from relay.telegram_bot.bot import (
    Pipeline,
    dispatch_in_background,
    get_pipeline,
    log_polling_exit,
    start_polling,
    wait_for_background_tasks,
)
from relay.telegram_bot.logging_config import bot_logger as logger
from relay.telegram_bot.telegram_api import TelegramAPI, close_telegram_api, get_telegram_api
from relay.telegram_bot.transport import ALLOWED_UPDATES, WebhookTransport

app = FastAPI(
    title="Dr. AI Relay",
    description="Telegram to chat-completion relay",
    version="0.1.0"
)

webhook_transport = WebhookTransport()

# Long-polling task (polling mode only)
_polling_task: asyncio.Task | None = None


# Lifecycle events
@app.on_event("startup")
async def startup_event():
    """Check credentials and start the active transport."""
    global _polling_task
    settings = get_settings()

    missing = settings.missing_credentials()
    if missing:
        print(f"[STARTUP] Missing required environment variables: {', '.join(missing)}")
        raise RuntimeError(f"Missing required environment variables: {', '.join(missing)}")

    print(f"[STARTUP] Transport mode: {'polling' if settings.is_polling else 'webhook'}")
    if settings.is_polling:
        _polling_task = asyncio.create_task(start_polling(), name="relay-polling")
        _polling_task.add_done_callback(log_polling_exit)
    elif not settings.webhook_base_url:
        print("[STARTUP] PUBLIC_BASE_URL not set, /setup-webhook will not work")
    print("[STARTUP] Relay ready")


@app.on_event("shutdown")
async def shutdown_event():
    """Stop polling, let webhook tasks finish, close HTTP clients."""
    global _polling_task
    print("[SHUTDOWN] Stopping relay...")
    if _polling_task is not None:
        _polling_task.cancel()
        try:
            await _polling_task
        except asyncio.CancelledError:
            pass
        _polling_task = None

    await wait_for_background_tasks()
    await close_telegram_api()
    await close_completion_client()
    print("[SHUTDOWN] Relay stopped")


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.monotonic()
    response = await call_next(request)
    elapsed_ms = (time.monotonic() - start) * 1000
    logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.0f} ms)")
    return response


@app.get("/")
@app.get("/health")
async def health_check():
    """Health check endpoint. Reports presence of configuration, never values."""
    settings = get_settings()
    return {
        "status": "running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "transport_mode": "polling" if settings.is_polling else "webhook",
        "env": {
            "hasTelegramToken": bool(settings.telegram_bot_token),
            "hasMistralKey": bool(settings.mistral_api_key),
            "hasPublicBaseUrl": bool(settings.webhook_base_url),
        }
    }


# Telegram webhook endpoint
@app.post("/webhook")
async def telegram_webhook(
    request: Request,
    x_telegram_bot_api_secret_token: str = Header(None),
    pipeline: Pipeline = Depends(get_pipeline),
):
    """
    Webhook endpoint for Telegram updates.

    Answers 200 as soon as the update is validated; the answer is generated
    and sent on a background task.
    """
    settings = get_settings()

    # Verify secret token if configured
    if settings.telegram_webhook_secret:
        if x_telegram_bot_api_secret_token != settings.telegram_webhook_secret:
            raise HTTPException(status_code=403, detail="Invalid secret token")

    body = await request.body()
    if not body:
        logger.warning("No update body received")
        return PlainTextResponse("No update body", status_code=400)

    try:
        update_data = json.loads(body)
    except ValueError:
        # Acknowledge anyway so Telegram stops redelivering it
        logger.warning("Update body is not valid JSON")
        return PlainTextResponse("OK")

    if not isinstance(update_data, dict):
        logger.warning(f"Update body is JSON {type(update_data).__name__}, expected an object")
        return PlainTextResponse("OK")

    for event in webhook_transport.receive(update_data):
        # Fire-and-forget for fast 200 OK
        dispatch_in_background(pipeline, event)

    return PlainTextResponse("OK")


@app.get("/setup-webhook")
async def setup_webhook(telegram: TelegramAPI = Depends(get_telegram_api)):
    """
    (Re)register this service's /webhook URL with Telegram.

    Deletes any existing registration first.
    """
    settings = get_settings()
    webhook_url = f"{settings.webhook_base_url}/webhook"

    try:
        if not settings.webhook_base_url:
            raise ValueError("PUBLIC_BASE_URL (or PROJECT_DOMAIN) is not configured")

        logger.info(f"Setting webhook to: {webhook_url}")

        delete_result = await telegram.delete_webhook()
        logger.info(f"Delete webhook result: {delete_result}")

        set_result = await telegram.set_webhook(
            webhook_url,
            allowed_updates=ALLOWED_UPDATES,
            secret_token=settings.telegram_webhook_secret or None
        )
        logger.info(f"Set webhook result: {set_result}")

    except Exception as e:
        logger.error(f"Error setting webhook: {e}")
        return {
            "success": False,
            "error": str(e)
        }

    return {
        "success": True,
        "webhook_url": webhook_url,
        "deleteResult": delete_result,
        "setResult": set_result
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=get_settings().port)
