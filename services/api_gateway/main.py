# services/api_gateway/main.py
"""FastAPI шлюз для webhook-а WhatsApp Cloud API.

* **GET   /webhook**  – handshake подписки (``hub.challenge``).
* **POST  /webhook**  – раскладывает уведомление на сообщения и кладёт каждое в
  NATS `wa.inbound`. Конвейер здесь не запускается – только очередь.
* **GET   /health**   – проверка подключения к NATS.
"""
from __future__ import annotations

import contextlib
import logging
from typing import Any, Dict

import uvicorn
from fastapi import FastAPI, HTTPException, Query, status
from fastapi.concurrency import asynccontextmanager
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import Counter, start_http_server

from libs.config import get_settings
from libs.envelope import extract_messages
from libs.nats_utils import ensure_stream, get_nats_connection, publish_inbound
from libs.sentry import init_sentry, sentry_capture
from services.api_gateway.schemas import WebhookAck, WebhookPayload

logger = logging.getLogger("api_gateway")

WEBHOOK_MESSAGES = Counter(
    "wa_webhook_messages_total",
    "Сообщения из webhook-а, поставленные в очередь",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_sentry(release="api_gateway@1.0.0")
    logger.info("API Gateway started")
    yield
    logger.info("API Gateway shutting down…")


app = FastAPI(title="WhatsApp API Gateway", version="1.0.0", lifespan=lifespan)


# ---------------------------------------------------------------------------#
# Routes                                                                     #
# ---------------------------------------------------------------------------#
@app.get("/webhook", response_class=PlainTextResponse)
async def verify_webhook(
    mode: str = Query("", alias="hub.mode"),
    token: str = Query("", alias="hub.verify_token"),
    challenge: str = Query("", alias="hub.challenge"),
) -> PlainTextResponse:
    """Meta подтверждает подписку: отвечаем ``hub.challenge``, если токен совпал."""
    expected = get_settings().waba_verify_token
    if mode == "subscribe" and expected and token == expected:
        logger.info("✅ Webhook подтверждён")
        return PlainTextResponse(challenge)
    logger.warning("⚠️ Неверный verify_token при подтверждении webhook-а")
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")


@app.post("/webhook", response_model=WebhookAck)
async def receive_webhook(payload: WebhookPayload) -> WebhookAck:
    """Каждое сообщение уведомления → отдельная публикация в `wa.inbound`."""
    messages = list(extract_messages(payload.model_dump()))
    if not messages:
        logger.debug("Webhook без сообщений (статусы доставки) – пропуск")
        return WebhookAck(result="ignored", count=0)

    try:
        nc = await get_nats_connection()
        await ensure_stream(nc)
        for message in messages:
            await publish_inbound(nc, message)
            WEBHOOK_MESSAGES.inc()
    except Exception as exc:  # pragma: no cover – network
        sentry_capture(exc)
        logger.exception("Failed to push to NATS")
        raise HTTPException(status_code=500, detail="Internal error") from exc

    logger.info("📨 В очередь: %s сообщ.", len(messages))
    return WebhookAck(result="queued", count=len(messages))


@app.get("/health", status_code=status.HTTP_200_OK, response_model=None)
async def health() -> Dict[str, Any] | JSONResponse:
    """Проверка готовности: есть ли подключение к NATS."""
    try:
        nc = await get_nats_connection()
        if not nc.is_connected:
            raise ConnectionError("NATS client is not connected")
        return {"status": "ok"}
    except Exception as e:
        logger.error("❌ NATS недоступен: %s", e)
        sentry_capture(e)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "nats_down"},
        )


# ---------------------------------------------------------------------------#
# Entrypoint                                                                 #
# ---------------------------------------------------------------------------#
if __name__ == "__main__":  # pragma: no cover
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    settings = get_settings()
    with contextlib.suppress(OSError):
        start_http_server(settings.api_metrics_port)

    uvicorn.run(
        "services.api_gateway.main:app",
        host=settings.api_host,
        port=settings.api_port,
        lifespan="on",
    )
