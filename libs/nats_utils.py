# libs/nats_utils.py
"""NATS-helpers shared by the gateway and the bot worker (async, JetStream-only).

Шлюз кладёт каждое входящее сообщение WhatsApp в ``wa.inbound`` как есть
(JSON из webhook-а), воркер читает его durable-консьюмером. Всё, что не удалось
даже разобрать, уходит в DLQ ``wa.failed``.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Mapping

import nats
from async_lru import alru_cache
from nats.aio.client import Client as NATS
from nats.js.api import PubAck, RetentionPolicy, StorageType, StreamConfig
from nats.js.errors import NotFoundError

from libs.config import get_settings

__all__ = [
    "get_nats_connection",
    "ensure_stream",
    "publish_inbound",
    "publish_failed",
    "STREAM_NAME",
    "SUBJECT_INBOUND",
    "SUBJECT_FAILED",
]

STREAM_NAME = "WHATSAPP"
SUBJECT_INBOUND = "wa.inbound"  # сырые сообщения из webhook-а
SUBJECT_FAILED = "wa.failed"    # DLQ

logger = logging.getLogger(__name__)


@alru_cache(maxsize=1)
async def get_nats_connection() -> NATS:  # pragma: no cover – network
    """Singleton-подключение к NATS на процесс."""
    settings = get_settings()
    logger.info("Connecting to NATS %s", settings.nats_dsn)
    return await nats.connect(settings.nats_dsn)


async def ensure_stream(nc: NATS) -> None:
    """Создаёт стрим или обновляет его субъекты. Идемпотентна."""
    subjects = [SUBJECT_INBOUND, SUBJECT_FAILED]
    jsm = nc.jetstream()
    config = StreamConfig(
        name=STREAM_NAME,
        subjects=subjects,
        storage=StorageType.FILE,
        retention=RetentionPolicy.LIMITS,
        max_age=60 * 60 * 24 * 3,  # 3 дня в секундах
    )

    try:
        info = await jsm.stream_info(STREAM_NAME)
    except NotFoundError:
        await jsm.add_stream(config)
        logger.info("✅ Стрим '%s' создан для %s", STREAM_NAME, subjects)
        return

    if sorted(info.config.subjects or []) != sorted(subjects):
        logger.warning("Конфигурация стрима '%s' устарела. Обновляем...", STREAM_NAME)
        await jsm.update_stream(config)
        logger.info("✅ Стрим '%s' обновлён.", STREAM_NAME)


async def publish_inbound(
    nc: NATS | None,
    message: Mapping[str, Any],
    *,
    subject: str = SUBJECT_INBOUND,
) -> PubAck:
    """Публикует одно сообщение webhook-а «как есть».

    ``Nats-Msg-Id`` = id сообщения WhatsApp: повторная доставка webhook-а
    в окне дедупликации JetStream не создаст второй записи.
    """
    if nc is None:  # pragma: no cover – convenience
        nc = await get_nats_connection()

    js = nc.jetstream()
    headers = {"Nats-Msg-Id": str(message["id"])} if message.get("id") else None
    payload = json.dumps(message, ensure_ascii=False).encode("utf-8")
    return await js.publish(subject, payload, headers=headers)


async def publish_failed(nc: NATS, data: bytes, reason: str) -> PubAck:
    """Отправляет исходные байты в DLQ с причиной в заголовке."""
    js = nc.jetstream()
    return await js.publish(SUBJECT_FAILED, data, headers={"X-Error": reason[:512]})
