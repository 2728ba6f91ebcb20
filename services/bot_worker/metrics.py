# services/bot_worker/metrics.py
"""Prometheus-метрики для *Bot Worker*.

1. **Business** – сколько сообщений обработано / упало / отброшено, сколько
   лансаменто создано и сколько раз пришлось просить исправление.
2. **Runtime**  – время полной обработки сообщения и время извлечения полей.

> Запуск: `start_metrics_server()` один раз при старте процесса – поднимает
> `/metrics` на `worker_metrics_port` (по умолчанию 9102).
"""
from __future__ import annotations

import contextlib
import logging

from prometheus_client import Counter, Gauge, Histogram, start_http_server

from libs.config import get_settings

log = logging.getLogger(__name__)

MESSAGES_HANDLED = Counter(
    "wa_messages_handled_total",
    "Входящие сообщения, обработанные до конца (с ответом пользователю)",
    ["intent"],
)
MESSAGES_FAILED = Counter(
    "wa_messages_failed_total",
    "Сообщения, обработка которых закончилась ошибкой верхнего уровня",
)
MESSAGES_DROPPED = Counter(
    "wa_messages_dropped_total",
    "Сообщения от номеров вне списка разрешённых (молча отброшены)",
)
TRANSACTIONS_CREATED = Counter(
    "wa_transactions_created_total",
    "Созданные лансаменто",
    ["tipo"],
)
NEEDS_FIX = Counter(
    "wa_needs_fix_total",
    "Ответы «не хватает данных» (needs_fix) – запись не создавалась",
)
ACK_PENDING = Gauge(
    "wa_worker_ack_pending",
    "Сообщения, выданные консьюмеру и ещё не подтверждённые",
)
PROCESSING_TIME = Histogram(
    "wa_processing_seconds",
    "Время (сек) обработки одного входящего сообщения",
    buckets=(0.1, 0.5, 1, 2, 5, 10, 20, 40, 80),
)
EXTRACTION_LATENCY = Histogram(
    "wa_extraction_seconds",
    "Время (сек) извлечения полей лансаменто через языковые модели",
    ["kind"],
    buckets=(0.25, 0.5, 1, 2, 5, 10, 20, 40),
)


def start_metrics_server(port: int | None = None) -> None:  # pragma: no cover – network
    """Запускает HTTP-эндпоинт `/metrics` в отдельном треде."""
    port = port or get_settings().worker_metrics_port
    with contextlib.suppress(OSError):  # порт уже занят повторным запуском
        start_http_server(port)
        log.info("Prometheus metrics available on http://0.0.0.0:%s/metrics", port)
