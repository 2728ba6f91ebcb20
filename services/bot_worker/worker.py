# services/bot_worker/worker.py
"""Bot Worker: durable JetStream-консьюмер `wa.inbound`.

Каждое сообщение – отдельная asyncio-задача; задачи друг с другом не
синхронизируются (сообщения одного отправителя могут завершиться в любом
порядке). JetStream-сообщение подтверждается сразу после успешного
декодирования: ответ пользователю – забота конвейера, повторной доставки нет.
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import signal
import sys
from contextlib import suppress
from typing import Any

from nats.aio.client import Client as NATS
from nats.aio.msg import Msg

from libs.config import get_settings
from libs.nats_utils import STREAM_NAME, SUBJECT_INBOUND, ensure_stream, get_nats_connection, publish_failed
from libs.sentry import init_sentry, sentry_capture
from services.bot_worker.context import AppContext, build_context
from services.bot_worker.metrics import ACK_PENDING, MESSAGES_FAILED, start_metrics_server
from services.bot_worker.router import handle_inbound

logger = logging.getLogger("bot_worker")
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

SHUTDOWN_TIMEOUT = 30.0  # секунд на завершение начатых обработчиков


# ---------------------------------------------------------------------------
# Core
# ---------------------------------------------------------------------------
async def decode_message(nc: NATS, msg: Msg) -> dict | None:
    """JSON сообщения webhook-а или ``None`` (исходные байты ушли в DLQ)."""
    try:
        raw = json.loads(msg.data)
        if not isinstance(raw, dict):
            raise ValueError("payload is not a JSON object")
        return raw
    except Exception as err:  # noqa: BLE001
        logger.error("❌ Не удалось декодировать сообщение: %s", err)
        MESSAGES_FAILED.inc()
        sentry_capture(err, extras={"raw_data": msg.data.decode(errors="ignore")[:1000]})
        try:
            await publish_failed(nc, msg.data, str(err))
        except Exception as dlq_err:  # noqa: BLE001
            logger.error("❌ DLQ недоступна: %s", dlq_err)
        return None
    finally:
        await msg.ack()


def _on_task_done(task: asyncio.Task, tasks: set[asyncio.Task]) -> None:
    tasks.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("💥 Задача завершилась ошибкой: %s", exc, exc_info=exc)
        sentry_capture(exc)


async def shutdown(
    nc: NATS,
    ctx: AppContext,
    tasks: set[asyncio.Task],
    *,
    timeout: float = SHUTDOWN_TIMEOUT,
) -> None:
    """Даёт начатым обработчикам закончить, потом закрывает NATS и клиенты.

    Сообщения уже подтверждены, поэтому брошенная задача = потерянное сообщение.
    """
    pending = set(tasks)
    if pending:
        logger.info("Ждём завершения %s обработчиков (до %s с)...", len(pending), timeout)
        _, pending = await asyncio.wait(pending, timeout=timeout)
    if pending:
        logger.warning("⚠️ %s обработчиков не успели завершиться – отменяем", len(pending))
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    await nc.drain()
    await ctx.aclose()


async def _worker_loop(
    nc: NATS, ctx: AppContext, consumer_group: str, tasks: set[asyncio.Task]
) -> None:  # pragma: no cover – infinite loop
    js = nc.jetstream()
    sub = await js.subscribe(SUBJECT_INBOUND, durable=consumer_group)
    logger.info("Воркер запущен. Группа: '%s'. Слушаем субъект: '%s'...", consumer_group, SUBJECT_INBOUND)

    async for msg in sub.messages:
        raw = await decode_message(nc, msg)
        if raw is None:
            continue
        task = asyncio.create_task(handle_inbound(ctx, raw))
        tasks.add(task)
        task.add_done_callback(lambda t: _on_task_done(t, tasks))


async def _stats_loop(js, durable: str) -> None:  # pragma: no cover – network
    while True:
        info = await js.consumer_info(STREAM_NAME, durable)
        ACK_PENDING.set(info.num_ack_pending)
        await asyncio.sleep(5)


def _loop_exception_handler(loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
    # необработанные ошибки логируем, но процесс не роняем
    exc = context.get("exception")
    logger.error("💥 Необработанная ошибка в event loop: %s", context.get("message"), exc_info=exc)
    if exc is not None:
        sentry_capture(exc)


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------
def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="WhatsApp bot worker")
    p.add_argument("--name", default=f"{os.uname().nodename}-{os.getpid()}", help="Уникальное имя этого воркера")
    p.add_argument("--group", default="bot_worker", help="Имя группы консьюмеров (durable name)")
    return p.parse_args(argv)


async def _amain(argv: list[str] | None = None) -> None:  # pragma: no cover
    args = _parse_args(sys.argv[1:] if argv is None else argv)
    settings = get_settings()

    start_metrics_server(settings.worker_metrics_port)
    init_sentry(release="bot_worker@1.0.0")

    loop = asyncio.get_running_loop()
    loop.set_exception_handler(_loop_exception_handler)

    ctx = build_context(settings)
    nc = await get_nats_connection()
    await ensure_stream(nc)

    stop_event = asyncio.Event()

    def _sig_handler(*_: Any) -> None:
        logger.info("Получен сигнал остановки, завершаем работу...")
        stop_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _sig_handler)

    tasks: set[asyncio.Task] = set()
    worker_task = asyncio.create_task(_worker_loop(nc, ctx, args.group, tasks))
    stats_task = asyncio.create_task(_stats_loop(nc.jetstream(), args.group))

    await stop_event.wait()

    worker_task.cancel()
    stats_task.cancel()
    with suppress(asyncio.CancelledError):
        await worker_task
    with suppress(asyncio.CancelledError):
        await stats_task

    await shutdown(nc, ctx, tasks)
    logger.info("Соединение с NATS закрыто. Выход.")


def main() -> None:  # pragma: no cover – CLI
    try:
        asyncio.run(_amain())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
