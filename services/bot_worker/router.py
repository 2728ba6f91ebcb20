# services/bot_worker/router.py
"""
Конвейер одного входящего сообщения.

    Received → Authorized? → UserResolved? → IntentClassified → handler

Каждый «?» – терминальный шлюз: поясняющий ответ (или молчание для чужих
номеров) и стоп. Повтора всего конвейера нет – новое сообщение начинает
новый проход. Всё, что вылетело из обработчиков, ловит единственный
верхнеуровневый guard в :func:`handle_inbound`.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Mapping

from libs import responder
from libs.envelope import build_envelope, normalize_phone_e164
from libs.errors import NoBankConfiguredError, TransportError, UnsupportedMessageError
from libs.extractor import extract_candidate
from libs.intent import classify_intent
from libs.models import Envelope, Intent, IntentResult, MessageKind, TxnType, User
from libs.normalizer import normalize_candidate
from libs.persistence import create_transaction
from libs.reports import (
    build_cashflow,
    cashflow_caption,
    empty_cashflow_message,
    parse_period,
    render_cashflow_chart,
)
from libs.resolution import resolve_category, resolve_default_bank
from libs.sentry import sentry_capture
from services.bot_worker.context import AppContext
from services.bot_worker.metrics import (
    EXTRACTION_LATENCY,
    MESSAGES_DROPPED,
    MESSAGES_FAILED,
    MESSAGES_HANDLED,
    NEEDS_FIX,
    PROCESSING_TIME,
    TRANSACTIONS_CREATED,
)

__all__ = ["handle_inbound", "handle_create_transaction"]

logger = logging.getLogger("bot_worker.router")

Handler = Callable[[AppContext, Envelope, User, IntentResult], Awaitable[None]]


# ---------------------------------------------------------------------------
# Обработчики намерений
# ---------------------------------------------------------------------------
async def handle_greeting(ctx: AppContext, envelope: Envelope, user: User, _intent: IntentResult) -> None:
    await ctx.sender.send_text(envelope.sender, responder.greeting_message(user.first_name))


async def handle_create_transaction(
    ctx: AppContext, envelope: Envelope, user: User, _intent: IntentResult | None = None
) -> None:
    # 1. Извлечение
    try:
        with EXTRACTION_LATENCY.labels(envelope.kind.value).time():
            candidate = await extract_candidate(ctx.llm, envelope, ctx.clock, ctx.cache)
    except UnsupportedMessageError as exc:
        logger.info("❌ %s", exc)
        await ctx.sender.send_text(envelope.sender, responder.UNSUPPORTED_MESSAGE)
        return

    # 2. Дефолты
    record = normalize_candidate(candidate, envelope.fallback_text, ctx.clock)
    logger.info(
        "🔧 Нормализовано: %s %s R$ %s (%s), needs_fix=%s",
        record.tipo_lancamento.value, record.descricao[:60], record.valor,
        record.data_competencia, record.needs_fix,
    )

    # 3. needs_fix – никогда не пишем
    if record.needs_fix:
        NEEDS_FIX.inc()
        await ctx.sender.send_text(
            envelope.sender,
            responder.needs_fix_message(
                record.missing,
                record.suggestions,
                from_document=envelope.kind is MessageKind.DOCUMENT,
            ),
        )
        return

    # 4. Банк и категория
    try:
        bank = await resolve_default_bank(ctx.repo, user.id)
    except NoBankConfiguredError:
        logger.warning("❌ У пользователя %s нет банков", user.id)
        await ctx.sender.send_text(envelope.sender, responder.NO_BANK_CONFIGURED)
        return

    category = await resolve_category(
        ctx.llm, ctx.repo, user.id, record.tipo_lancamento, record.categoria_sugerida
    )

    # 5. Запись и подтверждение
    saved = await create_transaction(
        ctx.repo, user.id, record, bank.id, category.id if category else None
    )
    TRANSACTIONS_CREATED.labels(saved.tipo_lancamento.value).inc()
    await ctx.sender.send_text(
        envelope.sender, responder.confirmation_message(saved, record, category, bank)
    )


async def handle_view_payables(ctx: AppContext, envelope: Envelope, user: User, _intent: IntentResult) -> None:
    entries = await ctx.repo.list_open_entries(user.id, TxnType.DESPESA)
    await ctx.sender.send_text(envelope.sender, responder.open_entries_message(entries, TxnType.DESPESA))


async def handle_view_receivables(ctx: AppContext, envelope: Envelope, user: User, _intent: IntentResult) -> None:
    entries = await ctx.repo.list_open_entries(user.id, TxnType.RECEITA)
    await ctx.sender.send_text(envelope.sender, responder.open_entries_message(entries, TxnType.RECEITA))


async def handle_view_cashflow(ctx: AppContext, envelope: Envelope, user: User, intent: IntentResult) -> None:
    start, end = parse_period(envelope.text or intent.extracted_info, ctx.clock)

    banks = await ctx.repo.list_banks(user.id)
    entries = await ctx.repo.list_entries_until(user.id, end) if banks else []
    logger.info("📊 Fluxo de caixa %s..%s: %s лансаменто, %s банков", start, end, len(entries), len(banks))
    if not entries:
        await ctx.sender.send_text(envelope.sender, empty_cashflow_message(start))
        return

    report = build_cashflow(entries, banks, start, end)
    caption = cashflow_caption(report, ctx.clock)
    chart = await asyncio.to_thread(render_cashflow_chart, report)
    try:
        await ctx.sender.send_image(envelope.sender, chart, caption)
    except TransportError as exc:
        # картинка не ушла – резюме всё равно полезно
        logger.error("❌ График не отправлен (%s) → только текст", exc)
        await ctx.sender.send_text(envelope.sender, caption)


async def handle_view_dre(ctx: AppContext, envelope: Envelope, _user: User, _intent: IntentResult) -> None:
    await ctx.sender.send_text(envelope.sender, responder.DRE_NOT_IMPLEMENTED)


async def handle_unknown(ctx: AppContext, envelope: Envelope, _user: User, intent: IntentResult) -> None:
    logger.info("❓ Намерение не распознано: %s", intent.intent.value)
    await ctx.sender.send_text(envelope.sender, responder.UNKNOWN_INTENT)


HANDLERS: dict[Intent, Handler] = {
    Intent.GREETING: handle_greeting,
    Intent.CREATE_TRANSACTION: handle_create_transaction,
    Intent.VIEW_PAYABLES: handle_view_payables,
    Intent.VIEW_RECEIVABLES: handle_view_receivables,
    Intent.VIEW_CASHFLOW: handle_view_cashflow,
    Intent.VIEW_DRE: handle_view_dre,
    Intent.UNKNOWN: handle_unknown,
}


# ---------------------------------------------------------------------------
# Точка входа
# ---------------------------------------------------------------------------
async def handle_inbound(ctx: AppContext, raw: Mapping[str, Any]) -> None:
    """Полная обработка одного сообщения webhook-а. Никогда не бросает."""
    started = time.perf_counter()
    envelope: Envelope | None = None
    try:
        envelope = await build_envelope(raw, ctx.downloader)

        if envelope.sender != ctx.settings.allowed_whatsapp:
            MESSAGES_DROPPED.inc()
            logger.warning("⚠️ Номер не авторизован, сообщение проигнорировано")
            logger.debug("⚠️ Неавторизованный номер: %s", envelope.sender)
            return

        user = await ctx.repo.get_user_by_phone(envelope.sender)
        if user is None:
            await ctx.sender.send_text(envelope.sender, responder.USER_NOT_FOUND)
            return

        if envelope.kind is MessageKind.TEXT and envelope.text:
            intent = await classify_intent(ctx.llm, envelope.text)
        else:
            # медиа – всегда попытка создать лансаменто
            intent = IntentResult(intent=Intent.CREATE_TRANSACTION, confidence=1.0)

        logger.info("🚦 %s → %s (%.2f)", envelope.kind.value, intent.intent.value, intent.confidence)
        await HANDLERS.get(intent.intent, handle_unknown)(ctx, envelope, user, intent)
        MESSAGES_HANDLED.labels(intent.intent.value).inc()

    except Exception as exc:  # noqa: BLE001 – единственный guard конвейера
        MESSAGES_FAILED.inc()
        logger.exception("💥 Ошибка обработки сообщения %s: %s", raw.get("id"), exc)
        sentry_capture(
            exc,
            extras={
                "message_id": raw.get("id"),
                "kind": envelope.kind.value if envelope else raw.get("type"),
            },
        )
        await _reply_error(ctx, envelope, raw, exc)
    finally:
        PROCESSING_TIME.observe(time.perf_counter() - started)


async def _reply_error(
    ctx: AppContext, envelope: Envelope | None, raw: Mapping[str, Any], exc: BaseException
) -> None:
    to = envelope.sender if envelope else normalize_phone_e164(raw.get("from", ""))
    # чужим номерам не отвечаем даже об ошибке
    if not to or to != ctx.settings.allowed_whatsapp:
        return
    try:
        await ctx.sender.send_text(to, responder.format_error_message(exc))
    except Exception as send_exc:  # noqa: BLE001 – только лог
        logger.error("💥 Не удалось отправить сообщение об ошибке: %s", send_exc)
