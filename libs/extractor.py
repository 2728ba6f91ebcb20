# libs/extractor.py
"""
Извлечение полей лансаменто из сообщения любого типа.

Точка входа: extract_candidate(llm, envelope, clock) -> TransactionCandidate

* text     – один проход парсера;
* image    – картинка inline + подпись;
* audio    – аудио inline;
* document – PDF: текст через pdfplumber → резюме (1 вызов) → финальный
  проход с резюме и исходным текстом. Любой сбой в PDF-ветке превращается в
  заранее заготовленный кандидат «введите вручную». Не-PDF – как текст подписи.
"""
from __future__ import annotations

import asyncio
import hashlib
import io
import logging
from typing import Optional

import diskcache
import pdfplumber

from libs import prompts
from libs.clock import Clock
from libs.errors import UnsupportedMessageError
from libs.llm import FallbackChain, Part, parse_model_json
from libs.models import Envelope, MessageKind, TransactionCandidate

__all__ = [
    "extract_candidate",
    "extract_from_text",
    "extract_from_image",
    "extract_from_audio",
    "extract_from_pdf",
    "extract_pdf_text",
    "analyze_document",
    "manual_entry_candidate",
]

logger = logging.getLogger(__name__)

PDF_TEXT_LIMIT = 2000
DOCUMENT_ANALYSIS_FAILED = "Não foi possível analisar o documento automaticamente."


async def extract_from_text(llm: FallbackChain, text: str, today_iso: str) -> TransactionCandidate:
    logger.info("📝 Текст: %r", text[:60])
    answer = await llm.complete(
        prompts.PARSER,
        [Part.from_text(f'NOW_ISO="{today_iso}", text="{text}"')],
    )
    return parse_model_json(answer, TransactionCandidate)


async def extract_from_image(
    llm: FallbackChain,
    data: bytes,
    mime_type: Optional[str],
    caption: str,
    today_iso: str,
) -> TransactionCandidate:
    logger.info("🖼️ Картинка: %s байт", len(data))
    answer = await llm.complete(
        prompts.PARSER,
        [
            Part.inline(data, mime_type or "image/jpeg"),
            Part.from_text(
                f'NOW_ISO="{today_iso}"\n'
                f"Legenda: {caption or '(sem)'}\n"
                "A imagem pode ser nota fiscal, comprovante, fatura ou foto de anotação "
                "escrita à mão. Extraia os campos."
            ),
        ],
    )
    return parse_model_json(answer, TransactionCandidate)


async def extract_from_audio(
    llm: FallbackChain,
    data: bytes,
    mime_type: Optional[str],
    today_iso: str,
) -> TransactionCandidate:
    logger.info("🎵 Аудио: %s байт", len(data))
    answer = await llm.complete(
        prompts.PARSER,
        [
            Part.inline(data, mime_type or "audio/ogg"),
            Part.from_text(f'NOW_ISO="{today_iso}"\nExtraia os campos do áudio acima.'),
        ],
    )
    return parse_model_json(answer, TransactionCandidate)


def extract_pdf_text(data: bytes) -> str:
    """Текст всех страниц PDF (пустая строка, если текста нет)."""
    with pdfplumber.open(io.BytesIO(data)) as pdf:
        pages = [page.extract_text() or "" for page in pdf.pages]
    return "\n".join(pages).strip()


async def analyze_document(
    llm: FallbackChain,
    document_text: str,
    cache: Optional[diskcache.Cache] = None,
) -> str:
    """Первый проход: свободное резюме документа. Не бросает."""
    cache_key = "doc:" + hashlib.sha256(document_text.encode()).hexdigest()
    if cache is not None and cache_key in cache:
        logger.debug("Резюме документа взято из кеша")
        return cache[cache_key]  # type: ignore[return-value]

    try:
        analysis = await llm.complete(
            prompts.DOCUMENT_ANALYZER,
            [Part.from_text(prompts.document_analysis_request(document_text))],
        )
    except Exception as exc:  # noqa: BLE001
        logger.error("❌ Анализ документа не удался: %s", exc)
        return DOCUMENT_ANALYSIS_FAILED

    if cache is not None:
        cache[cache_key] = analysis
    logger.info("✅ Резюме документа: %s…", analysis[:200])
    return analysis


def manual_entry_candidate(today_iso: str) -> TransactionCandidate:
    """Заготовка для нечитаемого PDF: просим пользователя ввести руками."""
    return TransactionCandidate(
        descricao="Documento não processado",
        valor=None,
        tipo_lancamento=None,
        data_competencia=today_iso,
        data_pagamento=None,
        data_vencimento=None,
        categoria_sugerida=None,
        needs_fix=True,
        missing=["valor", "tipo_lancamento", "descricao"],
        confidence=0.0,
        suggestions=[
            "Não foi possível processar o documento automaticamente. Por favor, digite as "
            "informações manualmente: 'Paguei R$ [valor] de [descrição] em [data]'"
        ],
    )


async def extract_from_pdf(
    llm: FallbackChain,
    data: bytes,
    today_iso: str,
    cache: Optional[diskcache.Cache] = None,
) -> TransactionCandidate:
    logger.info("📄 PDF: %s байт", len(data))
    try:
        text = await asyncio.to_thread(extract_pdf_text, data)
        if not text:
            raise ValueError("PDF não contém texto legível")
        logger.info("📄 Извлечено %s символов", len(text))

        analysis = await analyze_document(llm, text, cache)
        answer = await llm.complete(
            prompts.PARSER,
            [
                Part.from_text(
                    f'NOW_ISO="{today_iso}"\n\n'
                    f"ANÁLISE DO DOCUMENTO:\n{analysis}\n\n"
                    f"TEXTO ORIGINAL:\n{text[:PDF_TEXT_LIMIT]}\n\n"
                    "Com base na análise acima, extraia os dados financeiros e retorne "
                    "APENAS o JSON no formato especificado."
                )
            ],
        )
        return parse_model_json(answer, TransactionCandidate)
    except Exception as exc:  # noqa: BLE001 – для PDF это штатная деградация
        logger.warning("⚠️ PDF не обработан (%s) → просим ввести вручную", exc)
        return manual_entry_candidate(today_iso)


async def extract_candidate(
    llm: FallbackChain,
    envelope: Envelope,
    clock: Clock,
    cache: Optional[diskcache.Cache] = None,
) -> TransactionCandidate:
    """Выбирает вариант извлечения по типу сообщения."""
    today_iso = clock.today_iso()
    kind = envelope.kind
    media = envelope.media

    if kind is MessageKind.TEXT and envelope.text:
        return await extract_from_text(llm, envelope.text, today_iso)

    if kind is MessageKind.IMAGE and media is not None:
        return await extract_from_image(
            llm, media.data, media.mime_type, envelope.caption or envelope.text, today_iso
        )

    if kind is MessageKind.AUDIO and media is not None:
        return await extract_from_audio(llm, media.data, media.mime_type, today_iso)

    if kind is MessageKind.DOCUMENT and media is not None:
        if "pdf" in (media.mime_type or "").lower():
            return await extract_from_pdf(llm, media.data, today_iso, cache)
        logger.info("📄 Не-PDF документ → разбираем как текст")
        return await extract_from_text(llm, envelope.fallback_text or "Documento enviado", today_iso)

    if kind in (MessageKind.IMAGE, MessageKind.AUDIO, MessageKind.DOCUMENT) and envelope.fallback_text:
        # Медиа не скачалось – остаётся только подпись
        logger.warning("⚠️ %s без медиа → разбираем только подпись", kind.value)
        return await extract_from_text(llm, envelope.fallback_text, today_iso)

    raise UnsupportedMessageError(f"Tipo de mensagem não suportado: {kind.value}")
