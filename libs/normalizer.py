# libs/normalizer.py
"""Единственная граница нормализации: кандидат → полностью заполненная запись.

Чистая функция, без I/O. «Сегодня» приходит из переданных часов.
"""
from __future__ import annotations

from datetime import date, datetime, time
from typing import Optional

from dateutil.parser import isoparse, parse

from libs.clock import Clock
from libs.decimal_utils import coerce_amount
from libs.models import NormalizedTransaction, TransactionCandidate, TxnType

__all__ = ["normalize_candidate", "parse_date", "DESCRIPTION_LIMIT"]

DESCRIPTION_LIMIT = 140


def parse_date(value: Optional[str], clock: Clock) -> Optional[date]:
    """ISO `YYYY-MM-DD` от модели; всё прочее – в pt-BR порядке (день первым).

    Недостающие год/месяц (`"10/01"`) берутся из часов, а не из системного времени.
    """
    if not value:
        return None
    try:
        return isoparse(value).date()
    except ValueError:
        pass
    try:
        return parse(value, dayfirst=True, default=datetime.combine(clock.today(), time())).date()
    except (ValueError, OverflowError):
        return None


def normalize_candidate(
    candidate: TransactionCandidate,
    fallback_text: str,
    clock: Clock,
) -> NormalizedTransaction:
    """
    Дефолты:
    * нет типа → ``despesa``;
    * нет описания → первые 140 символов подписи/текста;
    * сумма → Decimal или ``None``;
    * нет (или нечитаемая) даты компетенции → сегодня в таймзоне часов;
    * остальные даты → ``None``, если их нет или они нечитаемы.
    """
    descricao = (candidate.descricao or "").strip() or fallback_text[:DESCRIPTION_LIMIT]

    return NormalizedTransaction(
        tipo_lancamento=candidate.tipo_lancamento or TxnType.DESPESA,
        descricao=descricao,
        valor=coerce_amount(candidate.valor),
        data_competencia=parse_date(candidate.data_competencia, clock) or clock.today(),
        data_pagamento=parse_date(candidate.data_pagamento, clock),
        data_vencimento=parse_date(candidate.data_vencimento, clock),
        categoria_sugerida=candidate.categoria_sugerida,
        needs_fix=candidate.needs_fix,
        missing=list(candidate.missing),
        suggestions=list(candidate.suggestions),
        confidence=candidate.confidence,
    )
