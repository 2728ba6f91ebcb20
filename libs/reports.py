# libs/reports.py
"""
Отчёт «Fluxo de Caixa» за месяц.

1. :func:`parse_period` – месяц из свободного текста (``março``,
   ``setembro de 2024``, ``09/2024``, ``9-2024``), по умолчанию текущий.
2. :func:`build_cashflow` – переходящий остаток (saldo_inicial банков +
   оплаченные движения до начала месяца), приход/расход по дням и
   накопленный остаток (pandas).
3. :func:`render_cashflow_chart` – plotly → PNG (kaleido) для отправки картинкой.

Дата движения: ``data_pagamento``, иначе ``data_competencia``.
"""
from __future__ import annotations

import calendar
import logging
import re
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Sequence

import pandas as pd
import plotly.graph_objects as go

from libs.clock import Clock
from libs.models import Bank, LedgerEntry, TxnType
from libs.responder import format_currency

__all__ = [
    "MONTHS_PT",
    "parse_period",
    "month_label",
    "CashflowReport",
    "build_cashflow",
    "cashflow_caption",
    "empty_cashflow_message",
    "render_cashflow_chart",
]

logger = logging.getLogger(__name__)

MONTHS_PT = (
    "janeiro", "fevereiro", "março", "abril", "maio", "junho",
    "julho", "agosto", "setembro", "outubro", "novembro", "dezembro",
)
_NUMERIC_RE = re.compile(r"(\d{1,2})[/-](\d{4})")


# ---------- Период ----------
def _month_bounds(year: int, month: int) -> tuple[date, date]:
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


def parse_period(text: str, clock: Clock) -> tuple[date, date]:
    """Первый и последний день месяца, упомянутого в тексте."""
    texto = (text or "").lower().strip()
    today = clock.today()

    for idx, name in enumerate(MONTHS_PT, start=1):
        if name not in texto:
            continue
        year_match = re.search(rf"{name}\s*(?:de\s*)?(\d{{4}})", texto)
        year = int(year_match.group(1)) if year_match else today.year
        logger.info("📅 Период: %s/%s", name, year)
        return _month_bounds(year, idx)

    numeric = _NUMERIC_RE.search(texto)
    if numeric:
        month, year = int(numeric.group(1)), int(numeric.group(2))
        if 1 <= month <= 12:
            logger.info("📅 Период (числом): %02d/%s", month, year)
            return _month_bounds(year, month)

    logger.info("📅 Период не указан → текущий месяц")
    return _month_bounds(today.year, today.month)


def month_label(start: date) -> str:
    """``date(2024, 9, 1)`` → ``"setembro/2024"``."""
    return f"{MONTHS_PT[start.month - 1]}/{start.year}"


# ---------- Расчёт ----------
@dataclass
class CashflowReport:
    start: date
    end: date
    carry_over: Decimal
    daily: pd.DataFrame  # dia, receitas, despesas, saldo
    receitas: Decimal
    despesas: Decimal
    count: int

    @property
    def saldo(self) -> Decimal:
        return self.receitas - self.despesas


def _signed(entry: LedgerEntry) -> Decimal:
    return entry.valor if entry.tipo_lancamento is TxnType.RECEITA else -entry.valor


def build_cashflow(
    entries: Sequence[LedgerEntry],
    banks: Sequence[Bank],
    start: date,
    end: date,
) -> CashflowReport:
    saldo_inicial = sum((b.saldo_inicial for b in banks), Decimal("0"))
    # только оплаченные движения до начала месяца
    anteriores = sum(
        (_signed(e) for e in entries if e.data_pagamento is not None and e.data_pagamento < start),
        Decimal("0"),
    )
    carry_over = saldo_inicial + anteriores
    logger.info(
        "📦 Переходящий остаток: %s (saldo_inicial %s + anteriores %s)",
        carry_over, saldo_inicial, anteriores,
    )

    no_mes = [e for e in entries if start <= e.cash_date <= end]
    receitas = sum((e.valor for e in no_mes if e.tipo_lancamento is TxnType.RECEITA), Decimal("0"))
    despesas = sum((e.valor for e in no_mes if e.tipo_lancamento is TxnType.DESPESA), Decimal("0"))

    days = pd.date_range(start, end, freq="D").date
    daily = pd.DataFrame({"dia": days})
    if no_mes:
        df = pd.DataFrame(
            {
                "dia": [e.cash_date for e in no_mes],
                "receitas": [float(e.valor) if e.tipo_lancamento is TxnType.RECEITA else 0.0 for e in no_mes],
                "despesas": [float(e.valor) if e.tipo_lancamento is TxnType.DESPESA else 0.0 for e in no_mes],
            }
        )
        grouped = df.groupby("dia")[["receitas", "despesas"]].sum().reset_index()
        daily = daily.merge(grouped, on="dia", how="left")
    else:
        daily["receitas"] = 0.0
        daily["despesas"] = 0.0
    daily[["receitas", "despesas"]] = daily[["receitas", "despesas"]].fillna(0.0)
    daily["saldo"] = float(carry_over) + (daily["receitas"] - daily["despesas"]).cumsum()

    return CashflowReport(
        start=start,
        end=end,
        carry_over=carry_over,
        daily=daily,
        receitas=receitas,
        despesas=despesas,
        count=len(no_mes),
    )


# ---------- Тексты ----------
def empty_cashflow_message(start: date) -> str:
    return (
        f"📊 *Fluxo de Caixa - {month_label(start)}*\n\n"
        "Não foram encontrados lançamentos neste período."
    )


def cashflow_caption(report: CashflowReport, clock: Clock) -> str:
    saldo = report.saldo
    emoji, texto = ("✅", "Positivo") if saldo >= 0 else ("❌", "Negativo")
    return (
        f"📊 *Fluxo de Caixa - {month_label(report.start)}*\n\n"
        "💰 *Resumo Financeiro:*\n"
        f"├─ 💚 Receitas: {format_currency(report.receitas)}\n"
        f"├─ 💸 Despesas: {format_currency(report.despesas)}\n"
        f"└─ {emoji} Saldo: {format_currency(abs(saldo))} ({texto})\n\n"
        f"📈 Total de lançamentos: {report.count}\n\n"
        f"_Gráfico gerado em {clock.now().strftime('%d/%m/%Y %H:%M')}_"
    )


# ---------- График ----------
def render_cashflow_chart(report: CashflowReport) -> bytes:
    """PNG: столбцы прихода/расхода по дням + линия накопленного остатка.

    Блокирующий вызов (kaleido) – из async-кода звать через ``asyncio.to_thread``.
    """
    daily = report.daily
    if daily.empty:
        raise ValueError("Não há dados suficientes para gerar o gráfico neste período.")

    labels = [d.strftime("%d/%m") for d in daily["dia"]]
    fig = go.Figure()
    fig.add_trace(
        go.Bar(x=labels, y=daily["receitas"], name="Receitas (Entradas)", marker_color="rgba(34, 197, 94, 0.8)")
    )
    fig.add_trace(
        go.Bar(x=labels, y=daily["despesas"], name="Gastos (Saídas)", marker_color="rgba(239, 68, 68, 0.8)")
    )
    fig.add_trace(
        go.Scatter(
            x=labels,
            y=daily["saldo"],
            name="Saldo Acumulado",
            mode="lines+markers",
            line={"color": "rgb(59, 130, 246)", "width": 4, "shape": "spline"},
        )
    )
    fig.update_layout(
        title_text=f"Fluxo Diário do Mês<br><sup>Gastos por dia e saldo acumulado - {month_label(report.start)}</sup>",
        barmode="group",
        xaxis_tickangle=-45,
        legend={"orientation": "h", "y": -0.2},
        template="plotly_white",
        width=800,
        height=600,
    )
    return fig.to_image(format="png", scale=2)
