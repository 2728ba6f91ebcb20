# libs/responder.py
"""Тексты ответов пользователю (pt-BR) и форматирование BRL/дат.

Только сборка строк – отправка живёт в :mod:`libs.whatsapp`.
"""
from __future__ import annotations

from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Sequence, Union

from libs.errors import NoBankConfiguredError, ProviderUnavailableError
from libs.models import Bank, Category, LedgerEntry, NormalizedTransaction, PersistedTransaction, TxnType

__all__ = [
    "format_currency",
    "format_date",
    "confirmation_message",
    "needs_fix_message",
    "greeting_message",
    "open_entries_message",
    "format_error_message",
    "UNSUPPORTED_MESSAGE",
    "USER_NOT_FOUND",
    "NO_BANK_CONFIGURED",
    "DRE_NOT_IMPLEMENTED",
    "UNKNOWN_INTENT",
]

UNSUPPORTED_MESSAGE = (
    "❌ Tipo de mensagem não suportado. Envie texto, imagem, áudio ou PDF com "
    "informações do lançamento."
)
USER_NOT_FOUND = "❌ Usuário não encontrado.\n\nPor favor, cadastre seu número no ConectFin primeiro."
NO_BANK_CONFIGURED = (
    "❌ Você ainda não tem nenhum banco configurado no ConectFin.\n\n"
    "Por favor:\n"
    "1. Acesse o sistema\n"
    "2. Cadastre pelo menos um banco\n"
    "3. Defina um como principal (opcional)\n\n"
    "Após isso, pode usar o WhatsApp normalmente! 🙂"
)
DRE_NOT_IMPLEMENTED = (
    "📈 *DRE (Demonstração do Resultado)*\n\n"
    "Esta funcionalidade será implementada em breve! 🚧\n\n"
    "Por enquanto, você pode:\n"
    "• Criar lançamentos\n"
    "• Ver contas a pagar/receber"
)
UNKNOWN_INTENT = (
    "🤔 Desculpe, não entendi sua solicitação.\n\n"
    "Posso ajudar você a:\n"
    "• Registrar despesas e receitas\n"
    "• Ver contas a pagar\n"
    "• Ver contas a receber\n\n"
    "Tente reformular ou digite 'ajuda' para mais informações."
)

GENERIC_ERROR = "❌ Não consegui processar sua mensagem agora. Pode tentar novamente?"
AUTH_ERROR = "❌ Erro de configuração do WhatsApp. Entre em contato com o suporte."
OVERLOAD_ERROR = (
    "🤖 A IA está temporariamente sobrecarregada.\n\n"
    "⏱️ Tente novamente em alguns minutos.\n\n"
    "Obrigado pela paciência! 😊"
)

_CENT = Decimal("0.01")


# ---------- Форматирование ----------
def format_currency(value: Union[Decimal, int, float, None]) -> str:
    """``Decimal("1234.5")`` → ``"R$ 1.234,50"``."""
    amount = Decimal(str(value or 0)).quantize(_CENT, rounding=ROUND_HALF_UP)
    sign = "-" if amount < 0 else ""
    # 1,234.50 → 1.234,50
    body = f"{abs(amount):,.2f}".replace(",", "_").replace(".", ",").replace("_", ".")
    return f"{sign}R$ {body}"


def format_date(value: Optional[date]) -> str:
    return value.strftime("%d/%m/%Y") if value else "-"


# ---------- Лансаменто ----------
def confirmation_message(
    saved: PersistedTransaction,
    record: NormalizedTransaction,
    category: Optional[Category],
    bank: Optional[Bank],
) -> str:
    tipo = "💰 Receita" if saved.tipo_lancamento is TxnType.RECEITA else "💸 Despesa"
    categoria = category.nome if category else "Sem categoria"
    banco = bank.nome_banco if bank else "N/A"
    if bank and bank.is_principal:
        banco += " ⭐"

    lines = [
        "✅ Lançamento criado!",
        "",
        f"• *Tipo:* {tipo}",
        f"• *Descrição:* {saved.descricao or '-'}",
        f"• *Valor:* {format_currency(record.valor) if record.valor is not None else '(sem valor)'}",
        f"• *Data:* {format_date(saved.data_competencia)}",
    ]
    if saved.data_pagamento:
        lines.append(f"• *Data pagamento:* {format_date(saved.data_pagamento)}")
    if saved.data_vencimento:
        lines.append(f"• *Data vencimento:* {format_date(saved.data_vencimento)}")
    lines += [
        f"• *Categoria:* {categoria}",
        f"• *Banco:* {banco}",
        "",
        f"_ID: {saved.id}_",
    ]
    return "\n".join(lines)


def needs_fix_message(
    missing: Sequence[str],
    suggestions: Sequence[str],
    *,
    from_document: bool = False,
) -> str:
    faltando = ", ".join(missing)
    sugestao = " ".join(suggestions)
    if from_document:
        return (
            "📄 Documento processado, mas faltam informações:\n\n"
            f"❌ Faltando: {faltando}\n\n"
            f"💡 {sugestao}\n\n"
            "Você pode:\n"
            "• Reenviar um documento mais claro\n"
            "• Digitar as informações manualmente"
        )
    return (
        "❌ Informações incompletas!\n\n"
        f"Faltando: {faltando}\n\n"
        f"Sugestão: {sugestao}\n\n"
        "Tente novamente com mais detalhes."
    )


def greeting_message(first_name: Optional[str]) -> str:
    hello = f"Olá, {first_name}! 👋" if first_name else "Olá! 👋"
    return (
        f"{hello}\n\n"
        "Sou o assistente do ConectFin. Posso ajudar você a:\n\n"
        "💰 *Registrar lançamentos*\n"
        "• \"Paguei R$ 50 de mercado\"\n"
        "• \"Recebi R$ 1000 do cliente X\"\n"
        "• Envie foto de nota fiscal\n"
        "• Envie áudio descrevendo a despesa\n\n"
        "📊 *Visualizar relatórios*\n"
        "• \"Mostra o fluxo de caixa\"\n"
        "• \"Ver DRE\"\n"
        "• \"Contas a pagar\"\n"
        "• \"Contas a receber\"\n\n"
        "Como posso ajudar você hoje? 😊"
    )


# ---------- Отчёты ----------
def open_entries_message(entries: Sequence[LedgerEntry], tipo: TxnType) -> str:
    """Список «contas a pagar» (despesa) или «contas a receber» (receita)."""
    if not entries:
        if tipo is TxnType.DESPESA:
            return "✅ *Contas a Pagar*\n\nParabéns! Você não tem despesas pendentes no momento. 🎉"
        return "📊 *Contas a Receber*\n\nVocê não tem receitas pendentes no momento."

    header = "💸 *Contas a Pagar*" if tipo is TxnType.DESPESA else "💰 *Contas a Receber*"
    total = sum((e.valor for e in entries), Decimal("0"))

    parts = [f"{header} ({len(entries)})\n"]
    for idx, entry in enumerate(entries, start=1):
        vencimento = (
            f"Venc: {format_date(entry.data_vencimento)}" if entry.data_vencimento else "Sem vencimento"
        )
        parts.append(
            f"{idx}. {entry.descricao}\n"
            f"   {format_currency(entry.valor)} • {vencimento}\n"
            f"   📂 {entry.categoria_nome or 'Sem categoria'} • 🏦 {entry.banco_nome or 'N/A'}\n"
        )
    parts.append("━━━━━━━━━━━━━━━━")
    parts.append(f"💰 *Total:* {format_currency(total)}")
    return "\n".join(parts)


# ---------- Ошибки ----------
def format_error_message(exc: BaseException) -> str:
    """Исключение → общий ответ пользователю (по подстроке в тексте ошибки)."""
    if isinstance(exc, NoBankConfiguredError):
        return NO_BANK_CONFIGURED
    if isinstance(exc, ProviderUnavailableError):
        return OVERLOAD_ERROR

    message = str(exc)
    if any(marker in message for marker in ("503", "overloaded", "temporariamente indisponível")):
        return OVERLOAD_ERROR
    if "401" in message:
        return AUTH_ERROR
    return GENERIC_ERROR
