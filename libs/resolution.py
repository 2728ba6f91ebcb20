# libs/resolution.py
"""
Разрешение ссылок лансаменто: банк по умолчанию и категория.

* Банк: ⭐ principal → самый свежий → :class:`NoBankConfiguredError`.
* Категория: модель выбирает *имя* из списка существующих, код сверяет его
  (casefold, без нормализации акцентов). Всё, что не совпало, – первая
  категория списка. Результат всегда из полученного списка.
"""
from __future__ import annotations

import logging
from typing import Optional

from libs import prompts
from libs.errors import NoBankConfiguredError
from libs.llm import FallbackChain, Part
from libs.models import Bank, Category, TxnType
from libs.repository import Repository

__all__ = ["resolve_default_bank", "resolve_category", "match_category"]

logger = logging.getLogger(__name__)

_QUOTES = "\"'`“”‘’"


async def resolve_default_bank(repo: Repository, user_id: str) -> Bank:
    bank = await repo.get_principal_bank(user_id)
    if bank is not None:
        logger.info("🏦 Банк ⭐ principal: %s (id=%s)", bank.nome_banco, bank.id)
        return bank

    bank = await repo.get_latest_bank(user_id)
    if bank is not None:
        logger.info("🏦 Principal нет → самый свежий банк: %s (id=%s)", bank.nome_banco, bank.id)
        return bank

    raise NoBankConfiguredError(
        "Nenhum banco cadastrado. Cadastre um banco no sistema antes de registrar lançamentos."
    )


def match_category(answer: str, categories: list[Category]) -> Optional[Category]:
    """Точное совпадение без учёта регистра. «Alimentação» ≠ «alimentacao»."""
    wanted = answer.strip().strip(_QUOTES).strip().casefold()
    for category in categories:
        if category.nome.casefold() == wanted:
            return category
    return None


async def resolve_category(
    llm: FallbackChain,
    repo: Repository,
    user_id: str,
    tipo: TxnType,
    suggested: Optional[str],
) -> Optional[Category]:
    categories = await repo.list_categories(user_id, tipo)
    if not categories:
        logger.warning("⚠️ Нет категорий (%s) у пользователя %s", tipo.value, user_id)
        return None

    first = categories[0]
    if not suggested:
        return first

    names = ", ".join(c.nome for c in categories)
    try:
        answer = await llm.complete(
            prompts.CATEGORY_CLASSIFIER,
            [Part.from_text(f"categoria_sugerida: {suggested}\n\ncategorias_existentes: {names}")],
        )
    except Exception as exc:  # noqa: BLE001 – категория не критична
        logger.error("❌ Классификация категории не удалась: %s", exc)
        return first

    chosen = match_category(answer, categories)
    if chosen is None:
        logger.info("Категория %r не найдена среди существующих → %r", answer, first.nome)
        return first

    logger.info("✅ Категория: %s (id=%s)", chosen.nome, chosen.id)
    return chosen
