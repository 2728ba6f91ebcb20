# libs/persistence.py
"""Запись лансаменто: сначала проверка обязательных полей, потом единственная вставка."""
from __future__ import annotations

import logging
from typing import Optional

from libs.errors import TransactionValidationError
from libs.models import NormalizedTransaction, PersistedTransaction
from libs.repository import Repository

__all__ = ["create_transaction", "validate_required"]

logger = logging.getLogger(__name__)


def validate_required(record: NormalizedTransaction, bank_id: Optional[int]) -> None:
    # Порядок проверок фиксирован: первое отсутствующее поле и попадает в сообщение.
    if not bank_id:
        raise TransactionValidationError("id_banco")
    if record.valor is None:  # 0 – допустимая сумма
        raise TransactionValidationError("valor")
    if not record.descricao or not record.descricao.strip():
        raise TransactionValidationError("descricao")
    if record.data_competencia is None:
        raise TransactionValidationError("data_competencia")


async def create_transaction(
    repo: Repository,
    user_id: str,
    record: NormalizedTransaction,
    bank_id: Optional[int],
    category_id: Optional[int],
) -> PersistedTransaction:
    validate_required(record, bank_id)

    values = {
        "descricao": record.descricao.strip(),
        "valor": record.valor,
        "tipo_lancamento": record.tipo_lancamento.value,
        "data_lancamento": record.data_competencia,
        "data_competencia": record.data_competencia,
        "data_pagamento": record.data_pagamento,
        "data_vencimento": record.data_vencimento,
        "id_banco": bank_id,
        "id_categoria": category_id,
    }
    logger.debug("DB insert для %s: %s", user_id, values)
    saved = await repo.insert_transaction(values)
    logger.info("✅ Лансаменто создан: id=%s, %s R$ %s", saved.id, saved.tipo_lancamento.value, saved.valor)
    return saved
