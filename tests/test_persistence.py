# tests/test_persistence.py
from datetime import date
from decimal import Decimal

import pytest

from libs.errors import TransactionValidationError
from libs.models import NormalizedTransaction, PersistedTransaction, TxnType
from libs.persistence import create_transaction

pytestmark = pytest.mark.asyncio


def _record(**overrides) -> NormalizedTransaction:
    data = dict(
        tipo_lancamento=TxnType.DESPESA,
        descricao="Mercado",
        valor=Decimal("50"),
        data_competencia=date(2026, 10, 19),
    )
    data.update(overrides)
    return NormalizedTransaction(**data)


def _saved(values: dict) -> PersistedTransaction:
    return PersistedTransaction(id=101, **values)


async def test_inserts_with_lancamento_date_equal_to_competencia(repo):
    repo.insert_transaction.side_effect = _saved

    saved = await create_transaction(repo, "u-1", _record(data_vencimento=date(2026, 10, 25)), 3, 7)

    values = repo.insert_transaction.await_args.args[0]
    assert values["data_lancamento"] == values["data_competencia"] == date(2026, 10, 19)
    assert values["tipo_lancamento"] == "despesa"
    assert values["id_banco"] == 3 and values["id_categoria"] == 7
    assert values["data_vencimento"] == date(2026, 10, 25)
    assert values["data_pagamento"] is None
    assert saved.id == 101


async def test_zero_amount_is_valid(repo):
    repo.insert_transaction.side_effect = _saved

    saved = await create_transaction(repo, "u-1", _record(valor=Decimal("0")), 3, None)

    assert saved.valor == Decimal("0")
    assert saved.id_categoria is None


@pytest.mark.parametrize(
    "record, bank_id, field",
    [
        (_record(), None, "id_banco"),
        (_record(), 0, "id_banco"),
        (_record(valor=None), 3, "valor"),
        (_record(descricao="   "), 3, "descricao"),
        # первое отсутствующее поле по порядку проверки
        (_record(valor=None, descricao=""), None, "id_banco"),
    ],
)
async def test_validation_fails_before_any_write(repo, record, bank_id, field):
    with pytest.raises(TransactionValidationError) as info:
        await create_transaction(repo, "u-1", record, bank_id, 7)

    assert info.value.field == field
    assert str(info.value) == f"{field} é obrigatório."
    repo.insert_transaction.assert_not_awaited()
