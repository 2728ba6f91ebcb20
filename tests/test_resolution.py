# tests/test_resolution.py
from datetime import datetime, timezone

import pytest

from libs import prompts
from libs.errors import NoBankConfiguredError
from libs.models import Bank, Category, TxnType
from libs.resolution import match_category, resolve_category, resolve_default_bank


async def test_principal_bank_is_preferred(repo, principal_bank):
    repo.get_principal_bank.return_value = principal_bank

    bank = await resolve_default_bank(repo, "u-1")

    assert bank is principal_bank
    repo.get_latest_bank.assert_not_awaited()


async def test_most_recent_bank_when_no_principal(repo):
    latest = Bank(
        id=5, user_id="u-1", nome_banco="Inter",
        created_at=datetime(2026, 10, 1, tzinfo=timezone.utc),
    )
    repo.get_principal_bank.return_value = None
    repo.get_latest_bank.return_value = latest

    assert await resolve_default_bank(repo, "u-1") is latest


async def test_no_bank_is_an_explicit_condition(repo):
    repo.get_principal_bank.return_value = None
    repo.get_latest_bank.return_value = None

    with pytest.raises(NoBankConfiguredError):
        await resolve_default_bank(repo, "u-1")


async def test_no_categories_resolves_to_none(llm, repo):
    repo.list_categories.return_value = []

    assert await resolve_category(llm, repo, "u-1", TxnType.DESPESA, "Mercado") is None
    llm.complete.assert_not_awaited()


async def test_no_suggestion_takes_first(llm, repo, categories):
    repo.list_categories.return_value = categories

    chosen = await resolve_category(llm, repo, "u-1", TxnType.DESPESA, None)

    assert chosen is categories[0]
    llm.complete.assert_not_awaited()


async def test_model_choice_is_matched_case_insensitively(llm, repo, categories):
    repo.list_categories.return_value = categories
    llm.complete.return_value = '"TRANSPORTE"\n'

    chosen = await resolve_category(llm, repo, "u-1", TxnType.DESPESA, "uber")

    assert chosen.id == 9
    system, parts = llm.complete.await_args.args
    assert system == prompts.CATEGORY_CLASSIFIER
    assert parts[0].text == (
        "categoria_sugerida: uber\n\ncategorias_existentes: Mercado, Alimentação, Transporte"
    )
    repo.list_categories.assert_awaited_once_with("u-1", TxnType.DESPESA)


async def test_accent_mismatch_falls_back_to_first(llm, repo):
    categories = [
        Category(id=1, user_id="u-1", nome="Moradia", tipo_lancamento=TxnType.DESPESA),
        Category(id=2, user_id="u-1", nome="alimentacao", tipo_lancamento=TxnType.DESPESA),
    ]
    repo.list_categories.return_value = categories
    llm.complete.return_value = "Alimentação"

    chosen = await resolve_category(llm, repo, "u-1", TxnType.DESPESA, "Alimentação")

    assert chosen.id == 1


@pytest.mark.parametrize("answer", ["Lazer", "", "Mercado e Alimentação", "categoria: Mercado"])
async def test_result_is_always_a_fetched_category(llm, repo, categories, answer):
    repo.list_categories.return_value = categories
    llm.complete.return_value = answer

    chosen = await resolve_category(llm, repo, "u-1", TxnType.DESPESA, "qualquer")

    assert chosen in categories
    assert chosen is categories[0]


async def test_classifier_failure_falls_back_to_first(llm, repo, categories):
    repo.list_categories.return_value = categories
    llm.complete.side_effect = RuntimeError("overloaded")

    assert await resolve_category(llm, repo, "u-1", TxnType.DESPESA, "Mercado") is categories[0]


def test_match_category_strips_quotes(categories):
    assert match_category("  'alimentação' ", categories).id == 8
    assert match_category("Alimentacao", categories) is None
