# tests/test_intent.py
import pytest

from libs import prompts
from libs.errors import ProviderUnavailableError
from libs.intent import classify_intent
from libs.models import Intent

pytestmark = pytest.mark.asyncio


async def test_classifies_cashflow_request(llm):
    llm.complete.return_value = (
        '{"intent": "view_cashflow", "confidence": 0.93, "extracted_info": "setembro de 2024"}'
    )

    result = await classify_intent(llm, "mostra o fluxo de caixa de setembro de 2024")

    assert result.intent is Intent.VIEW_CASHFLOW
    assert result.confidence == pytest.approx(0.93)
    assert result.extracted_info == "setembro de 2024"
    system, parts = llm.complete.await_args.args
    assert system == prompts.INTENT_CLASSIFIER
    assert parts[0].text == 'Mensagem do usuário: "mostra o fluxo de caixa de setembro de 2024"'


@pytest.mark.parametrize(
    "behaviour",
    [
        {"side_effect": ProviderUnavailableError("503")},
        {"side_effect": RuntimeError("boom")},
        {"return_value": "desculpe, não entendi"},
        {"return_value": '{"intent": "delete_everything", "confidence": 0.99}'},
        {"return_value": '{"intent": "greeting", "confidence": 7}'},
    ],
)
async def test_never_raises_and_falls_back_to_unknown(llm, behaviour):
    llm.complete.configure_mock(**behaviour)

    result = await classify_intent(llm, "???")

    assert result.intent is Intent.UNKNOWN
    assert result.confidence == 0.0
    assert result.extracted_info == ""


async def test_intent_label_case_and_spaces_are_ignored(llm):
    llm.complete.return_value = '{"intent": " View_Cashflow ", "confidence": 0.8}'

    result = await classify_intent(llm, "quero ver o fluxo de caixa")

    assert result.intent is Intent.VIEW_CASHFLOW
    assert result.confidence == pytest.approx(0.8)
