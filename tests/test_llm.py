# tests/test_llm.py
import asyncio

import httpx
import pytest

from libs.errors import ExtractionError, LLMError, ProviderUnavailableError
from libs.llm import FallbackChain, Part, Strategy, is_transient, parse_model_json, strip_code_fences
from libs.models import IntentResult, TransactionCandidate


class FakeProvider:
    def __init__(self, name: str, result: str | None = None, error: Exception | None = None):
        self.name = name
        self.result = result
        self.error = error
        self.calls = 0

    async def generate(self, system, parts):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result


def _chain(*strategies: Strategy) -> FallbackChain:
    return FallbackChain(strategies, retry_delay=0)


PARTS = [Part.from_text("oi")]


async def test_primary_answer_is_returned_without_fences():
    primary = FakeProvider("primary", result='```json\n{"a": 1}\n```')
    backup = FakeProvider("backup", result="{}")

    answer = await _chain(Strategy(primary), Strategy(backup, when="transient")).complete("sys", PARTS)

    assert answer == '{"a": 1}'
    assert backup.calls == 0


async def test_transient_error_triggers_fallback_model():
    primary = FakeProvider("primary", error=RuntimeError("503 UNAVAILABLE: model is overloaded"))
    backup = FakeProvider("backup", result="ok")

    answer = await _chain(Strategy(primary), Strategy(backup, when="transient")).complete("sys", PARTS)

    assert answer == "ok"
    assert primary.calls == backup.calls == 1


async def test_hard_error_skips_transient_only_strategy():
    primary = FakeProvider("primary", error=ValueError("invalid api key"))
    transient_only = FakeProvider("gemini-fallback", result="nope")
    openai = FakeProvider("openai", result="from openai")

    chain = _chain(Strategy(primary), Strategy(transient_only, when="transient"), Strategy(openai))
    answer = await chain.complete("sys", PARTS)

    assert answer == "from openai"
    assert transient_only.calls == 0


async def test_exhausted_transient_chain_raises_provider_unavailable():
    chain = _chain(
        Strategy(FakeProvider("a", error=asyncio.TimeoutError())),
        Strategy(FakeProvider("b", error=RuntimeError("model overloaded")), when="transient"),
    )

    with pytest.raises(ProviderUnavailableError, match="temporariamente indisponível"):
        await chain.complete("sys", PARTS)


async def test_exhausted_hard_chain_reraises_last_error():
    chain = _chain(Strategy(FakeProvider("a", error=LLMError("OpenAI não suporta áudio inline"))))

    with pytest.raises(LLMError, match="áudio"):
        await chain.complete("sys", PARTS)


async def test_skipped_transient_strategy_keeps_the_hard_error():
    hard = ValueError("invalid api key")
    backup = FakeProvider("gemini-fallback", result="nope")
    chain = _chain(Strategy(FakeProvider("primary", error=hard)), Strategy(backup, when="transient"))

    with pytest.raises(ValueError) as exc_info:
        await chain.complete("sys", PARTS)

    assert exc_info.value is hard
    assert backup.calls == 0


def test_chain_requires_strategies():
    with pytest.raises(ValueError):
        FallbackChain([])


@pytest.mark.parametrize(
    "exc, expected",
    [
        (asyncio.TimeoutError(), True),
        (httpx.ReadTimeout("slow"), True),
        (RuntimeError("503 Service Unavailable"), True),
        (RuntimeError("The model is overloaded"), True),
        (ProviderUnavailableError("x"), True),
        (ValueError("401 Unauthorized"), False),
        (KeyError("candidates"), False),
    ],
)
def test_is_transient(exc, expected):
    assert is_transient(exc) is expected


def test_strip_code_fences():
    assert strip_code_fences('```json\n{"x": 1}\n```') == '{"x": 1}'
    assert strip_code_fences("```\nMercado\n```") == "Mercado"


def test_parse_model_json_accepts_text_around_object():
    result = parse_model_json(
        'Claro! {"intent": "greeting", "confidence": 0.9, "extracted_info": null} Até mais.',
        IntentResult,
    )
    assert result.intent.value == "greeting"
    assert result.extracted_info == ""


def test_parse_model_json_rejects_non_json():
    with pytest.raises(ExtractionError):
        parse_model_json("não sei", TransactionCandidate)


def test_parse_model_json_rejects_broken_json():
    with pytest.raises(ExtractionError):
        parse_model_json('{"descricao": "x",}', TransactionCandidate)


def test_parse_model_json_validates_schema():
    # needs_fix без missing – нарушение контракта
    with pytest.raises(ExtractionError):
        parse_model_json('{"needs_fix": true, "missing": []}', TransactionCandidate)


def test_candidate_is_tolerant_to_nulls_and_extra_keys():
    candidate = parse_model_json(
        '{"descricao": "", "valor": "79,90", "tipo_lancamento": "DESPESA", '
        '"missing": null, "suggestions": null, "confidence": null, "foo": 1}',
        TransactionCandidate,
    )
    assert candidate.descricao is None
    assert candidate.valor == "79,90"
    assert candidate.tipo_lancamento.value == "despesa"
    assert candidate.missing == [] and candidate.suggestions == []
    assert candidate.confidence == 0.0
