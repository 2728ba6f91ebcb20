# libs/intent.py
from __future__ import annotations

import logging

from libs import prompts
from libs.llm import FallbackChain, Part, parse_model_json
from libs.models import Intent, IntentResult

logger = logging.getLogger(__name__)


async def classify_intent(llm: FallbackChain, message: str) -> IntentResult:
    """Классифицирует намерение свободного текста.

    Никогда не бросает: любая ошибка провайдера, JSON или схемы превращается в
    ``unknown`` с нулевой уверенностью – роутер ответит общим текстом-подсказкой.
    """
    logger.info("🎯 Классифицируем: %r", message[:60])
    try:
        answer = await llm.complete(
            prompts.INTENT_CLASSIFIER,
            [Part.from_text(f'Mensagem do usuário: "{message}"')],
        )
        result = parse_model_json(answer, IntentResult)
    except Exception as exc:  # noqa: BLE001
        logger.error("❌ Не удалось классифицировать намерение: %s", exc)
        return IntentResult(intent=Intent.UNKNOWN, confidence=0.0, extracted_info="")

    logger.info("✅ Намерение: %s (confidence %.2f)", result.intent.value, result.confidence)
    return result
