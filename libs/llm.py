# libs/llm.py
"""
Слой языковых моделей: провайдеры + цепочка фолбэков + разбор JSON-ответа.

Порядок по умолчанию:
    Gemini primary → Gemini fallback (только если ошибка «временная») → OpenAI
Всё остальное в проекте видит только :class:`FallbackChain.complete`.
"""
from __future__ import annotations

import asyncio
import base64
import json
import logging
import re
from dataclasses import dataclass
from typing import Literal, Optional, Protocol, Sequence, Type, TypeVar

import httpx
from google import genai
from google.genai import types
from openai import AsyncOpenAI
from pydantic import BaseModel, ValidationError

from libs.config import Settings
from libs.errors import ExtractionError, LLMError, ProviderUnavailableError

__all__ = [
    "Part",
    "GeminiProvider",
    "OpenAIProvider",
    "Strategy",
    "FallbackChain",
    "build_llm_chain",
    "is_transient",
    "strip_code_fences",
    "parse_model_json",
]

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

_FENCE_RE = re.compile(r"```(?:json)?", re.I)
_JSON_RE = re.compile(r"\{.*\}", re.S)  # «первый» JSON-объект в тексте
_TRANSIENT_MARKERS = (
    "503",
    "overloaded",
    "unavailable",
    "temporariamente indisponível",
    "timed out",
    "timeout",
)


# ────────────────────────────────
# 1. Части запроса
# ────────────────────────────────
@dataclass(frozen=True)
class Part:
    """Текст **или** inline-байты с MIME-типом."""

    text: Optional[str] = None
    data: Optional[bytes] = None
    mime_type: Optional[str] = None

    @classmethod
    def from_text(cls, text: str) -> "Part":
        return cls(text=text)

    @classmethod
    def inline(cls, data: bytes, mime_type: str) -> "Part":
        return cls(data=data, mime_type=mime_type)


class LLMProvider(Protocol):
    name: str

    async def generate(self, system: str, parts: Sequence[Part]) -> str: ...


# ────────────────────────────────
# 2. Провайдеры
# ────────────────────────────────
class GeminiProvider:
    def __init__(self, client: genai.Client, model: str) -> None:
        self._client = client
        self.model = model
        self.name = f"gemini:{model}"

    async def generate(self, system: str, parts: Sequence[Part]) -> str:
        contents = [types.Content(role="user", parts=[_to_gemini_part(p) for p in parts])]
        config = types.GenerateContentConfig(
            temperature=0.1,
            system_instruction=system,
        )
        resp = await self._client.aio.models.generate_content(
            model=self.model,
            contents=contents,
            config=config,
        )
        if not resp.text:
            raise LLMError(f"{self.name} вернул пустой ответ")
        return resp.text.strip()


def _to_gemini_part(part: Part) -> types.Part:
    if part.data is not None:
        return types.Part.from_bytes(data=part.data, mime_type=part.mime_type or "application/octet-stream")
    return types.Part.from_text(text=part.text or "")


class OpenAIProvider:
    """Запасной провайдер: картинки через data-URL, аудио не умеет."""

    def __init__(self, client: AsyncOpenAI, model: str) -> None:
        self._client = client
        self.model = model
        self.name = f"openai:{model}"

    async def generate(self, system: str, parts: Sequence[Part]) -> str:
        content: list[dict] = []
        for part in parts:
            if part.data is None:
                content.append({"type": "text", "text": part.text or ""})
                continue
            mime = part.mime_type or "image/jpeg"
            if mime.startswith("audio/"):
                raise LLMError("OpenAI não suporta áudio inline. Use Gemini.")
            b64 = base64.b64encode(part.data).decode()
            content.append(
                {"type": "image_url", "image_url": {"url": f"data:{mime};base64,{b64}"}}
            )

        resp = await self._client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": content},
            ],
            temperature=0.1,
            max_tokens=1000,
        )
        txt = resp.choices[0].message.content or ""
        if resp.usage is not None:
            logger.info(
                "OpenAI tokens: %s (prompt %s, completion %s)",
                resp.usage.total_tokens,
                resp.usage.prompt_tokens,
                resp.usage.completion_tokens,
            )
        return txt.strip()


# ────────────────────────────────
# 3. Цепочка фолбэков
# ────────────────────────────────
def is_transient(exc: BaseException) -> bool:
    """Перегрузка/таймаут (стоит попробовать ещё раз) vs. жёсткая ошибка."""
    if isinstance(exc, ProviderUnavailableError):
        return True
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return True
    code = getattr(exc, "code", None) or getattr(exc, "status_code", None)
    if code in (503, 504):
        return True
    message = str(exc).lower()
    return any(marker in message for marker in _TRANSIENT_MARKERS)


@dataclass
class Strategy:
    """Провайдер + условие запуска.

    ``always``    – пробуем после любой ошибки предыдущего шага;
    ``transient`` – только если предыдущая ошибка временная.
    """

    provider: LLMProvider
    when: Literal["always", "transient"] = "always"


class FallbackChain:
    def __init__(self, strategies: Sequence[Strategy], *, retry_delay: float = 1.0) -> None:
        if not strategies:
            raise ValueError("FallbackChain needs at least one strategy")
        self.strategies = list(strategies)
        self.retry_delay = retry_delay

    async def complete(self, system: str, parts: Sequence[Part]) -> str:
        """Текст ответа первой сработавшей стратегии, без ```-обёрток."""
        last_exc: BaseException | None = None

        for idx, strategy in enumerate(self.strategies):
            if last_exc is not None:
                if strategy.when == "transient" and not is_transient(last_exc):
                    logger.debug("⏭  %s пропущен: ошибка не временная", strategy.provider.name)
                    continue
                if is_transient(last_exc) and self.retry_delay:
                    await asyncio.sleep(self.retry_delay)
                logger.info("🔄 Пробуем %s как фолбэк…", strategy.provider.name)

            try:
                logger.debug("🤖 Попытка %s/%s – %s", idx + 1, len(self.strategies), strategy.provider.name)
                answer = await strategy.provider.generate(system, parts)
                logger.info("✅ Ответ получен от %s", strategy.provider.name)
                return strip_code_fences(answer)
            except Exception as exc:  # noqa: BLE001 – классифицируем ниже
                logger.error("❌ Ошибка %s: %s", strategy.provider.name, exc)
                last_exc = exc

        if last_exc is None:  # все стратегии пропущены
            raise LLMError("Nenhuma estratégia de LLM foi executada")
        if is_transient(last_exc):
            raise ProviderUnavailableError(
                "Serviço de IA temporariamente indisponível. Tente novamente em alguns minutos."
            ) from last_exc
        raise last_exc


def build_llm_chain(settings: Settings) -> FallbackChain:
    """Цепочка по настройкам: OpenAI добавляется, только если задан ключ."""
    strategies: list[Strategy] = []
    if settings.gemini_api_key:
        client = genai.Client(api_key=settings.gemini_api_key)
        strategies.append(Strategy(GeminiProvider(client, settings.gemini_primary_model)))
        strategies.append(
            Strategy(GeminiProvider(client, settings.gemini_fallback_model), when="transient")
        )
    if settings.openai_api_key:
        strategies.append(
            Strategy(OpenAIProvider(AsyncOpenAI(api_key=settings.openai_api_key), settings.openai_model))
        )
    return FallbackChain(strategies)


# ────────────────────────────────
# 4. Разбор ответа
# ────────────────────────────────
def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text).strip()


def parse_model_json(text: str, schema: Type[T]) -> T:
    """JSON из ответа модели → провалидированная модель или :class:`ExtractionError`."""
    cleaned = strip_code_fences(text)
    match = _JSON_RE.search(cleaned)
    if match is None:
        raise ExtractionError(f"Модель вернула не-JSON: {cleaned[:120]!r}")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise ExtractionError(f"Модель вернула JSON с ошибкой: {exc}") from exc
    if not isinstance(data, dict):
        raise ExtractionError("Модель вернула не JSON-объект")
    try:
        return schema.model_validate(data)
    except ValidationError as exc:
        raise ExtractionError(f"JSON не соответствует схеме {schema.__name__}: {exc}") from exc
