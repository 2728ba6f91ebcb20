# libs/errors.py
"""Типизированные ошибки конвейера «сообщение → лансаменто».

Роутер ловит всё на верхнем уровне и превращает в ответ пользователю через
:func:`libs.responder.format_error_message`.
"""
from __future__ import annotations

__all__ = [
    "LLMError",
    "ProviderUnavailableError",
    "ExtractionError",
    "UnsupportedMessageError",
    "NoBankConfiguredError",
    "TransactionValidationError",
    "TransportError",
]


class LLMError(Exception):
    """Базовая ошибка при работе с языковыми моделями."""


class ProviderUnavailableError(LLMError):
    """Все провайдеры цепочки ответили «перегружен / недоступен»."""


class ExtractionError(LLMError):
    """Модель вернула не-JSON или JSON не той формы."""


class UnsupportedMessageError(Exception):
    """Тип сообщения (или сбой загрузки медиа) не позволяет извлечь поля."""


class NoBankConfiguredError(Exception):
    """У пользователя нет ни одного банка – лансаменто создать нельзя."""


class TransactionValidationError(ValueError):
    """Не хватает обязательного поля перед записью в `lancamentos`."""

    def __init__(self, field: str, message: str | None = None) -> None:
        self.field = field
        super().__init__(message or f"{field} é obrigatório.")


class TransportError(Exception):
    """Сообщение не удалось отправить ни одним из каналов."""
