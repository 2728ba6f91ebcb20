# libs/decimal_utils.py
from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Optional

__all__ = ["parse_ambiguous_decimal", "coerce_amount"]

_CURRENCY_RE = re.compile(r"(R\$|BRL|US\$|\$|reais|real)", re.I)


def parse_ambiguous_decimal(value: object) -> Decimal:
    """
    Превращает сумму неизвестного формата в Decimal.

    Модель и пользователи пишут суммы как угодно: ``50``, ``"R$ 1.234,56"``,
    ``"1,234.56"``, ``"79,90"``. Десятичный разделитель угадываем эвристикой:
    - есть и точка, и запятая → десятичный тот, что правее;
    - только запятая → десятичная, если она одна и после неё 1–2 цифры;
    - только точка → десятичная, если она одна и после неё не ровно 3 цифры
      (``"1.500"`` в pt-BR – это полторы тысячи).
    """
    if isinstance(value, bool):
        raise ValueError(f"Не сумма: {value!r}")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(str(value))
    if not isinstance(value, str):
        raise ValueError(f"Не сумма: {value!r}")

    cleaned = _CURRENCY_RE.sub("", value)
    cleaned = re.sub(r"\s+", "", cleaned)
    if not cleaned:
        raise ValueError("Input string cannot be empty")

    last_dot = cleaned.rfind(".")
    last_comma = cleaned.rfind(",")

    if last_dot != -1 and last_comma != -1:
        if last_comma > last_dot:
            # "1.234,56" – pt-BR
            final = cleaned.replace(".", "").replace(",", ".")
        else:
            # "1,234.56" – en-US
            final = cleaned.replace(",", "")
    elif last_comma != -1:
        decimals = cleaned[last_comma + 1:]
        if cleaned.count(",") == 1 and 1 <= len(decimals) <= 2:
            final = cleaned.replace(",", ".")
        else:
            final = cleaned.replace(",", "")
    elif last_dot != -1:
        decimals = cleaned[last_dot + 1:]
        if cleaned.count(".") == 1 and len(decimals) != 3:
            final = cleaned
        else:
            final = cleaned.replace(".", "")
    else:
        final = cleaned

    if not re.fullmatch(r"-?[0-9]*\.?[0-9]+", final):
        # буквы и прочий мусор не вырезаем молча: "1e3" – не 13
        raise ValueError(f"Не сумма: {value!r} (после очистки '{final}')")
    try:
        return Decimal(final)
    except InvalidOperation:
        raise ValueError(
            f"Не удалось преобразовать строку '{value}' в число после очистки до '{final}'"
        )


def coerce_amount(value: object) -> Optional[Decimal]:
    """То же, но мягко: всё, что не распознали, становится ``None``."""
    if value is None:
        return None
    try:
        result = parse_ambiguous_decimal(value)
    except ValueError:
        return None
    if not result.is_finite():
        return None
    return result
