# tests/test_decimal_utils.py
from decimal import Decimal

import pytest

from libs.decimal_utils import coerce_amount, parse_ambiguous_decimal

CASES = [
    # ─ pt-BR ───────────────────────────────────────────────
    ("R$ 1.234,56", Decimal("1234.56")),
    ("79,90", Decimal("79.90")),
    ("1.500", Decimal("1500")),
    ("50 reais", Decimal("50")),
    # ─ en-US ───────────────────────────────────────────────
    ("1,234.56", Decimal("1234.56")),
    ("23.5", Decimal("23.5")),
    ("1,500", Decimal("1500")),
    # ─ уже числа ───────────────────────────────────────────
    (50, Decimal("50")),
    (12.3, Decimal("12.3")),
    (Decimal("0"), Decimal("0")),
]


@pytest.mark.parametrize("raw, expected", CASES)
def test_parse_ambiguous_decimal(raw, expected):
    assert parse_ambiguous_decimal(raw) == expected


@pytest.mark.parametrize("raw", ["", "R$", True, [1], "abc", "1e3", "12abc34"])
def test_parse_ambiguous_decimal_rejects(raw):
    with pytest.raises(ValueError):
        parse_ambiguous_decimal(raw)


@pytest.mark.parametrize(
    "raw, expected",
    [
        (None, None),
        ("uns trocados", None),
        ("1e3", None),
        (float("nan"), None),
        ("0", Decimal("0")),
        ("R$ 50,00", Decimal("50.00")),
    ],
)
def test_coerce_amount(raw, expected):
    assert coerce_amount(raw) == expected
