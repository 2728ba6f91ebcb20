# tests/conftest.py
from datetime import datetime
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from libs.clock import FixedClock
from libs.config import Settings
from libs.llm import FallbackChain
from libs.models import Bank, Category, TxnType, User
from libs.repository import Repository
from libs.whatsapp import FallbackSender
from services.bot_worker.context import AppContext

ALLOWED = "+5532991473412"


@pytest.fixture
def clock() -> FixedClock:
    """«Сегодня» во всех тестах – 19.10.2026, 10:00 по Сан-Паулу."""
    return FixedClock(datetime(2026, 10, 19, 10, 0))


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, allowed_whatsapp=ALLOWED, waba_verify_token="secret")


@pytest.fixture
def llm() -> MagicMock:
    mock = MagicMock(spec=FallbackChain)
    mock.complete = AsyncMock()
    return mock


@pytest.fixture
def repo() -> MagicMock:
    # async-методы Repository автоматически становятся AsyncMock
    return MagicMock(spec=Repository)


@pytest.fixture
def sender() -> MagicMock:
    return MagicMock(spec=FallbackSender)


@pytest.fixture
def user() -> User:
    return User(id="u-1", nome="Maria Souza", phone_e164=ALLOWED)


@pytest.fixture
def principal_bank() -> Bank:
    return Bank(id=3, user_id="u-1", nome_banco="Nubank", is_principal=True, saldo_inicial=Decimal("1000"))


@pytest.fixture
def categories() -> list[Category]:
    return [
        Category(id=7, user_id="u-1", nome="Mercado", tipo_lancamento=TxnType.DESPESA),
        Category(id=8, user_id="u-1", nome="Alimentação", tipo_lancamento=TxnType.DESPESA),
        Category(id=9, user_id="u-1", nome="Transporte", tipo_lancamento=TxnType.DESPESA),
    ]


@pytest.fixture
def ctx(settings, clock, llm, repo, sender) -> AppContext:
    return AppContext(
        settings=settings,
        clock=clock,
        llm=llm,
        repo=repo,
        sender=sender,
        downloader=AsyncMock(return_value=None),
        cache=None,
    )
