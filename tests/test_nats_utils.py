import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from nats.js.errors import NotFoundError

from libs.nats_utils import (
    STREAM_NAME,
    SUBJECT_FAILED,
    SUBJECT_INBOUND,
    ensure_stream,
    get_nats_connection,
    publish_failed,
    publish_inbound,
)

# Все тесты, использующие async/await, должны быть помечены этим маркером
pytestmark = pytest.mark.asyncio


@pytest.fixture
def sample_message() -> dict:
    """Одно сообщение из webhook-а WhatsApp в том виде, как его кладёт шлюз."""
    return {
        "from": "5532991473412",
        "id": "wamid.HBgM",
        "timestamp": "1760878800",
        "type": "text",
        "text": {"body": "Paguei R$ 50 de mercado hoje"},
    }


@pytest.fixture
def mock_nc() -> MagicMock:
    nc = MagicMock()
    nc.jetstream.return_value.publish = AsyncMock(return_value=MagicMock(seq=1))
    return nc


@pytest.fixture(autouse=True)
def clear_cache():
    """Очищаем кеш синглтона после каждого теста."""
    yield
    get_nats_connection.cache_clear()


async def test_get_nats_connection_is_singleton(mocker):
    """get_nats_connection возвращает один и тот же объект при повторных вызовах."""
    mock_connect = mocker.patch("nats.connect", new_callable=AsyncMock)
    mock_connect.return_value = "fake_connection_object"

    conn1 = await get_nats_connection()
    conn2 = await get_nats_connection()

    assert conn1 is conn2
    mock_connect.assert_called_once()


async def test_publish_inbound_sets_dedup_header(mock_nc, sample_message):
    await publish_inbound(mock_nc, sample_message)

    publish = mock_nc.jetstream.return_value.publish
    subject, payload = publish.await_args.args
    assert subject == SUBJECT_INBOUND
    # кириллица/акценты не экранируются
    assert "R$ 50 de mercado".encode() in payload
    assert json.loads(payload) == sample_message
    assert publish.await_args.kwargs["headers"] == {"Nats-Msg-Id": "wamid.HBgM"}


async def test_publish_inbound_without_id(mock_nc):
    await publish_inbound(mock_nc, {"type": "text", "text": {"body": "oi"}})

    assert mock_nc.jetstream.return_value.publish.await_args.kwargs["headers"] is None


async def test_publish_failed_carries_reason(mock_nc):
    await publish_failed(mock_nc, b"not json", "x" * 1000)

    publish = mock_nc.jetstream.return_value.publish
    subject, data = publish.await_args.args
    assert (subject, data) == (SUBJECT_FAILED, b"not json")
    assert len(publish.await_args.kwargs["headers"]["X-Error"]) == 512


async def test_ensure_stream_creates_missing(mock_nc):
    jsm = mock_nc.jetstream.return_value
    jsm.stream_info = AsyncMock(side_effect=NotFoundError)
    jsm.add_stream = AsyncMock()

    await ensure_stream(mock_nc)

    config = jsm.add_stream.await_args.args[0]
    assert config.name == STREAM_NAME
    assert sorted(config.subjects) == sorted([SUBJECT_INBOUND, SUBJECT_FAILED])


async def test_ensure_stream_updates_outdated_subjects(mock_nc):
    jsm = mock_nc.jetstream.return_value
    jsm.stream_info = AsyncMock(return_value=MagicMock(config=MagicMock(subjects=[SUBJECT_INBOUND])))
    jsm.update_stream = AsyncMock()

    await ensure_stream(mock_nc)

    jsm.update_stream.assert_awaited_once()


async def test_ensure_stream_is_idempotent(mock_nc):
    jsm = mock_nc.jetstream.return_value
    jsm.stream_info = AsyncMock(
        return_value=MagicMock(config=MagicMock(subjects=[SUBJECT_FAILED, SUBJECT_INBOUND]))
    )
    jsm.add_stream = AsyncMock()
    jsm.update_stream = AsyncMock()

    await ensure_stream(mock_nc)

    jsm.add_stream.assert_not_awaited()
    jsm.update_stream.assert_not_awaited()
