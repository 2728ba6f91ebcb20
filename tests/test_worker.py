# tests/test_worker.py
import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from services.bot_worker.worker import _parse_args, decode_message, shutdown

pytestmark = pytest.mark.asyncio


def _msg(data: bytes) -> MagicMock:
    msg = MagicMock()
    msg.data = data
    msg.ack = AsyncMock()
    return msg


async def test_valid_json_is_decoded_and_acked(mocker):
    dlq = mocker.patch("services.bot_worker.worker.publish_failed", new_callable=AsyncMock)
    msg = _msg('{"id": "wamid.1", "type": "text", "text": {"body": "olá"}}'.encode())

    raw = await decode_message(MagicMock(), msg)

    assert raw["text"]["body"] == "olá"
    msg.ack.assert_awaited_once()
    dlq.assert_not_awaited()


@pytest.mark.parametrize("data", [b"not json", b"[1, 2]", b"\xff\xfe"])
async def test_garbage_goes_to_dlq(mocker, data):
    dlq = mocker.patch("services.bot_worker.worker.publish_failed", new_callable=AsyncMock)
    nc = MagicMock()
    msg = _msg(data)

    assert await decode_message(nc, msg) is None

    dlq.assert_awaited_once()
    assert dlq.await_args.args[:2] == (nc, data)
    msg.ack.assert_awaited_once()


async def test_dlq_failure_does_not_escape(mocker):
    mocker.patch("services.bot_worker.worker.publish_failed", new_callable=AsyncMock, side_effect=RuntimeError("nats down"))
    msg = _msg(b"not json")

    assert await decode_message(MagicMock(), msg) is None
    msg.ack.assert_awaited_once()


async def test_default_consumer_group():
    args = _parse_args([])

    assert args.group == "bot_worker"
    assert args.name


async def test_shutdown_waits_for_running_handlers():
    order: list[str] = []
    release = asyncio.Event()

    async def handler():
        await release.wait()
        order.append("handled")

    task = asyncio.create_task(handler())
    tasks = {task}
    nc = MagicMock()
    nc.drain = AsyncMock(side_effect=lambda: order.append("drained"))
    ctx = MagicMock()
    ctx.aclose = AsyncMock(side_effect=lambda: order.append("closed"))

    asyncio.get_running_loop().call_later(0.05, release.set)
    await shutdown(nc, ctx, tasks, timeout=5)

    assert order == ["handled", "drained", "closed"]
    assert task.done() and not task.cancelled()


async def test_shutdown_cancels_stuck_handlers_after_timeout():
    stuck = asyncio.create_task(asyncio.sleep(60))
    nc = MagicMock()
    nc.drain = AsyncMock()
    ctx = MagicMock()
    ctx.aclose = AsyncMock()

    await shutdown(nc, ctx, {stuck}, timeout=0.01)

    assert stuck.cancelled()
    nc.drain.assert_awaited_once()
    ctx.aclose.assert_awaited_once()
