# tests/test_envelope.py
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from libs.envelope import build_envelope, extract_messages, normalize_phone_e164
from libs.models import Media, MessageKind

pytestmark = pytest.mark.asyncio


def _webhook(*messages: dict, statuses: bool = False) -> dict:
    value = {"messaging_product": "whatsapp", "metadata": {"phone_number_id": "123"}}
    if messages:
        value["messages"] = list(messages)
    if statuses:
        value["statuses"] = [{"id": "wamid.S", "status": "delivered"}]
    return {
        "object": "whatsapp_business_account",
        "entry": [{"id": "WABA", "changes": [{"field": "messages", "value": value}]}],
    }


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("5532991473412", "+5532991473412"),
        ("+55 (32) 99147-3412", "+5532991473412"),
        ("5532991473412@c.us", "+5532991473412"),
        ("5532991473412@s.whatsapp.net", "+5532991473412"),
        ("", ""),
    ],
)
async def test_normalize_phone(raw, expected):
    assert normalize_phone_e164(raw) == expected


async def test_extract_messages_skips_statuses():
    payload = _webhook({"id": "a"}, {"id": "b"})
    payload["entry"].append(_webhook(statuses=True)["entry"][0])

    assert [m["id"] for m in extract_messages(payload)] == ["a", "b"]
    assert list(extract_messages({})) == []


async def test_text_envelope():
    envelope = await build_envelope(
        {"from": "5532991473412", "id": "wamid.1", "timestamp": "1760878800",
         "type": "text", "text": {"body": "  Paguei R$ 50 de mercado hoje "}}
    )

    assert envelope.kind is MessageKind.TEXT
    assert envelope.sender == "+5532991473412"
    assert envelope.text == "Paguei R$ 50 de mercado hoje"
    assert envelope.media is None
    assert envelope.timestamp == datetime.fromtimestamp(1760878800, tz=timezone.utc)


async def test_empty_text_is_unknown():
    envelope = await build_envelope({"from": "5532991473412", "type": "text", "text": {"body": "   "}})

    assert envelope.kind is MessageKind.UNKNOWN


async def test_image_is_downloaded_with_caption():
    downloader = AsyncMock(return_value=Media(data=b"\xff\xd8", mime_type="application/octet-stream"))

    envelope = await build_envelope(
        {"from": "5532991473412", "type": "image",
         "image": {"id": "m-1", "mime_type": "image/jpeg", "caption": "nota do mercado"}},
        downloader,
    )

    downloader.assert_awaited_once_with("m-1")
    assert envelope.kind is MessageKind.IMAGE
    assert envelope.caption == envelope.text == "nota do mercado"
    # octet-stream заменяется типом из webhook-а
    assert envelope.mime_type == "image/jpeg"


async def test_voice_note_is_audio():
    downloader = AsyncMock(return_value=Media(data=b"OggS", mime_type="audio/ogg"))

    envelope = await build_envelope({"from": "5532991473412", "type": "voice", "voice": {"id": "m-2"}}, downloader)

    assert envelope.kind is MessageKind.AUDIO
    assert envelope.media.data == b"OggS"


async def test_failed_download_degrades_to_no_media():
    downloader = AsyncMock(side_effect=RuntimeError("graph api 500"))

    envelope = await build_envelope(
        {"from": "5532991473412", "type": "document",
         "document": {"id": "m-3", "caption": "boleto 189,90"}},
        downloader,
    )

    assert envelope.kind is MessageKind.DOCUMENT
    assert envelope.media is None
    assert envelope.fallback_text == "boleto 189,90"


@pytest.mark.parametrize("msg_type", ["video", "sticker", "location", ""])
async def test_unsupported_types_are_not_downloaded(msg_type):
    downloader = AsyncMock()

    envelope = await build_envelope(
        {"from": "5532991473412", "type": msg_type, msg_type or "x": {"id": "m-4"}}, downloader
    )

    downloader.assert_not_awaited()
    assert envelope.media is None
    assert envelope.kind in (MessageKind.VIDEO, MessageKind.UNKNOWN)
