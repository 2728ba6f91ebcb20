# libs/envelope.py
"""Cloud API webhook → :class:`~libs.models.Envelope`.

Шлюз раскладывает webhook на отдельные сообщения (:func:`extract_messages`),
воркер превращает каждое в конверт (:func:`build_envelope`) и при
необходимости скачивает медиа. Сбой загрузки не ошибка: ``media=None``.
"""
from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Iterator, Mapping, Optional

from libs.models import Envelope, Media, MessageKind

__all__ = ["normalize_phone_e164", "extract_messages", "build_envelope", "MediaDownloader"]

logger = logging.getLogger(__name__)

MediaDownloader = Callable[[str], Awaitable[Optional[Media]]]

_JID_SUFFIX_RE = re.compile(r"@(c\.us|s\.whatsapp\.net)$")

_KIND_BY_TYPE = {
    "text": MessageKind.TEXT,
    "image": MessageKind.IMAGE,
    "audio": MessageKind.AUDIO,
    "voice": MessageKind.AUDIO,
    "document": MessageKind.DOCUMENT,
    "video": MessageKind.VIDEO,
}

# видео не поддерживается извлечением – байты не качаем
_DOWNLOADABLE = (MessageKind.IMAGE, MessageKind.AUDIO, MessageKind.DOCUMENT)


def normalize_phone_e164(raw: str) -> str:
    """``"5532991473412@c.us"`` → ``"+5532991473412"``."""
    digits = re.sub(r"\D", "", _JID_SUFFIX_RE.sub("", str(raw or "").strip()))
    return f"+{digits}" if digits else ""


def extract_messages(payload: Mapping[str, Any]) -> Iterator[dict]:
    """Все сообщения из webhook-а (статусы доставки и прочее пропускаются)."""
    for entry in payload.get("entry") or []:
        for change in entry.get("changes") or []:
            value = change.get("value") or {}
            for message in value.get("messages") or []:
                yield message


def _timestamp(raw: Mapping[str, Any]) -> Optional[datetime]:
    try:
        return datetime.fromtimestamp(int(raw["timestamp"]), tz=timezone.utc)
    except (KeyError, TypeError, ValueError):
        return None


async def build_envelope(raw: Mapping[str, Any], downloader: Optional[MediaDownloader] = None) -> Envelope:
    msg_type = str(raw.get("type") or "")
    kind = _KIND_BY_TYPE.get(msg_type, MessageKind.UNKNOWN)
    sender = normalize_phone_e164(raw.get("from", ""))

    text = ""
    caption = ""
    media_id: Optional[str] = None
    mime_hint: Optional[str] = None

    if kind is MessageKind.TEXT:
        text = ((raw.get("text") or {}).get("body") or "").strip()
        if not text:
            kind = MessageKind.UNKNOWN
    elif kind is not MessageKind.UNKNOWN:
        block = raw.get(msg_type) or {}
        # подпись кладём и в caption, и в text
        caption = (block.get("caption") or raw.get("caption") or "").strip()
        text = caption
        media_id = block.get("id")
        mime_hint = block.get("mime_type")

    media: Optional[Media] = None
    if kind in _DOWNLOADABLE and media_id and downloader is not None:
        try:
            media = await downloader(media_id)
        except Exception as exc:  # noqa: BLE001 – деградация до текста подписи
            logger.error("❌ Загрузка медиа %s не удалась: %s", media_id, exc)
            media = None
        if media is not None and mime_hint and media.mime_type == "application/octet-stream":
            media = Media(data=media.data, mime_type=mime_hint)

    envelope = Envelope(
        message_id=raw.get("id"),
        sender=sender,
        kind=kind,
        text=text,
        caption=caption,
        media=media,
        timestamp=_timestamp(raw),
    )
    logger.info(
        "📱 Конверт: kind=%s, media=%s, text=%r",
        envelope.kind.value,
        "yes" if media else "no",
        envelope.text[:60],
    )
    return envelope
