# libs/whatsapp.py
"""
Исходящие сообщения WhatsApp и загрузка входящих медиа (httpx + tenacity).

* :class:`MetaCloudTransport` – WhatsApp Cloud API (Graph). Текст, картинки
  (сначала upload в ``/{phone_id}/media``, потом отправка по media id) и
  скачивание медиа по id.
* :class:`WahaTransport` – запасной HTTP-канал, только текст.
* :class:`FallbackSender` – упорядоченный список каналов, первый успешный
  побеждает; если упали все – :class:`TransportError`.
"""
from __future__ import annotations

import logging
from typing import Optional, Protocol, Sequence

import httpx
from tenacity import RetryError, retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from libs.config import Settings
from libs.errors import TransportError
from libs.models import Media

__all__ = [
    "Transport",
    "MetaCloudTransport",
    "WahaTransport",
    "FallbackSender",
    "build_sender",
]

logger = logging.getLogger(__name__)

GRAPH_BASE_URL = "https://graph.facebook.com"


def _digits(phone: str) -> str:
    return "".join(ch for ch in phone if ch.isdigit())


class Transport(Protocol):
    name: str
    supports_images: bool

    async def send_text(self, to: str, text: str) -> None: ...

    async def send_image(self, to: str, image: bytes, caption: str = "", mime_type: str = "image/png") -> None: ...


# ---------------------------------------------------------------------------
# Meta Cloud API
# ---------------------------------------------------------------------------
class MetaCloudTransport:
    name = "cloud-api"
    supports_images = True

    def __init__(
        self,
        access_token: str,
        phone_number_id: str,
        *,
        api_version: str = "v18.0",
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        # токены из .env часто приходят с кавычками/переводами строки
        self._token = access_token.strip().strip("\"'").strip()
        self._phone_id = phone_number_id
        self._client = client or httpx.AsyncClient(
            base_url=f"{GRAPH_BASE_URL}/{api_version}", timeout=30.0
        )

    @property
    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._token}"}

    async def _post_message(self, payload: dict) -> dict:
        resp = await self._client.post(
            f"/{self._phone_id}/messages",
            json={"messaging_product": "whatsapp", **payload},
            headers=self._headers,
        )
        resp.raise_for_status()
        return resp.json()

    async def send_text(self, to: str, text: str) -> None:
        await self._post_message({"to": _digits(to), "type": "text", "text": {"body": text}})

    async def upload_media(self, data: bytes, mime_type: str, filename: str = "media") -> str:
        """Загружает файл в Graph API, возвращает media id."""
        resp = await self._client.post(
            f"/{self._phone_id}/media",
            data={"messaging_product": "whatsapp", "type": mime_type},
            files={"file": (filename, data, mime_type)},
            headers=self._headers,
        )
        resp.raise_for_status()
        media_id = resp.json()["id"]
        logger.info("📤 Медиа загружено: id=%s (%s байт)", media_id, len(data))
        return media_id

    async def send_image(self, to: str, image: bytes, caption: str = "", mime_type: str = "image/png") -> None:
        media_id = await self.upload_media(image, mime_type, filename="chart.png")
        body: dict = {"id": media_id}
        if caption:
            body["caption"] = caption
        await self._post_message({"to": _digits(to), "type": "image", "image": body})

    @retry(
        wait=wait_exponential(multiplier=1, min=1, max=8),
        stop=stop_after_attempt(3),
        retry=retry_if_exception_type(httpx.HTTPError),
    )
    async def _fetch_media(self, media_id: str) -> Media:
        meta = await self._client.get(f"/{media_id}", headers=self._headers)
        meta.raise_for_status()
        info = meta.json()
        # URL медиа живёт на другом хосте – абсолютный адрес, тот же клиент
        blob = await self._client.get(info["url"], headers=self._headers)
        blob.raise_for_status()
        mime = info.get("mime_type") or blob.headers.get("content-type") or "application/octet-stream"
        return Media(data=blob.content, mime_type=mime.split(";")[0].strip())

    async def download_media(self, media_id: str) -> Optional[Media]:
        """Байты медиа по id. ``None`` после исчерпания повторов."""
        try:
            media = await self._fetch_media(media_id)
        except (RetryError, httpx.HTTPError, KeyError) as exc:
            logger.error("❌ Не удалось скачать медиа %s: %s", media_id, exc)
            return None
        logger.info("📥 Медиа %s: %s байт (%s)", media_id, len(media.data), media.mime_type)
        return media

    async def aclose(self) -> None:
        await self._client.aclose()


# ---------------------------------------------------------------------------
# WAHA
# ---------------------------------------------------------------------------
class WahaTransport:
    name = "waha"
    supports_images = False

    def __init__(self, url: str, *, session: str = "default", client: Optional[httpx.AsyncClient] = None) -> None:
        self._url = url
        self._session = session
        self._client = client or httpx.AsyncClient(timeout=10.0)

    async def send_text(self, to: str, text: str) -> None:
        chat_id = f"{_digits(to)}@c.us"
        resp = await self._client.post(
            self._url, json={"session": self._session, "chatId": chat_id, "text": text}
        )
        resp.raise_for_status()

    async def send_image(self, to: str, image: bytes, caption: str = "", mime_type: str = "image/png") -> None:
        raise TransportError("WAHA: envio de imagem não suportado")

    async def aclose(self) -> None:
        await self._client.aclose()


# ---------------------------------------------------------------------------
# Цепочка каналов
# ---------------------------------------------------------------------------
class FallbackSender:
    def __init__(self, transports: Sequence[Transport]) -> None:
        if not transports:
            raise ValueError("FallbackSender needs at least one transport")
        self.transports = list(transports)

    async def send_text(self, to: str, text: str) -> str:
        """Отправляет текст; возвращает имя сработавшего канала."""
        logger.info("📤 → %s: %s…", to, text[:50])
        errors: list[str] = []
        for transport in self.transports:
            try:
                await transport.send_text(to, text)
            except Exception as exc:  # noqa: BLE001 – пробуем следующий канал
                logger.error("❌ %s: %s", transport.name, exc)
                errors.append(f"{transport.name}: {exc}")
                continue
            logger.info("✅ Отправлено через %s", transport.name)
            return transport.name
        raise TransportError("Falha ao enviar mensagem por todos os métodos disponíveis: " + "; ".join(errors))

    async def send_image(self, to: str, image: bytes, caption: str = "", mime_type: str = "image/png") -> str:
        errors: list[str] = []
        for transport in self.transports:
            if not transport.supports_images:
                continue
            try:
                await transport.send_image(to, image, caption, mime_type)
            except Exception as exc:  # noqa: BLE001
                logger.error("❌ %s (imagem): %s", transport.name, exc)
                errors.append(f"{transport.name}: {exc}")
                continue
            logger.info("✅ Изображение отправлено через %s", transport.name)
            return transport.name
        raise TransportError("Falha ao enviar imagem: " + ("; ".join(errors) or "nenhum canal suporta imagens"))

    async def aclose(self) -> None:
        for transport in self.transports:
            await transport.aclose()  # type: ignore[attr-defined]


def build_sender(settings: Settings) -> tuple[FallbackSender, MetaCloudTransport]:
    """Cloud API всегда первая; WAHA добавляется, если задан URL."""
    cloud = MetaCloudTransport(
        settings.waba_access_token or "",
        settings.waba_phone_number_id or "",
        api_version=settings.waba_api_version,
    )
    transports: list[Transport] = [cloud]
    if settings.waha_url:
        transports.append(WahaTransport(settings.waha_url, session=settings.waha_session))
    return FallbackSender(transports), cloud
