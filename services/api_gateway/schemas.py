# services/api_gateway/schemas.py
"""Pydantic DTO-models used by *API Gateway*.

Проверяем только внешнюю оболочку webhook-а WhatsApp Cloud API; сами
сообщения уходят в очередь как есть и разбираются воркером.
"""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class WebhookPayload(BaseModel):
    """POST от Meta: ``{"object": "whatsapp_business_account", "entry": [...]}``."""

    model_config = ConfigDict(
        extra="allow",
        json_schema_extra={"description": "WhatsApp Cloud API webhook notification."},
    )

    object: str = Field("whatsapp_business_account")
    entry: list[dict[str, Any]] = Field(default_factory=list)


class WebhookAck(BaseModel):
    """Ответ шлюза после публикации сообщений в NATS."""

    result: str = Field("queued", description="always 'queued' on success")
    count: int = Field(0, description="how many messages were queued")
