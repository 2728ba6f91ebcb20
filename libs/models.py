# libs/models.py
"""Domain models shared by the gateway and the bot worker.

Levels
------
1. **Envelope** – каноническое входящее сообщение, не зависит от транспорта.
   Живёт ровно одну обработку.
2. **TransactionCandidate** – то, что вернула модель: неполное, непроверенное.
3. **NormalizedTransaction** – кандидат после заполнения дефолтов. Всё, что
   ниже по конвейеру, работает только с ним.
4. **User / Bank / Category / PersistedTransaction / LedgerEntry** – строки
   реляционного хранилища в виде DTO (только чтение, кроме вставки лансаменто).

Дизайн-оговорка: как и везде в проекте – Pydantic v2, никаких произвольных
dict-ов между слоями.
"""
from __future__ import annotations

import datetime as _dt
from decimal import Decimal
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

__all__ = [
    "MessageKind",
    "MEDIA_KINDS",
    "Media",
    "Envelope",
    "TxnType",
    "Intent",
    "IntentResult",
    "TransactionCandidate",
    "NormalizedTransaction",
    "User",
    "Bank",
    "Category",
    "PersistedTransaction",
    "LedgerEntry",
]


class MessageKind(str, Enum):
    """Тип входящего сообщения после нормализации."""

    TEXT = "text"
    IMAGE = "image"
    AUDIO = "audio"
    DOCUMENT = "document"
    VIDEO = "video"
    UNKNOWN = "unknown"


MEDIA_KINDS = frozenset(
    {MessageKind.IMAGE, MessageKind.AUDIO, MessageKind.DOCUMENT, MessageKind.VIDEO}
)


class Media(BaseModel):
    data: bytes = Field(..., repr=False)
    mime_type: str = "application/octet-stream"


class Envelope(BaseModel):
    """Каноническое входящее сообщение.

    `media` может быть только у медиа-типов. Если загрузка не удалась, у
    медиа-сообщения `media=None` – дальше это обрабатывается как деградация,
    а не как ошибка.
    """

    message_id: Optional[str] = None
    sender: str = Field(..., description="E.164, например +5532991473412")
    kind: MessageKind
    text: str = ""
    caption: str = ""
    media: Optional[Media] = None
    timestamp: Optional[_dt.datetime] = None

    @model_validator(mode="after")
    def _media_only_for_media_kinds(self) -> "Envelope":
        if self.media is not None and self.kind not in MEDIA_KINDS:
            raise ValueError(f"media is not allowed for kind={self.kind.value}")
        return self

    @property
    def mime_type(self) -> Optional[str]:
        return self.media.mime_type if self.media else None

    @property
    def fallback_text(self) -> str:
        """Текст для дефолтного описания: подпись, иначе тело."""
        return self.caption or self.text or ""


class TxnType(str, Enum):
    """Тип лансаменто."""

    RECEITA = "receita"  # доход
    DESPESA = "despesa"  # расход


class Intent(str, Enum):
    GREETING = "greeting"
    CREATE_TRANSACTION = "create_transaction"
    VIEW_PAYABLES = "view_payables"
    VIEW_RECEIVABLES = "view_receivables"
    VIEW_CASHFLOW = "view_cashflow"
    VIEW_DRE = "view_dre"
    UNKNOWN = "unknown"


class IntentResult(BaseModel):
    model_config = ConfigDict(extra="ignore")

    intent: Intent = Intent.UNKNOWN
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    extracted_info: str = ""

    @field_validator("intent", mode="before")
    @classmethod
    def _lower_intent(cls, v: object) -> object:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("extracted_info", mode="before")
    @classmethod
    def _none_to_empty(cls, v: object) -> object:
        return "" if v is None else v


def _blank_to_none(v: object) -> object:
    if isinstance(v, str) and not v.strip():
        return None
    return v


class TransactionCandidate(BaseModel):
    """Мини-схема, которую возвращает модель-парсер."""

    model_config = ConfigDict(extra="ignore")

    descricao: Optional[str] = None
    valor: Optional[Union[Decimal, str]] = None
    tipo_lancamento: Optional[TxnType] = None
    data_competencia: Optional[str] = None
    data_pagamento: Optional[str] = None
    data_vencimento: Optional[str] = None
    categoria_sugerida: Optional[str] = None
    needs_fix: bool = False
    missing: list[str] = Field(default_factory=list)
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    suggestions: list[str] = Field(default_factory=list)

    @field_validator(
        "descricao",
        "valor",
        "data_competencia",
        "data_pagamento",
        "data_vencimento",
        "categoria_sugerida",
        mode="before",
    )
    @classmethod
    def _blank(cls, v: object) -> object:
        return _blank_to_none(v)

    @field_validator("tipo_lancamento", mode="before")
    @classmethod
    def _lower_tipo(cls, v: object) -> object:
        v = _blank_to_none(v)
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("needs_fix", mode="before")
    @classmethod
    def _none_false(cls, v: object) -> object:
        return False if v is None else v

    @field_validator("confidence", mode="before")
    @classmethod
    def _none_zero(cls, v: object) -> object:
        return 0.0 if v is None else v

    @field_validator("missing", "suggestions", mode="before")
    @classmethod
    def _as_list(cls, v: object) -> object:
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return v

    @model_validator(mode="after")
    def _needs_fix_has_missing(self) -> "TransactionCandidate":
        if self.needs_fix and not self.missing:
            raise ValueError("needs_fix=true requires a non-empty 'missing' list")
        return self


class NormalizedTransaction(BaseModel):
    """Кандидат после дефолтов: тип, описание и дата компетенции всегда есть."""

    tipo_lancamento: TxnType
    descricao: str
    valor: Optional[Decimal] = None
    data_competencia: _dt.date
    data_pagamento: Optional[_dt.date] = None
    data_vencimento: Optional[_dt.date] = None
    categoria_sugerida: Optional[str] = None
    needs_fix: bool = False
    missing: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    confidence: float = 0.0


# --------------------------------------------------------------------------- #
# Строки хранилища
# --------------------------------------------------------------------------- #


class _Row(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class User(_Row):
    id: str
    nome: Optional[str] = None
    phone_e164: str

    @property
    def first_name(self) -> Optional[str]:
        return self.nome.split()[0] if self.nome and self.nome.strip() else None


class Bank(_Row):
    id: int
    user_id: str
    nome_banco: str
    is_principal: bool = False
    saldo_inicial: Decimal = Decimal("0")
    data_inicio: Optional[_dt.date] = None
    created_at: Optional[_dt.datetime] = None


class Category(_Row):
    id: int
    user_id: str
    nome: str
    tipo_lancamento: TxnType


class PersistedTransaction(_Row):
    id: int
    descricao: str
    valor: Decimal
    tipo_lancamento: TxnType
    data_lancamento: _dt.date
    data_competencia: _dt.date
    data_pagamento: Optional[_dt.date] = None
    data_vencimento: Optional[_dt.date] = None
    id_banco: int
    id_categoria: Optional[int] = None


class LedgerEntry(_Row):
    """Лансаменто для отчётов (с именами категории и банка)."""

    id: int
    descricao: str
    valor: Decimal
    tipo_lancamento: TxnType
    data_competencia: _dt.date
    data_pagamento: Optional[_dt.date] = None
    data_vencimento: Optional[_dt.date] = None
    id_banco: int
    categoria_nome: Optional[str] = None
    banco_nome: Optional[str] = None

    @property
    def cash_date(self) -> _dt.date:
        """Дата движения денег: оплата, иначе компетенция."""
        return self.data_pagamento or self.data_competencia
