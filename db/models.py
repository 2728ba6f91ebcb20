# db/models.py
"""Схема реляционного хранилища. Таблицы принадлежат бэкенду – бот их только читает
(и добавляет строки в `lancamentos`)."""
from datetime import date, datetime as dt
from decimal import Decimal

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Integer, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class UserRow(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    nome: Mapped[str | None] = mapped_column(String)
    phone_e164: Mapped[str] = mapped_column(String, unique=True, nullable=False)


class BancoRow(Base):
    __tablename__ = "bancos"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False)
    nome_banco: Mapped[str] = mapped_column(String, nullable=False)
    is_principal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    saldo_inicial: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, default=0)
    data_inicio: Mapped[date | None] = mapped_column(Date)
    created_at: Mapped[dt] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("idx_bancos_user", "user_id"),)


class CategoriaRow(Base):
    __tablename__ = "categorias"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False)
    nome: Mapped[str] = mapped_column(String, nullable=False)
    tipo_lancamento: Mapped[str] = mapped_column(String, nullable=False)

    __table_args__ = (Index("idx_categorias_user_tipo", "user_id", "tipo_lancamento"),)


class LancamentoRow(Base):
    __tablename__ = "lancamentos"

    # Обязательные поля (nullable=False)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    descricao: Mapped[str] = mapped_column(String, nullable=False)
    valor: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    tipo_lancamento: Mapped[str] = mapped_column(String, nullable=False)
    data_lancamento: Mapped[date] = mapped_column(Date, nullable=False)
    data_competencia: Mapped[date] = mapped_column(Date, nullable=False)
    id_banco: Mapped[int] = mapped_column(ForeignKey("bancos.id"), nullable=False)

    # Необязательные поля
    data_pagamento: Mapped[date | None] = mapped_column(Date)
    data_vencimento: Mapped[date | None] = mapped_column(Date)
    id_categoria: Mapped[int | None] = mapped_column(ForeignKey("categorias.id"))
    created_at: Mapped[dt] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_lancamentos_banco", "id_banco"),
        Index("idx_lancamentos_competencia", "data_competencia"),
        Index("idx_lancamentos_pagamento", "data_pagamento"),
    )
