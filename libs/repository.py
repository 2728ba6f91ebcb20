# libs/repository.py
"""A thin async repository over the relational backend (SQLAlchemy 2.x).

* Every lookup is scoped by the resolved user id.
* The only write is :meth:`Repository.insert_transaction` – rows in
  ``lancamentos`` are never updated or deleted by the bot.
* Methods return DTOs from :mod:`libs.models`, never ORM rows, so the rest of
  the pipeline (and the tests) do not depend on SQLAlchemy.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Any, Mapping, Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from db.models import BancoRow, CategoriaRow, LancamentoRow, UserRow
from libs.models import Bank, Category, LedgerEntry, PersistedTransaction, TxnType, User

__all__ = ["Repository"]

logger = logging.getLogger(__name__)


class Repository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    # ------------------------------------------------------------------ users
    async def get_user_by_phone(self, phone: str) -> Optional[User]:
        async with self._session_factory() as sess:
            row = await sess.scalar(select(UserRow).where(UserRow.phone_e164 == phone))
        if row is None:
            logger.info("DB: пользователь не найден для %s", phone)
            return None
        return User.model_validate(row)

    # ------------------------------------------------------------------ banks
    async def get_principal_bank(self, user_id: str) -> Optional[Bank]:
        stmt = (
            select(BancoRow)
            .where(BancoRow.user_id == user_id, BancoRow.is_principal.is_(True))
            .order_by(BancoRow.id)
            .limit(1)
        )
        async with self._session_factory() as sess:
            row = await sess.scalar(stmt)
        return Bank.model_validate(row) if row is not None else None

    async def get_latest_bank(self, user_id: str) -> Optional[Bank]:
        stmt = (
            select(BancoRow)
            .where(BancoRow.user_id == user_id)
            .order_by(BancoRow.created_at.desc(), BancoRow.id.desc())
            .limit(1)
        )
        async with self._session_factory() as sess:
            row = await sess.scalar(stmt)
        return Bank.model_validate(row) if row is not None else None

    async def list_banks(self, user_id: str) -> list[Bank]:
        stmt = select(BancoRow).where(BancoRow.user_id == user_id).order_by(BancoRow.id)
        async with self._session_factory() as sess:
            rows = (await sess.scalars(stmt)).all()
        return [Bank.model_validate(r) for r in rows]

    # ------------------------------------------------------------- categories
    async def list_categories(self, user_id: str, tipo: TxnType) -> list[Category]:
        stmt = (
            select(CategoriaRow)
            .where(CategoriaRow.user_id == user_id, CategoriaRow.tipo_lancamento == tipo.value)
            .order_by(CategoriaRow.id)
        )
        async with self._session_factory() as sess:
            rows = (await sess.scalars(stmt)).all()
        logger.info("DB: %s категорий (%s) для %s", len(rows), tipo.value, user_id)
        return [Category.model_validate(r) for r in rows]

    # ---------------------------------------------------------- transactions
    async def insert_transaction(self, values: Mapping[str, Any]) -> PersistedTransaction:
        async with self._session_factory() as sess:
            row = LancamentoRow(**values)
            sess.add(row)
            await sess.commit()
            await sess.refresh(row)
        logger.info("DB: создан лансаменто id=%s", row.id)
        return PersistedTransaction.model_validate(row)

    def _entries_stmt(self, user_id: str):
        return (
            select(LancamentoRow, CategoriaRow.nome, BancoRow.nome_banco)
            .join(BancoRow, LancamentoRow.id_banco == BancoRow.id)
            .outerjoin(CategoriaRow, LancamentoRow.id_categoria == CategoriaRow.id)
            .where(BancoRow.user_id == user_id)
        )

    async def _fetch_entries(self, stmt) -> list[LedgerEntry]:
        async with self._session_factory() as sess:
            result = await sess.execute(stmt)
            rows = result.all()
        return [
            LedgerEntry(
                id=lanc.id,
                descricao=lanc.descricao,
                valor=lanc.valor,
                tipo_lancamento=lanc.tipo_lancamento,
                data_competencia=lanc.data_competencia,
                data_pagamento=lanc.data_pagamento,
                data_vencimento=lanc.data_vencimento,
                id_banco=lanc.id_banco,
                categoria_nome=categoria_nome,
                banco_nome=banco_nome,
            )
            for lanc, categoria_nome, banco_nome in rows
        ]

    async def list_open_entries(self, user_id: str, tipo: TxnType) -> list[LedgerEntry]:
        """Неоплаченные лансаменто (``data_pagamento IS NULL``) по сроку оплаты."""
        stmt = (
            self._entries_stmt(user_id)
            .where(
                LancamentoRow.tipo_lancamento == tipo.value,
                LancamentoRow.data_pagamento.is_(None),
            )
            .order_by(LancamentoRow.data_vencimento.asc().nulls_last(), LancamentoRow.id)
        )
        return await self._fetch_entries(stmt)

    async def list_entries_until(self, user_id: str, end: date) -> list[LedgerEntry]:
        """Все движения до конца периода – нужны для переходящего остатка."""
        stmt = (
            self._entries_stmt(user_id)
            .where(
                or_(
                    LancamentoRow.data_pagamento <= end,
                    and_(
                        LancamentoRow.data_pagamento.is_(None),
                        LancamentoRow.data_competencia <= end,
                    ),
                )
            )
            .order_by(LancamentoRow.data_pagamento.asc().nulls_last(), LancamentoRow.id)
        )
        return await self._fetch_entries(stmt)
