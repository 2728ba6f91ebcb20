# services/bot_worker/context.py
"""Контекст процесса: всё долгоживущее создаётся один раз при старте воркера
и явно передаётся в каждую стадию конвейера."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

import diskcache
from sqlalchemy.ext.asyncio import AsyncEngine

from db.session import build_session_factory
from libs.clock import Clock
from libs.config import Settings
from libs.envelope import MediaDownloader
from libs.llm import FallbackChain, build_llm_chain
from libs.repository import Repository
from libs.whatsapp import FallbackSender, build_sender

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    settings: Settings
    clock: Clock
    llm: FallbackChain
    repo: Repository
    sender: FallbackSender
    downloader: Optional[MediaDownloader] = None
    cache: Optional[diskcache.Cache] = None
    engine: Optional[AsyncEngine] = field(default=None, repr=False)

    async def aclose(self) -> None:
        await self.sender.aclose()
        if self.cache is not None:
            self.cache.close()
        if self.engine is not None:
            await self.engine.dispose()


def build_context(settings: Settings) -> AppContext:
    engine, session_factory = build_session_factory(settings)
    sender, cloud = build_sender(settings)
    ctx = AppContext(
        settings=settings,
        clock=Clock(settings.timezone),
        llm=build_llm_chain(settings),
        repo=Repository(session_factory),
        sender=sender,
        downloader=cloud.download_media,
        cache=diskcache.Cache(str(settings.llm_cache_dir)),
        engine=engine,
    )
    logger.info(
        "Контекст готов: LLM=%s, каналы=%s, tz=%s",
        [s.provider.name for s in ctx.llm.strategies],
        [t.name for t in sender.transports],
        settings.timezone,
    )
    return ctx
