# -*- coding: utf-8 -*-
"""
impact_hub/service.py
把配置装配成一套组件：状态、保留区、feed 源、搜索器、分析器、归档库、编排器。
启动时构造一次，退出时 close()。
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import aiosqlite

from impact_hub.analyzer import ImpactAnalyzer
from impact_hub.config import ROOT, resolve_path
from impact_hub.feeds import FeedServiceSource, RssFeedSource, load_sources
from impact_hub.llm import ChatClient
from impact_hub.pipeline import AnalysisPipeline, FeedSource
from impact_hub.prompts import PromptTemplate
from impact_hub.retention import RetentionStore
from impact_hub.searcher import GlobalEventSearcher
from impact_hub.state import ServiceState
from impact_hub.storage import init_db
from impact_hub.utils import iso_now


def build_feed(feed_cfg: Dict[str, Any]) -> FeedSource:
    timeout = float(feed_cfg.get("timeout_sec", 15))
    if feed_cfg.get("mode") == "service" and feed_cfg.get("service_url"):
        return FeedServiceSource(feed_cfg["service_url"], timeout=timeout)
    return RssFeedSource(load_sources(ROOT / "ops" / "sources.yml"), timeout=timeout)


class NewsImpactService:
    def __init__(
        self,
        cfg: Dict[str, Any],
        db: aiosqlite.Connection,
        *,
        feed: Optional[FeedSource] = None,
        chat: Optional[ChatClient] = None,
        template: Optional[PromptTemplate] = None,
    ):
        self.cfg = cfg
        self.db = db

        orc = cfg["openrouter"]
        if not orc.get("api_key") and chat is None:
            print("[service] OPENROUTER_API_KEY 缺失，搜索与分析请求将失败（按降级处理）")
        self.chat = chat or ChatClient(orc.get("api_key", ""), orc["base_url"], orc.get("app_title", "impact-hub"))

        ret = cfg["retention"]
        self.retention = RetentionStore(
            retention_hours=float(ret.get("hours", 6)),
            max_entries=int(ret.get("max_entries", 0) or 0),
        )
        self.state = ServiceState(self.retention)

        self.feed = feed or build_feed(cfg["feed"])
        self.searcher = GlobalEventSearcher(self.chat, cfg["search"])
        if template is None:
            template = PromptTemplate.from_file(resolve_path(cfg["analysis"]["prompt_path"]))
        self.analyzer = ImpactAnalyzer(self.chat, template, cfg["analysis"])

        self.pipeline = AnalysisPipeline(
            self.state, self.feed, self.searcher, self.analyzer, db, cfg["feed"],
        )

    @classmethod
    async def create(cls, cfg: Dict[str, Any], **kwargs) -> "NewsImpactService":
        db = await init_db(resolve_path(cfg["storage"]["db_path"]))
        return cls(cfg, db, **kwargs)

    def start(self) -> None:
        print("[service] 启动新闻影响分析服务")
        self.state.is_running = True
        self.state.started_at = iso_now()

    def stop(self) -> None:
        print("[service] 停止新闻影响分析服务")
        self.state.is_running = False

    async def close(self) -> None:
        self.stop()
        for res in (self.feed, self.chat):
            closer = getattr(res, "close", None)
            if closer is not None:
                await closer()
        await self.db.close()
