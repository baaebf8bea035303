# -*- coding: utf-8 -*-
"""
impact_hub/pipeline.py
一轮分析：拉文章 -> 入保留区 -> 取快照 ∥ 全网搜索 -> 合并 -> LLM 分析 -> 归档 -> 更新统计
- 同一时刻只跑一轮（ServiceState.try_begin_analysis）
- 定时触发撞上正在跑的：静默跳过；手动触发：抛 AnalysisInProgressError
- 任一上游失败都用空值/降级结果顶上，不让整轮崩
"""

from __future__ import annotations

import asyncio
import time
import traceback
from typing import Any, Dict, List, Optional, Protocol

import aiosqlite

from impact_hub.analyzer import AnalysisError, ImpactAnalyzer
from impact_hub.models import Article, FetchResult, ImpactAssessment, LastAnalysis, SearchResult
from impact_hub.searcher import GlobalEventSearcher
from impact_hub.state import ServiceState
from impact_hub.storage import store_analysis
from impact_hub.utils import iso_now


class FeedSource(Protocol):
    async def fetch_recent(self, hours: float, limit: int) -> FetchResult: ...


class AnalysisInProgressError(Exception):
    """手动触发时已有分析在跑"""


class AnalysisPipeline:
    def __init__(
        self,
        state: ServiceState,
        feed: FeedSource,
        searcher: GlobalEventSearcher,
        analyzer: ImpactAnalyzer,
        db: aiosqlite.Connection,
        feed_cfg: Optional[Dict[str, Any]] = None,
    ):
        feed_cfg = feed_cfg or {}
        self.state = state
        self.feed = feed
        self.searcher = searcher
        self.analyzer = analyzer
        self.db = db
        self.lookback_hours = float(feed_cfg.get("lookback_hours", 6))
        self.max_articles = int(feed_cfg.get("max_articles", 50))
        self.last_assessment: Optional[ImpactAssessment] = None

    # ---------------- 入口 ----------------

    async def run_cycle(self) -> Optional[LastAnalysis]:
        """定时入口：服务未运行或已有分析在跑就跳过"""
        if not self.state.is_running:
            print("[cycle] 服务未运行，跳过本轮")
            return None
        if not self.state.try_begin_analysis():
            print("[cycle] 上一轮分析尚未结束，跳过本轮")
            return None
        return await self._run_guarded()

    async def run_manual(self) -> Optional[LastAnalysis]:
        """手动入口：已有分析在跑时明确告诉调用方"""
        if not self.state.try_begin_analysis():
            raise AnalysisInProgressError("Analysis already in progress")
        print("[cycle] 手动触发分析")
        return await self._run_guarded()

    def run_cleanup(self) -> int:
        print("[cleanup] 开始清理过期文章…")
        return self.state.retention.evict_expired()

    # ---------------- 周期主体 ----------------

    async def _run_guarded(self) -> Optional[LastAnalysis]:
        started = time.monotonic()
        try:
            return await self._cycle(started)
        except Exception as e:
            print(f"[cycle] 分析周期异常: {e!r}")
            traceback.print_exc()
            return None
        finally:
            self.state.end_analysis()

    async def _collect(self) -> List[Article]:
        """步骤 1-3：拉取 -> 入保留区 -> 取快照（快照才是本轮的分析语料）"""
        try:
            res = await self.feed.fetch_recent(self.lookback_hours, self.max_articles)
        except Exception as e:
            print(f"[cycle] 拉取文章异常: {e!r}")
            res = FetchResult(success=False, error=repr(e))
        self.state.stats.last_rss_check = iso_now()

        fresh = res.articles if res.success else []
        if not res.success:
            print(f"[cycle] 文章源不可用，按空处理: {res.error}")
        if fresh:
            self.state.retention.insert_many(fresh)
        return self.state.retention.snapshot()

    async def _search(self) -> SearchResult:
        result = await self.searcher.search()
        if not result.error:
            self.state.stats.total_searches += 1
            self.state.stats.last_search = result.search_timestamp
        return result

    async def _cycle(self, started: float) -> Optional[LastAnalysis]:
        print("[cycle] 开始综合分析周期（RSS + 全网搜索）")

        articles, search = await asyncio.gather(self._collect(), self._search())

        if not articles and search.total_events == 0:
            print("[cycle] 没有文章也没有全网事件，本轮结束")
            return None

        try:
            assessment = await self.analyzer.analyze(articles, search)
        except AnalysisError as e:
            print(f"[cycle] 分析失败，使用降级结果: {e}")
            assessment = ImpactAssessment.degraded(str(e))

        if assessment is None:
            print("[cycle] 分析器无结果，本轮结束")
            return None

        self.last_assessment = assessment
        stored = await store_analysis(self.db, assessment)
        if not stored.get("success"):
            print("[cycle] 归档失败，仍更新内存快照")

        duration_ms = int((time.monotonic() - started) * 1000)
        self.state.stats.record(assessment, len(articles), search.total_events, duration_ms)

        last = LastAnalysis(
            timestamp=iso_now(),
            analysis_id=stored.get("id"),
            market_influence=assessment.market_influence,
            events_count=len(assessment.events),
            summary=assessment.summary,
            duration_ms=duration_ms,
        )
        self.state.last_analysis = last

        print(f"[cycle] 完成，用时 {duration_ms}ms")
        print(f"[result] Market Influence: {assessment.market_influence}")
        print(f"[result] Events Identified: {len(assessment.events)}")
        print(f"[result] Summary: {assessment.summary}")
        return last
