# -*- coding: utf-8 -*-
"""
impact_hub/state.py
进程内服务状态（启动时构造一次，由 NewsImpactService 持有并注入各组件）：
- is_analyzing：单飞标志，检查并置位在同一把锁内完成
- CycleStatistics：累计计数 + 最近 10 次分析
读状态（/api/status）不加锁，允许看到旧值或进行中的值。
"""

from __future__ import annotations

import threading
from collections import deque
from typing import Any, Deque, Dict, Optional

from impact_hub.models import CycleRecord, ImpactAssessment, LastAnalysis
from impact_hub.retention import RetentionStore
from impact_hub.utils import iso_now

HISTORY_SIZE = 10


class CycleStatistics:
    def __init__(self):
        self.total_articles_processed = 0
        self.critical_alerts_generated = 0
        self.high_impact_events_detected = 0
        self.total_searches = 0
        self.last_search: Optional[str] = None
        self.last_rss_check: Optional[str] = None
        # 最新在最前，满 10 条后最老的自动挤掉
        self.recent_analyses: Deque[CycleRecord] = deque(maxlen=HISTORY_SIZE)

    def record(
        self,
        assessment: ImpactAssessment,
        retained_count: int,
        search_event_count: int = 0,
        duration_ms: int = 0,
    ) -> CycleRecord:
        self.total_articles_processed += retained_count

        if assessment.market_influence == "major":
            self.critical_alerts_generated += 1
        if assessment.market_influence in ("significant", "major"):
            self.high_impact_events_detected += 1

        rec = CycleRecord(
            timestamp=iso_now(),
            market_influence=assessment.market_influence,
            events_count=len(assessment.events),
            summary=assessment.summary,
            duration_ms=duration_ms,
        )
        self.recent_analyses.appendleft(rec)
        return rec

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalArticlesProcessed": self.total_articles_processed,
            "totalSearches": self.total_searches,
            "criticalAlertsGenerated": self.critical_alerts_generated,
            "highImpactEventsDetected": self.high_impact_events_detected,
            "lastRSSCheck": self.last_rss_check,
            "lastSearch": self.last_search,
            "recentAnalyses": [r.to_dict() for r in list(self.recent_analyses)],
        }


class ServiceState:
    def __init__(self, retention: RetentionStore):
        self.is_running = False
        self.is_analyzing = False
        self.last_analysis: Optional[LastAnalysis] = None
        self.total_analyses = 0
        self.stats = CycleStatistics()
        self.retention = retention
        self.started_at: Optional[str] = None

        self._guard = threading.Lock()

    @property
    def last_cleanup(self) -> Optional[str]:
        return self.retention.last_cleanup

    def try_begin_analysis(self) -> bool:
        """原子地检查并置位 is_analyzing；已在跑则返回 False"""
        with self._guard:
            if self.is_analyzing:
                return False
            self.is_analyzing = True
            return True

    def end_analysis(self) -> None:
        """复位单飞标志，且每个真正开始过的周期只计数一次"""
        with self._guard:
            self.is_analyzing = False
            self.total_analyses += 1

    def to_dict(self) -> Dict[str, Any]:
        last = self.last_analysis
        return {
            "status": "operational" if self.is_running else "stopped",
            "is_analyzing": self.is_analyzing,
            "started_at": self.started_at,
            "last_analysis": last.to_dict() if last else None,
            "total_analyses": self.total_analyses,
            "stats": self.stats.to_dict(),
            "last_cleanup": self.last_cleanup,
        }
