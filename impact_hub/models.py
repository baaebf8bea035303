# -*- coding: utf-8 -*-
"""
impact_hub/models.py
数据模型：
- Article / RetainedEntry：RSS 文章与其入库时间
- GlobalEvent / SearchResult：全网搜索得到的事件
- EventNote / ImpactAssessment：LLM 给出的市场影响评估
- CycleRecord / LastAnalysis：分析周期的快照
对外 JSON 字段沿用原服务的命名（publishedAt、marketInfluence 等）。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

CATEGORIES = (
    "regulatory", "monetary", "economic", "geopolitical",
    "technology", "institutional", "corporate", "other",
)
RELEVANCE = ("high", "medium", "low")
IMPACTS = ("positive", "negative", "neutral")
MARKET_INFLUENCE = ("minimal", "moderate", "significant", "major")

_ARTICLE_KEYS = {"title", "source", "url", "publishedAt", "published_at", "content", "summary"}


def _s(v: Any) -> str:
    """None -> ""，其余转字符串"""
    if v is None:
        return ""
    return v if isinstance(v, str) else str(v)


def _pick(value: Any, allowed: Tuple[str, ...], default: str) -> str:
    v = _s(value).strip().lower()
    return v if v in allowed else default


# ---------------- RSS 文章 ----------------

@dataclass(frozen=True)
class Article:
    title: str = ""
    source: str = ""
    url: str = ""
    published_at: str = ""
    content: str = ""
    summary: str = ""
    # 上游多给的字段原样保留（如 impact_score），不参与去重
    extra: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Article":
        published = d.get("publishedAt")
        if published is None:
            published = d.get("published_at")
        return cls(
            title=_s(d.get("title")),
            source=_s(d.get("source")),
            url=_s(d.get("url")),
            published_at=_s(published),
            content=_s(d.get("content")),
            summary=_s(d.get("summary")),
            extra={k: v for k, v in d.items() if k not in _ARTICLE_KEYS},
        )

    @property
    def body(self) -> str:
        return self.content or self.summary or "No content available"

    def to_dict(self) -> Dict[str, Any]:
        out = dict(self.extra)
        out.update({
            "title": self.title,
            "source": self.source,
            "url": self.url,
            "publishedAt": self.published_at,
            "content": self.content,
            "summary": self.summary,
        })
        return out


@dataclass(frozen=True)
class RetainedEntry:
    article: Article
    ingested_at_ms: int


# ---------------- 全网事件搜索 ----------------

@dataclass
class GlobalEvent:
    title: str
    description: str = ""
    timestamp: Optional[str] = None
    source: str = ""
    category: str = "other"
    crypto_relevance: str = "low"
    potential_impact: str = "neutral"
    affected_assets: Tuple[str, ...] = ()
    summary: str = ""
    market_implications: str = ""

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "GlobalEvent":
        """把模型返回的松散 dict 收敛成强类型事件；枚举值不合法时回落到默认值"""
        assets = d.get("affected_assets")
        if isinstance(assets, str):
            assets = [assets]
        elif not isinstance(assets, (list, tuple)):
            assets = []
        uniq: List[str] = []
        for a in assets:
            a = _s(a).strip()
            if a and a not in uniq:
                uniq.append(a)

        ts = d.get("timestamp")
        return cls(
            title=_s(d.get("title")),
            description=_s(d.get("description")),
            timestamp=_s(ts) if ts else None,
            source=_s(d.get("source")),
            category=_pick(d.get("category"), CATEGORIES, "other"),
            crypto_relevance=_pick(d.get("crypto_relevance"), RELEVANCE, "low"),
            potential_impact=_pick(d.get("potential_impact"), IMPACTS, "neutral"),
            affected_assets=tuple(uniq),
            summary=_s(d.get("summary")),
            market_implications=_s(d.get("market_implications")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "timestamp": self.timestamp,
            "source": self.source,
            "category": self.category,
            "crypto_relevance": self.crypto_relevance,
            "potential_impact": self.potential_impact,
            "affected_assets": list(self.affected_assets),
            "summary": self.summary,
            "market_implications": self.market_implications,
        }


@dataclass
class SearchResult:
    events: List[GlobalEvent] = field(default_factory=list)
    search_summary: str = ""
    risk_assessment: str = ""
    search_timestamp: str = ""
    error: Optional[str] = None
    # 上游自报的 total_events，仅留档；权威值永远是 len(events)
    reported_total_events: Optional[int] = None

    @property
    def total_events(self) -> int:
        return len(self.events)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "global_news_events": [e.to_dict() for e in self.events],
            "search_summary": self.search_summary,
            "total_events": self.total_events,
            "risk_assessment": self.risk_assessment,
            "search_timestamp": self.search_timestamp,
        }
        if self.reported_total_events is not None:
            out["reported_total_events"] = self.reported_total_events
        if self.error:
            out["error"] = self.error
        return out


# ---------------- LLM 影响评估 ----------------

@dataclass
class EventNote:
    title: str
    summary: str
    analysis: str

    def to_dict(self) -> Dict[str, str]:
        return {"title": self.title, "summary": self.summary, "analysis": self.analysis}


@dataclass
class ImpactAssessment:
    analysis: str
    summary: str
    market_influence: str
    events: List[EventNote] = field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def degraded(cls, message: str) -> "ImpactAssessment":
        """模型输出无法校验时的降级结果：字段齐全，但语义最小"""
        return cls(
            analysis="Analysis failed due to technical error",
            summary="Analysis failed due to technical error",
            market_influence="minimal",
            events=[],
            error=message or "unknown error",
        )

    @property
    def is_degraded(self) -> bool:
        return self.error is not None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "analysis": self.analysis,
            "summary": self.summary,
            "market_influence": self.market_influence,
            "events": [e.to_dict() for e in self.events],
        }
        if self.error:
            out["error"] = self.error
        return out


# ---------------- 周期快照 ----------------

@dataclass(frozen=True)
class CycleRecord:
    timestamp: str
    market_influence: str
    events_count: int
    summary: str
    duration_ms: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "marketInfluence": self.market_influence,
            "eventsCount": self.events_count,
            "summary": self.summary,
            "durationMs": self.duration_ms,
        }


@dataclass(frozen=True)
class LastAnalysis:
    timestamp: str
    analysis_id: Optional[str]
    market_influence: str
    events_count: int
    summary: str
    duration_ms: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "analysisId": self.analysis_id,
            "marketInfluence": self.market_influence,
            "eventsCount": self.events_count,
            "summary": self.summary,
            "durationMs": self.duration_ms,
        }


@dataclass
class FetchResult:
    """feed 源的统一返回：success=False 时 articles 为空，error 说明原因"""
    success: bool
    articles: List[Article] = field(default_factory=list)
    error: Optional[str] = None
