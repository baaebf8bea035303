# -*- coding: utf-8 -*-
"""
impact_hub/analyzer.py
合并 RSS 文章 + 全网事件 -> 填 prompt -> 调模型 -> 抠 JSON -> 校验成 ImpactAssessment。
analyze() 只会抛 AnalysisError 家族；降级处理由编排器负责。
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Sequence

from impact_hub.llm import ChatClient, LLMError
from impact_hub.models import (
    MARKET_INFLUENCE,
    Article,
    EventNote,
    ImpactAssessment,
    SearchResult,
)
from impact_hub.prompts import PromptTemplate
from impact_hub.utils import extract_json, iso_now

ANALYSIS_TYPE = "combined_rss_and_global_analysis"
MARKET_CONTEXT = "Analysis based purely on news sources"
REQUIRED_FIELDS = ("analysis", "summary", "market_influence", "events")

NO_RSS = "No RSS articles available"
NO_GLOBAL = "No global news events available"


class AnalysisError(Exception):
    """分析失败的基类"""


class AnalysisTransportError(AnalysisError):
    pass


class AnalysisParseError(AnalysisError):
    pass


class AnalysisValidationError(AnalysisError):
    pass


# ---------------- prompt 片段 ----------------

def format_articles_section(articles: Sequence[Article]) -> str:
    if not articles:
        return NO_RSS
    blocks = []
    for i, a in enumerate(articles, 1):
        blocks.append(
            f"### RSS Article {i}\n"
            f"**Title**: {a.title}\n"
            f"**Source**: {a.source}\n"
            f"**Published**: {a.published_at}\n"
            f"**Content**: {a.body}\n"
            f"**URL**: {a.url}\n"
            f"\n---"
        )
    return "\n\n".join(blocks)


def format_global_section(search: Optional[SearchResult]) -> str:
    if search is None or not search.events:
        return NO_GLOBAL
    blocks = []
    for i, ev in enumerate(search.events, 1):
        assets = ", ".join(ev.affected_assets) if ev.affected_assets else "N/A"
        blocks.append(
            f"### Global News Event {i}\n"
            f"**Title**: {ev.title}\n"
            f"**Source**: {ev.source}\n"
            f"**Category**: {ev.category}\n"
            f"**Crypto Relevance**: {ev.crypto_relevance}\n"
            f"**Potential Impact**: {ev.potential_impact}\n"
            f"**Description**: {ev.description}\n"
            f"**Market Implications**: {ev.market_implications}\n"
            f"**Affected Assets**: {assets}\n"
            f"**Timestamp**: {ev.timestamp or 'N/A'}\n"
            f"\n---"
        )
    return (
        f"**Global News Search Summary**: {search.search_summary}\n"
        f"**Total Events Found**: {search.total_events}\n"
        f"**Risk Assessment**: {search.risk_assessment}\n"
        f"**Search Timestamp**: {search.search_timestamp}\n"
        f"\n## Individual Global News Events:\n\n"
        + "\n\n".join(blocks)
    )


# ---------------- 解析与校验 ----------------

def _text(v: Any) -> str:
    if v is None:
        return ""
    return v.strip() if isinstance(v, str) else str(v)


def sanitize_analysis(data: Dict[str, Any]) -> ImpactAssessment:
    """
    已确认四个字段都在的 dict -> ImpactAssessment。
    events 不是数组就当空；单条事件缺字段用占位补齐，不让整轮失败。
    """
    raw_events = data.get("events")
    if not isinstance(raw_events, list):
        raw_events = []

    notes: List[EventNote] = []
    for i, ev in enumerate(raw_events):
        ev = ev if isinstance(ev, dict) else {}
        notes.append(EventNote(
            title=_text(ev.get("title")) or f"Event {i + 1}",
            summary=_text(ev.get("summary")) or "No summary available",
            analysis=_text(ev.get("analysis")) or "No analysis available",
        ))

    influence = _text(data.get("market_influence")).lower()
    if influence not in MARKET_INFLUENCE:
        influence = "minimal"

    return ImpactAssessment(
        analysis=_text(data.get("analysis")) or "No analysis available",
        summary=_text(data.get("summary")) or "No summary available",
        market_influence=influence,
        events=notes,
    )


def parse_analysis_response(raw: str) -> ImpactAssessment:
    json_text = extract_json(raw)
    try:
        data = json.loads(json_text)
    except (ValueError, RecursionError) as e:
        print(f"[parse] 分析结果解析失败: {e}")
        print(f"[parse] 原始内容: {(raw or '')[:500]}")
        raise AnalysisParseError(f"Failed to parse analysis response: {e}") from e

    if not isinstance(data, dict):
        raise AnalysisParseError("Failed to parse analysis response: top-level value is not an object")

    for name in REQUIRED_FIELDS:
        if name not in data:
            print(f"[parse] 缺少必填字段: {name}")
            raise AnalysisValidationError(f"Missing required field: {name}")

    try:
        return sanitize_analysis(data)
    except RecursionError as e:
        # 嵌套过深的字段值转字符串时也会爆栈
        raise AnalysisParseError(f"Failed to parse analysis response: {e}") from e


# ---------------- 分析器 ----------------

class ImpactAnalyzer:
    def __init__(
        self,
        chat: ChatClient,
        template: PromptTemplate,
        cfg: Optional[Dict[str, Any]] = None,
    ):
        cfg = cfg or {}
        self._chat = chat
        self._template = template
        self.model = cfg.get("model", "openai/gpt-5-mini")
        self.max_tokens = int(cfg.get("max_tokens", 50000))
        self.temperature = float(cfg.get("temperature", 0.3))
        self.timeout = float(cfg.get("timeout_sec", 60))

        self.analysis_count = 0

    def build_prompt(self, articles: Sequence[Article], search: Optional[SearchResult]) -> str:
        return self._template.render({
            "timestamp": iso_now(),
            "analysis_type": ANALYSIS_TYPE,
            "total_rss_articles": len(articles),
            "total_global_events": search.total_events if search else 0,
            "rss_articles_section": format_articles_section(articles),
            "global_news_section": format_global_section(search),
            "market_context": MARKET_CONTEXT,
        })

    async def analyze(
        self,
        articles: Sequence[Article],
        search: Optional[SearchResult],
    ) -> Optional[ImpactAssessment]:
        """
        返回 None 表示“两边都没内容，无需分析”，不是错误。
        传输 / 解析 / 校验失败抛 AnalysisError 子类。
        """
        articles = list(articles or [])
        n_events = search.total_events if search else 0
        if not articles and n_events == 0:
            print("[analysis] 没有文章也没有全网事件，跳过分析")
            return None

        print(f"[analysis] 开始综合分析：{len(articles)} 篇文章 + {n_events} 条全网事件")
        prompt = self.build_prompt(articles, search)

        try:
            raw = await self._chat.complete(
                prompt,
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                timeout=self.timeout,
            )
        except LLMError as e:
            print(f"[analysis] 模型请求失败: {e}")
            raise AnalysisTransportError(str(e)) from e

        print("[analysis] 收到模型返回")
        result = parse_analysis_response(raw)
        self.analysis_count += 1
        print(f"[analysis] 完成 - influence={result.market_influence} events={len(result.events)}")
        return result
