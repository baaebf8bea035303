# -*- coding: utf-8 -*-
"""
impact_hub/searcher.py
全网突发事件搜索（perplexity/sonar 经 OpenRouter）。
search() 永不抛异常：解析失败、网络失败都编码在返回的 SearchResult.error 里。
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from impact_hub.llm import ChatClient, LLMError
from impact_hub.models import GlobalEvent, SearchResult
from impact_hub.utils import extract_json, iso_now

PARSE_FAILED_SUMMARY = "Failed to parse search results"
SEARCH_ERROR_SUMMARY = "Error occurred while searching global news"


def build_search_query(timestamp: str) -> str:
    return f"""Search for and analyze the most important global news events in the last 24 hours that could significantly impact cryptocurrency markets.

Focus specifically on:
- Regulatory announcements and government policy decisions affecting crypto
- Central bank decisions, interest rate changes, and monetary policy
- Major economic indicators, recession signals, or financial market instability
- Geopolitical events, wars, sanctions, or international conflicts
- Major financial institution decisions regarding cryptocurrency
- Technology developments, security breaches, or protocol issues
- Corporate adoption or rejection of cryptocurrency
- Breaking news from major governments (US, EU, China, etc.)

Return the results in the following JSON format:
{{
  "global_news_events": [
    {{
      "title": "Event title",
      "description": "Detailed description of the event and its potential crypto market impact",
      "timestamp": "ISO timestamp if available",
      "source": "Primary source of information",
      "category": "regulatory|monetary|economic|geopolitical|technology|institutional|corporate|other",
      "crypto_relevance": "high|medium|low",
      "potential_impact": "positive|negative|neutral",
      "affected_assets": ["bitcoin", "ethereum", "defi", "altcoins", "stablecoins", "entire_market"],
      "summary": "Brief one-sentence summary",
      "market_implications": "Specific explanation of how this could affect crypto markets"
    }}
  ],
  "search_summary": "Overall summary of major themes and potential crypto market impacts",
  "total_events": 0,
  "search_timestamp": "{timestamp}",
  "risk_assessment": "overall assessment of current global risk environment for crypto"
}}

Provide only valid JSON, no additional text. Focus on events with medium to high crypto relevance. Aim for 8-15 of the most significant events."""


def _failed(summary: str, error: str) -> SearchResult:
    return SearchResult(
        events=[],
        search_summary=summary,
        search_timestamp=iso_now(),
        error=error,
    )


def _as_int(v: Any) -> Optional[int]:
    try:
        return int(v)
    except (TypeError, ValueError, OverflowError):
        return None


def parse_search_payload(content: str) -> SearchResult:
    """原始文本 -> SearchResult；解析不了就返回带 error 的空结果"""
    json_text = extract_json(content)
    try:
        data = json.loads(json_text)
    except (ValueError, RecursionError) as e:
        print(f"[search] JSON 解析失败: {e}")
        print(f"[search] 原始内容: {content[:500]}...")
        return _failed(PARSE_FAILED_SUMMARY, f"JSON parsing failed: {e}")

    if not isinstance(data, dict):
        print(f"[search] 返回的不是 JSON 对象: {type(data).__name__}")
        return _failed(PARSE_FAILED_SUMMARY, "JSON parsing failed: top-level value is not an object")

    raw_events = data.get("global_news_events") or []
    if not isinstance(raw_events, list):
        raw_events = []

    events: List[GlobalEvent] = []
    for item in raw_events:
        if isinstance(item, dict):
            events.append(GlobalEvent.from_dict(item))

    return SearchResult(
        events=events,
        search_summary=str(data.get("search_summary") or ""),
        risk_assessment=str(data.get("risk_assessment") or ""),
        search_timestamp=iso_now(),
        reported_total_events=_as_int(data.get("total_events")),
    )


class GlobalEventSearcher:
    def __init__(self, chat: ChatClient, cfg: Optional[Dict[str, Any]] = None):
        cfg = cfg or {}
        self._chat = chat
        self.model = cfg.get("model", "perplexity/sonar")
        self.max_tokens = int(cfg.get("max_tokens", 70000))
        self.timeout = float(cfg.get("timeout_sec", 60))

        self.search_count = 0
        self.last_search_time: Optional[str] = None

    async def search(self) -> SearchResult:
        print("[search] 搜索全网加密相关突发事件…")
        try:
            content = await self._chat.complete(
                build_search_query(iso_now()),
                model=self.model,
                max_tokens=self.max_tokens,
                timeout=self.timeout,
            )
        except LLMError as e:
            print(f"[search] 搜索请求失败: {e}")
            return _failed(SEARCH_ERROR_SUMMARY, str(e))
        except Exception as e:
            print(f"[search] 搜索异常: {e!r}")
            return _failed(SEARCH_ERROR_SUMMARY, repr(e))

        # 解析阶段同样不许抛出
        try:
            result = parse_search_payload(content)
        except Exception as e:
            print(f"[search] 结果处理异常: {e!r}")
            return _failed(PARSE_FAILED_SUMMARY, f"JSON parsing failed: {e!r}")
        if result.error:
            return result

        self.search_count += 1
        self.last_search_time = result.search_timestamp
        print(f"[search] 找到 {result.total_events} 条相关事件")
        return result
