# -*- coding: utf-8 -*-
"""
impact_hub/feeds.py
文章来源（统一接口 fetch_recent(hours, limit) -> FetchResult）：
- FeedServiceSource：对接独立的 RSS Feed Service（HTTP）
- RssFeedSource：按 ops/sources.yml 直接拉 RSS（feedparser）
失败不抛出，返回 success=False 的 FetchResult。
"""

from __future__ import annotations

import asyncio
import datetime
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import feedparser
import httpx
import yaml

from impact_hub.models import Article, FetchResult

USER_AGENT = "impact-hub/1.0"

# -------------------- 工具函数 --------------------

def normalize_link(url: Optional[str]) -> Optional[str]:
    """
    规范化链接：去掉 utm_*、ref/ref_src 等统计参数，去掉 fragment。
    让“同文不同链”更容易被识别为同一条。
    """
    if not url:
        return url
    try:
        from urllib.parse import urlparse, urlunparse, parse_qsl, urlencode
        u = urlparse(url)
        qs = [
            (k, v)
            for (k, v) in parse_qsl(u.query, keep_blank_values=True)
            if not k.lower().startswith("utm_") and k.lower() not in {"ref", "ref_src"}
        ]
        return urlunparse((u.scheme, u.netloc, u.path, u.params, urlencode(qs, doseq=True), ""))
    except ValueError:
        return url


def _published_dt(entry: Any) -> Optional[datetime.datetime]:
    """从 feedparser 的 entry 里取发布时间（UTC）；没有就 None"""
    for attr in ("published_parsed", "updated_parsed"):
        parsed = getattr(entry, attr, None) or entry.get(attr)
        if parsed:
            try:
                return datetime.datetime(*parsed[:6], tzinfo=datetime.timezone.utc)
            except (TypeError, ValueError):
                continue
    return None


def parse_rss(text: str, source_id: str) -> List[Dict[str, Any]]:
    """
    解析RSS/Atom内容，返回文章dict列表（publishedAt 为 ISO 字符串）
    没有标题或链接的条目丢弃。
    没有时间的条目 publishedAt 留空（保证去重键稳定），ts_published 用当前时间，只用于窗口过滤与排序。
    """
    out: List[Dict[str, Any]] = []
    feed = feedparser.parse(text)
    for entry in feed.get("entries", []):
        title = (entry.get("title") or "").strip()
        link = normalize_link((entry.get("link") or "").strip())
        if not title or not link:
            continue
        dt = _published_dt(entry)
        published = dt.isoformat().replace("+00:00", "Z") if dt else ""
        if dt is None:
            dt = datetime.datetime.now(datetime.timezone.utc)
        out.append({
            "title": title,
            "url": link,
            "source": source_id,
            "publishedAt": published,
            "summary": (entry.get("summary") or "").strip(),
            "ts_published": int(dt.timestamp() * 1000),
        })
    return out


# -------------------- 源一：RSS Feed Service（HTTP） --------------------

class FeedServiceSource:
    """
    对接独立的 RSS Feed Service：
      GET {base}/api/articles/recent?hours=..&limit=..
      -> {"success": true, "articles": [...]}
    """

    def __init__(self, base_url: str, timeout: float = 15.0):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None
        self.last_fetch_time: Optional[int] = None

    def _client_get(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, headers={"User-Agent": USER_AGENT})
        return self._client

    async def fetch_recent(self, hours: float, limit: int) -> FetchResult:
        print(f"[feed] 拉取最近 {hours} 小时文章…")
        try:
            r = await self._client_get().get(
                f"{self._base_url}/api/articles/recent",
                params={"hours": hours, "limit": limit},
            )
            data = r.json()
        except (httpx.HTTPError, ValueError) as e:
            print(f"[feed] 拉取失败: {e!r}")
            return FetchResult(success=False, error=str(e) or repr(e))

        if r.status_code != 200 or not isinstance(data, dict) or not data.get("success"):
            err = data.get("error") if isinstance(data, dict) else None
            err = err or f"http {r.status_code}"
            print(f"[feed] 服务返回失败: {err}")
            return FetchResult(success=False, error=str(err))

        raw = data.get("articles") or []
        articles = [Article.from_dict(a) for a in raw if isinstance(a, dict)]
        self.last_fetch_time = int(time.time() * 1000)
        print(f"[feed] 拿到 {len(articles)} 篇文章")
        return FetchResult(success=True, articles=articles)

    async def close(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None


# -------------------- 源二：直接拉 RSS（ops/sources.yml） --------------------

def load_sources(path: Path) -> List[Dict[str, Any]]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return (yaml.safe_load(f) or {}).get("sources", []) or []
    except FileNotFoundError:
        print(f"[feed] 未找到 {path}，没有 RSS 源")
        return []


class RssFeedSource:
    """按 sources.yml 一次性并发拉取所有启用的 rss 源，合并、过滤、截断"""

    def __init__(self, sources: List[Dict[str, Any]], timeout: float = 15.0):
        self._sources = [
            s for s in sources
            if s.get("enabled", True) and (s.get("type", "") or "").strip().lower() == "rss"
        ]
        self._timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None
        self.last_fetch_time: Optional[int] = None

    def _client_get(self) -> httpx.AsyncClient:
        """全局复用一个 httpx AsyncClient，避免频繁建连。"""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, headers={"User-Agent": USER_AGENT})
        return self._client

    async def _poll_one(self, src: Dict[str, Any]) -> List[Dict[str, Any]]:
        url = src.get("url", "")
        source_id = src.get("id", "") or url
        try:
            resp = await self._client_get().get(url)
        except httpx.HTTPError as e:
            print(f"[rss] {source_id} 异常: {e!r}")
            return []
        if resp.status_code != 200:
            print(f"[rss] {source_id} 响应失败 status={resp.status_code}")
            return []
        items = parse_rss(resp.text, source_id)
        print(f"[rss] {source_id} 解析 {len(items)} 条")
        return items

    async def fetch_recent(self, hours: float, limit: int) -> FetchResult:
        if not self._sources:
            return FetchResult(success=False, error="no rss sources configured")

        batches = await asyncio.gather(*(self._poll_one(s) for s in self._sources))
        cutoff = int(time.time() * 1000) - int(hours * 3600 * 1000)

        seen: set[str] = set()
        items: List[Dict[str, Any]] = []
        for batch in batches:
            for it in batch:
                if it["ts_published"] < cutoff or it["url"] in seen:
                    continue
                seen.add(it["url"])
                items.append(it)

        items.sort(key=lambda it: it["ts_published"], reverse=True)
        articles = [
            Article.from_dict({k: v for k, v in it.items() if k != "ts_published"})
            for it in items[:limit]
        ]
        self.last_fetch_time = int(time.time() * 1000)
        print(f"[feed] RSS 合计 {len(articles)} 篇（{len(self._sources)} 个源）")
        return FetchResult(success=True, articles=articles)

    async def close(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None
