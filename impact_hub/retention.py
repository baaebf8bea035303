# -*- coding: utf-8 -*-
"""
impact_hub/retention.py
文章保留区（内存，重启即丢）：
- insert_many：按 article_id 去重，首次见到才入库并记下入库时间
- snapshot：拷贝出当前所有文章（按入库顺序）
- evict_expired：清掉入库超过保留窗口的文章
分析周期与清理任务可能并发触达，所有读写都在同一把锁内完成；
条目本身不可变、整条插入，快照不会看到“半条”。
"""

from __future__ import annotations

import threading
from typing import Callable, Dict, Iterable, List, Optional, Union

from impact_hub.models import Article, RetainedEntry
from impact_hub.utils import article_id, ms_to_iso, now_ms


class RetentionStore:
    def __init__(
        self,
        retention_hours: float = 6,
        clock: Callable[[], int] = now_ms,
        max_entries: int = 0,
    ):
        self.retention_hours = retention_hours
        self.max_entries = int(max_entries or 0)
        self.cleanup_count = 0
        self.last_cleanup: Optional[str] = None

        self._clock = clock
        self._lock = threading.Lock()
        # dict 保持插入顺序，快照顺序即入库顺序
        self._entries: Dict[str, RetainedEntry] = {}

    @property
    def retention_ms(self) -> int:
        return int(self.retention_hours * 3600 * 1000)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def insert_many(self, articles: Iterable[Union[Article, dict]]) -> int:
        """幂等写入，返回本次新增条数"""
        now = self._clock()
        added = 0
        dropped = 0
        with self._lock:
            for a in articles:
                art = a if isinstance(a, Article) else Article.from_dict(a)
                key = article_id(art)
                if key in self._entries:
                    continue
                self._entries[key] = RetainedEntry(article=art, ingested_at_ms=now)
                added += 1
            if self.max_entries > 0:
                while len(self._entries) > self.max_entries:
                    # 最早入库的在最前
                    self._entries.pop(next(iter(self._entries)))
                    dropped += 1
            total = len(self._entries)

        if dropped:
            print(f"[retention] 超过上限 {self.max_entries}，丢弃最早的 {dropped} 条")
        print(f"[retention] 新增 {added} 篇，当前保留 {total} 篇")
        return added

    def snapshot(self) -> List[Article]:
        with self._lock:
            articles = [e.article for e in self._entries.values()]
        print(f"[retention] 取出 {len(articles)} 篇保留文章")
        return articles

    def entries(self) -> List[RetainedEntry]:
        with self._lock:
            return list(self._entries.values())

    def evict_expired(self, retention_ms: Optional[int] = None) -> int:
        """
        删除 now - ingested_at > 窗口 的条目；恰好等于窗口的保留。
        返回删除条数。
        """
        window = self.retention_ms if retention_ms is None else int(retention_ms)
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if now - e.ingested_at_ms > window]
            for k in expired:
                del self._entries[k]
            remaining = len(self._entries)
            self.cleanup_count += 1
            self.last_cleanup = ms_to_iso(now)

        print(f"[cleanup] 清理 {len(expired)} 篇过期文章，剩余 {remaining} 篇")
        return len(expired)

    def stats(self) -> dict:
        with self._lock:
            return {
                "totalArticles": len(self._entries),
                "cleanupCount": self.cleanup_count,
                "lastCleanup": self.last_cleanup,
                "retentionHours": self.retention_hours,
            }
