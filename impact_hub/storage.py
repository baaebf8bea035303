# -*- coding: utf-8 -*-
"""
impact_hub/storage.py
SQLite（aiosqlite）分析结果归档（只写一次，不更新）：
- 初始化/建表
- 写入一条分析结果，返回 {success, id}
- 查询最近分析
写入失败不抛出，返回 success=False，由调用方记录后继续。
"""

from __future__ import annotations

import json
import sqlite3
import time
import uuid
from pathlib import Path
from typing import Any, Dict, List, Union

import aiosqlite

from impact_hub.models import ImpactAssessment


# --------- 小工具 ---------
def _now_ms() -> int:
    return int(time.time() * 1000)


# --------- 建表 SQL ---------
SCHEMA_ANALYSES = """
CREATE TABLE IF NOT EXISTS analyses (
    id               TEXT PRIMARY KEY,
    created_at_utc   INTEGER NOT NULL,
    analysis         TEXT NOT NULL,
    summary          TEXT NOT NULL,
    market_influence TEXT NOT NULL,
    events_json      TEXT NOT NULL,
    error            TEXT
);
"""

SCHEMA_IDX = """
CREATE INDEX IF NOT EXISTS idx_analyses_created ON analyses(created_at_utc DESC);
CREATE INDEX IF NOT EXISTS idx_analyses_influence ON analyses(market_influence);
"""


# --------- 初始化 ---------
async def init_db(db_path: Union[str, Path]) -> aiosqlite.Connection:
    """初始化数据库并返回连接。"""
    p = Path(db_path)
    p.parent.mkdir(parents=True, exist_ok=True)
    db = await aiosqlite.connect(str(p))
    # 性能相关 pragma
    await db.execute("PRAGMA journal_mode=WAL;")
    await db.execute("PRAGMA synchronous=NORMAL;")
    await db.execute(SCHEMA_ANALYSES)
    for stmt in filter(None, SCHEMA_IDX.split(";")):
        s = stmt.strip()
        if s:
            await db.execute(s + ";")
    await db.commit()
    return db


# --------- 写入 ---------
async def store_analysis(db: aiosqlite.Connection, assessment: ImpactAssessment) -> Dict[str, Any]:
    """
    写入一条分析结果；id 由本地生成（uuid4 hex）。
    返回 {"success": True, "id": ...} 或 {"success": False, "error": ...}
    """
    id_ = uuid.uuid4().hex
    sql = """
    INSERT INTO analyses(id, created_at_utc, analysis, summary, market_influence, events_json, error)
    VALUES(?,?,?,?,?,?,?)
    """
    try:
        await db.execute(sql, (
            id_,
            _now_ms(),
            assessment.analysis or "No analysis available",
            assessment.summary or "No summary available",
            assessment.market_influence or "minimal",
            json.dumps([e.to_dict() for e in assessment.events], ensure_ascii=False),
            assessment.error,
        ))
        await db.commit()
    except (sqlite3.Error, ValueError) as e:
        print(f"[storage] 写入分析结果失败: {e}")
        return {"success": False, "id": None, "error": str(e)}

    print(f"[storage] 分析结果已归档 id={id_}")
    return {"success": True, "id": id_}


# --------- 查询最近分析（给 API / 看板用） ---------
async def get_recent_analyses(db: aiosqlite.Connection, limit: int = 10) -> List[Dict[str, Any]]:
    sql = """
    SELECT id, created_at_utc, analysis, summary, market_influence, events_json, error
      FROM analyses
     ORDER BY created_at_utc DESC
     LIMIT ?;
    """
    out: List[Dict[str, Any]] = []
    try:
        async with db.execute(sql, (int(limit),)) as cur:
            async for row in cur:
                try:
                    events = json.loads(row[5] or "[]")
                except ValueError:
                    events = []
                item = {
                    "id": row[0],
                    "createdAt": row[1],
                    "analysis": row[2],
                    "summary": row[3],
                    "marketInfluence": row[4],
                    "events": events,
                }
                if row[6]:
                    item["error"] = row[6]
                out.append(item)
    except sqlite3.Error as e:
        print(f"[storage] 查询最近分析失败: {e}")
        return []
    return out


async def count_analyses(db: aiosqlite.Connection) -> int:
    async with db.execute("SELECT COUNT(*) FROM analyses;") as cur:
        row = await cur.fetchone()
    return int(row[0]) if row else 0
