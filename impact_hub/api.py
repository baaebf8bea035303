# -*- coding: utf-8 -*-
"""
impact_hub/api.py
HTTP 接口（FastAPI）：手动触发分析 / 搜索 / 清理，读状态、读归档、读保留文章。
错误统一返回 {"success": false, "error": "..."}，不带堆栈和密钥。
"""

from __future__ import annotations

import time

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse

from impact_hub.pipeline import AnalysisInProgressError
from impact_hub.service import NewsImpactService
from impact_hub.storage import get_recent_analyses
from impact_hub.utils import iso_now

SERVICE_NAME = "impact-hub news analysis"
VERSION = "1.0.0"


def create_app(service: NewsImpactService) -> FastAPI:
    app = FastAPI(title="impact-hub", version=VERSION)
    app.state.service = service
    booted = time.monotonic()

    def uptime() -> float:
        return round(time.monotonic() - booted, 3)

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        print(f"[api] 未处理异常 {request.method} {request.url.path}: {exc!r}")
        return JSONResponse(status_code=500, content={"success": False, "error": "Internal server error"})

    @app.get("/")
    async def root():
        return {
            "service": SERVICE_NAME,
            "version": VERSION,
            "description": "News analysis combining RSS feeds and global news search for crypto market impact assessment",
            "status": "operational" if service.state.is_running else "stopped",
            "data_sources": [
                "RSS feeds from major financial news sources",
                "Global news search via Perplexity",
            ],
        }

    @app.get("/api/status")
    async def status():
        cfg = service.cfg
        out = service.state.to_dict()
        out.update({
            "uptime": uptime(),
            "configuration": {
                "analysis_every_sec": cfg["analysis"]["every_sec"],
                "max_articles_per_analysis": cfg["feed"]["max_articles"],
                "article_lookback_hours": cfg["feed"]["lookback_hours"],
                "article_retention_hours": cfg["retention"]["hours"],
                "cleanup_every_sec": cfg["retention"]["cleanup_every_sec"],
                "feed_mode": cfg["feed"]["mode"],
                "analysis_model": cfg["analysis"]["model"],
                "search_model": cfg["search"]["model"],
            },
            "retention_stats": service.retention.stats(),
            "counters": {
                "searches": service.searcher.search_count,
                "analyses": service.analyzer.analysis_count,
            },
        })
        return out

    @app.post("/api/analyze")
    async def analyze():
        print("[api] 手动触发分析")
        try:
            await service.pipeline.run_manual()
        except AnalysisInProgressError as e:
            return JSONResponse(status_code=409, content={
                "success": False,
                "error": str(e),
                "last_analysis_at": service.state.last_analysis.timestamp if service.state.last_analysis else None,
            })
        last = service.state.last_analysis
        return {
            "success": True,
            "message": "Manual analysis completed",
            "last_analysis": last.to_dict() if last else None,
            "status": "completed",
        }

    @app.get("/api/analyses")
    async def analyses(limit: int = Query(10, ge=1, le=100)):
        rows = await get_recent_analyses(service.db, limit)
        return {"success": True, "analyses": rows, "count": len(rows)}

    @app.get("/api/articles/current")
    async def current_articles(hours: float = Query(6, gt=0, le=168)):
        res = await service.feed.fetch_recent(hours, service.pipeline.max_articles)
        if not res.success:
            return JSONResponse(status_code=502, content={"success": False, "error": "Feed source unavailable"})
        return {
            "success": True,
            "articles": [a.to_dict() for a in res.articles],
            "count": len(res.articles),
            "lookback_hours": hours,
        }

    @app.get("/api/articles/retained")
    async def retained_articles():
        articles = service.retention.snapshot()
        return {
            "success": True,
            "articles": [a.to_dict() for a in articles],
            "count": len(articles),
            "retention_stats": service.retention.stats(),
        }

    @app.post("/api/search/global")
    async def search_global():
        print("[api] 手动触发全网搜索")
        result = await service.searcher.search()
        return {
            "success": True,
            "message": "Global news search completed",
            "results": result.to_dict(),
            "events_found": result.total_events,
        }

    @app.post("/api/articles/cleanup")
    async def cleanup():
        print("[api] 手动触发文章清理")
        removed = service.pipeline.run_cleanup()
        return {
            "success": True,
            "message": "Article cleanup completed",
            "articles_removed": removed,
            "articles_remaining": len(service.retention),
        }

    @app.get("/api/health")
    async def health():
        return {
            "service": "news-analysis-service",
            "status": "healthy",
            "timestamp": iso_now(),
            "uptime": uptime(),
        }

    return app
