# -*- coding: utf-8 -*-
"""
tests/test_api.py
HTTP 接口（fastapi TestClient）：假 feed + 假模型 + 临时库，走一遍手动分析、查归档、冲突、清理。
"""
import sys, os
ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

import asyncio
import copy

import pytest
from fastapi.testclient import TestClient

from impact_hub.api import create_app
from impact_hub.config import DEFAULT_CFG
from impact_hub.prompts import DEFAULT_TEMPLATE, PromptTemplate
from impact_hub.service import NewsImpactService

from fakes import FakeChat, FakeFeed, analysis_reply, make_articles, search_reply

SONAR = "perplexity/sonar"
GPT = "openai/gpt-5-mini"


@pytest.fixture
def service(tmp_path):
    cfg = copy.deepcopy(DEFAULT_CFG)
    cfg["storage"]["db_path"] = str(tmp_path / "impact.db")
    cfg["openrouter"]["api_key"] = "sk-test"

    feed = FakeFeed(make_articles(3))
    chat = FakeChat({SONAR: search_reply(2), GPT: analysis_reply("moderate", 2)})
    svc = asyncio.run(NewsImpactService.create(
        cfg, feed=feed, chat=chat, template=PromptTemplate(DEFAULT_TEMPLATE),
    ))
    svc.start()
    yield svc
    asyncio.run(svc.close())
    assert feed.closed and chat.closed


@pytest.fixture
def client(service):
    return TestClient(create_app(service))


def test_root_and_health(client):
    r = client.get("/")
    assert r.status_code == 200
    assert r.json()["status"] == "operational"

    r = client.get("/api/health")
    body = r.json()
    assert body["status"] == "healthy"
    assert body["timestamp"].endswith("Z")


def test_manual_analysis_then_archive(client, service):
    r = client.post("/api/analyze")
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["last_analysis"]["marketInfluence"] == "moderate"
    assert body["last_analysis"]["eventsCount"] == 2

    r = client.get("/api/analyses", params={"limit": 5})
    rows = r.json()["analyses"]
    assert len(rows) == 1
    assert rows[0]["id"] == body["last_analysis"]["analysisId"]

    r = client.get("/api/articles/retained")
    assert r.json()["count"] == 3
    assert r.json()["retention_stats"]["totalArticles"] == 3

    status = client.get("/api/status").json()
    assert status["total_analyses"] == 1
    assert status["is_analyzing"] is False
    assert status["stats"]["totalArticlesProcessed"] == 3
    assert status["stats"]["recentAnalyses"][0]["marketInfluence"] == "moderate"
    assert status["counters"] == {"searches": 1, "analyses": 1}
    assert status["configuration"]["search_model"] == SONAR


def test_manual_analysis_conflict(client, service):
    service.state.is_analyzing = True
    r = client.post("/api/analyze")
    assert r.status_code == 409
    assert r.json()["success"] is False
    assert "in progress" in r.json()["error"]


def test_global_search(client):
    r = client.post("/api/search/global")
    body = r.json()
    assert body["success"] is True
    assert body["events_found"] == 2
    assert len(body["results"]["global_news_events"]) == 2


def test_current_articles(client, service):
    r = client.get("/api/articles/current", params={"hours": 2})
    body = r.json()
    assert body["count"] == 3
    assert body["articles"][0]["publishedAt"]
    assert service.feed.calls[-1] == (2.0, 50)

    service.feed.success = False
    r = client.get("/api/articles/current")
    assert r.status_code == 502


def test_cleanup(client, service):
    service.retention.insert_many(make_articles(2))
    r = client.post("/api/articles/cleanup")
    body = r.json()
    assert body["articles_removed"] == 0
    assert body["articles_remaining"] == 2
    assert service.retention.stats()["cleanupCount"] == 1


def test_analyses_limit_is_validated(client):
    assert client.get("/api/analyses", params={"limit": 0}).status_code == 422
