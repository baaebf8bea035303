# -*- coding: utf-8 -*-
"""
tests/test_searcher.py
全网事件搜索：正常解析、total_events 以实际条数为准、解析失败与网络失败都不抛。
"""
import sys, os
ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

import asyncio
import json

from impact_hub.llm import LLMError
from impact_hub.models import GlobalEvent
from impact_hub.searcher import (
    PARSE_FAILED_SUMMARY,
    SEARCH_ERROR_SUMMARY,
    GlobalEventSearcher,
    build_search_query,
    parse_search_payload,
)

from fakes import FakeChat, search_reply

SONAR = "perplexity/sonar"


def test_search_success_counts_actual_events():
    chat = FakeChat({SONAR: search_reply(2, reported=7)})
    searcher = GlobalEventSearcher(chat, {"model": SONAR, "max_tokens": 70000, "timeout_sec": 60})

    res = asyncio.run(searcher.search())

    assert res.error is None
    assert res.total_events == 2
    assert res.reported_total_events == 7
    assert res.to_dict()["total_events"] == 2
    assert res.search_summary == "Central banks dominate the tape"
    assert res.search_timestamp.endswith("Z")
    assert searcher.search_count == 1
    assert searcher.last_search_time == res.search_timestamp
    assert chat.calls[0]["max_tokens"] == 70000
    assert "global_news_events" in chat.calls[0]["prompt"]


def test_event_fields_are_normalized():
    res = parse_search_payload(search_reply(1))
    ev = res.events[0]
    assert ev.category == "monetary"
    assert ev.affected_assets == ("bitcoin", "ethereum")


def test_unknown_enums_fall_back():
    ev = GlobalEvent.from_dict({
        "title": "x",
        "category": "sports",
        "crypto_relevance": "extreme",
        "potential_impact": "???",
        "affected_assets": "bitcoin",
    })
    assert ev.category == "other"
    assert ev.crypto_relevance == "low"
    assert ev.potential_impact == "neutral"
    assert ev.affected_assets == ("bitcoin",)


def test_non_object_events_are_skipped():
    payload = json.dumps({"global_news_events": [{"title": "ok"}, "junk", 3], "search_summary": "s"})
    res = parse_search_payload(payload)
    assert res.total_events == 1
    assert res.events[0].title == "ok"


def test_parse_failure_is_reported_not_raised():
    chat = FakeChat({SONAR: "I could not find anything relevant today."})
    searcher = GlobalEventSearcher(chat)

    res = asyncio.run(searcher.search())

    assert res.events == []
    assert res.total_events == 0
    assert res.search_summary == PARSE_FAILED_SUMMARY
    assert res.error.startswith("JSON parsing failed")
    assert searcher.search_count == 0


def test_top_level_array_is_parse_failure():
    res = parse_search_payload("[1, 2, 3]")
    assert res.search_summary == PARSE_FAILED_SUMMARY
    assert res.error


def test_transport_failure_is_reported_not_raised():
    chat = FakeChat({SONAR: LLMError("timeout after 60s")})
    searcher = GlobalEventSearcher(chat)

    res = asyncio.run(searcher.search())

    assert res.total_events == 0
    assert res.search_summary == SEARCH_ERROR_SUMMARY
    assert "timeout" in res.error
    assert searcher.search_count == 0
    assert searcher.last_search_time is None


def test_unexpected_exception_is_reported_not_raised():
    chat = FakeChat({SONAR: RuntimeError("boom")})
    res = asyncio.run(GlobalEventSearcher(chat).search())
    assert res.search_summary == SEARCH_ERROR_SUMMARY
    assert "boom" in res.error


def test_query_embeds_timestamp():
    q = build_search_query("2025-01-01T00:00:00Z")
    assert '"search_timestamp": "2025-01-01T00:00:00Z"' in q
    assert "Provide only valid JSON" in q


def test_infinite_total_events_is_not_fatal():
    cases = [
        ('{"global_news_events": [{"title": "a"}], "total_events": 1e999}', 1),
        ('{"global_news_events": [], "total_events": Infinity}', 0),
    ]
    for raw, expected in cases:
        searcher = GlobalEventSearcher(FakeChat({"*": raw}))
        res = asyncio.run(searcher.search())
        assert res.error is None
        assert res.reported_total_events is None
        assert res.total_events == expected
        assert searcher.search_count == 1


def test_deeply_nested_payload_is_parse_failure():
    deep = "[" * 100000 + "]" * 100000
    raw = '{"global_news_events": ' + deep + ', "search_summary": "s"}'
    searcher = GlobalEventSearcher(FakeChat({"*": raw}))

    res = asyncio.run(searcher.search())

    assert res.search_summary == PARSE_FAILED_SUMMARY
    assert res.error.startswith("JSON parsing failed")
    assert res.events == []
    assert searcher.search_count == 0
