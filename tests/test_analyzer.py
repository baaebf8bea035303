# -*- coding: utf-8 -*-
"""
tests/test_analyzer.py
影响分析器：prompt 拼装、JSON 校验、占位补齐、计数。
"""
import sys, os
ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

import asyncio
import json

import pytest

from impact_hub.analyzer import (
    NO_GLOBAL,
    NO_RSS,
    AnalysisParseError,
    AnalysisTransportError,
    AnalysisValidationError,
    ImpactAnalyzer,
    format_articles_section,
    format_global_section,
    parse_analysis_response,
)
from impact_hub.llm import LLMError
from impact_hub.models import Article, SearchResult
from impact_hub.prompts import DEFAULT_TEMPLATE, PromptTemplate
from impact_hub.searcher import parse_search_payload

from fakes import FakeChat, analysis_reply, make_articles, search_reply

GPT = "openai/gpt-5-mini"


def _analyzer(reply):
    chat = FakeChat({GPT: reply})
    return ImpactAnalyzer(chat, PromptTemplate(DEFAULT_TEMPLATE), {"model": GPT}), chat


def _articles(n):
    return [Article.from_dict(a) for a in make_articles(n)]


def test_nothing_to_analyze_returns_none():
    analyzer, chat = _analyzer(analysis_reply())
    assert asyncio.run(analyzer.analyze([], SearchResult())) is None
    assert asyncio.run(analyzer.analyze([], None)) is None
    assert chat.calls == []
    assert analyzer.analysis_count == 0


def test_successful_analysis():
    analyzer, chat = _analyzer("```json\n" + analysis_reply("major", 3) + "\n```")
    res = asyncio.run(analyzer.analyze(_articles(2), parse_search_payload(search_reply(1))))

    assert res.market_influence == "major"
    assert [e.title for e in res.events] == ["Event 1", "Event 2", "Event 3"]
    assert res.error is None
    assert analyzer.analysis_count == 1
    assert chat.calls[0]["temperature"] == 0.3
    assert chat.calls[0]["max_tokens"] == 50000


def test_prompt_carries_both_sources():
    analyzer, chat = _analyzer(analysis_reply())
    asyncio.run(analyzer.analyze(_articles(3), parse_search_payload(search_reply(2))))
    prompt = chat.calls[0]["prompt"]

    assert "### RSS Article 3" in prompt
    assert "### Global News Event 2" in prompt
    assert "# RSS articles (3)" in prompt
    assert "# Global news events (2)" in prompt
    assert "combined_rss_and_global_analysis" in prompt
    assert "{{" not in prompt


def test_articles_only_uses_global_placeholder():
    analyzer, chat = _analyzer(analysis_reply())
    asyncio.run(analyzer.analyze(_articles(1), None))
    assert NO_GLOBAL in chat.calls[0]["prompt"]


def test_events_only_uses_rss_placeholder():
    analyzer, chat = _analyzer(analysis_reply())
    asyncio.run(analyzer.analyze([], parse_search_payload(search_reply(1))))
    assert NO_RSS in chat.calls[0]["prompt"]


def test_missing_required_field():
    raw = json.dumps({"analysis": "a", "summary": "s", "market_influence": "minimal"})
    with pytest.raises(AnalysisValidationError, match="Missing required field: events"):
        parse_analysis_response(raw)


def test_prose_is_parse_error():
    with pytest.raises(AnalysisParseError):
        parse_analysis_response("The market is calm, nothing to report.")


def test_event_placeholders_and_bad_influence():
    raw = json.dumps({
        "analysis": "a",
        "summary": "s",
        "market_influence": "HUGE",
        "events": [{}, {"title": "Named"}, "junk"],
    })
    res = parse_analysis_response(raw)
    assert res.market_influence == "minimal"
    assert [e.title for e in res.events] == ["Event 1", "Named", "Event 3"]
    assert res.events[0].summary == "No summary available"
    assert res.events[1].analysis == "No analysis available"


def test_influence_is_case_insensitive():
    raw = json.dumps({"analysis": "a", "summary": "s", "market_influence": "Significant", "events": []})
    assert parse_analysis_response(raw).market_influence == "significant"


def test_non_list_events_become_empty():
    raw = json.dumps({"analysis": "a", "summary": "s", "market_influence": "moderate", "events": "none"})
    res = parse_analysis_response(raw)
    assert res.events == []
    assert res.market_influence == "moderate"


def test_counter_only_moves_on_success():
    analyzer, _ = _analyzer("not json")
    with pytest.raises(AnalysisParseError):
        asyncio.run(analyzer.analyze(_articles(1), None))
    assert analyzer.analysis_count == 0


def test_transport_error_is_wrapped():
    analyzer, _ = _analyzer(LLMError("http 502: bad gateway"))
    with pytest.raises(AnalysisTransportError, match="502"):
        asyncio.run(analyzer.analyze(_articles(1), None))
    assert analyzer.analysis_count == 0


def test_article_section_body_fallback():
    arts = [Article(title="T", source="S", url="U", published_at="P")]
    section = format_articles_section(arts)
    assert "**Content**: No content available" in section
    arts = [Article(title="T", summary="only summary")]
    assert "**Content**: only summary" in format_articles_section(arts)


def test_global_section_lists_assets():
    section = format_global_section(parse_search_payload(search_reply(1)))
    assert "**Affected Assets**: bitcoin, ethereum" in section
    assert "**Total Events Found**: 1" in section
    assert format_global_section(SearchResult()) == NO_GLOBAL


def test_template_keeps_unknown_placeholders():
    tpl = PromptTemplate("{{timestamp}} / {{ nope }}")
    assert tpl.render({"timestamp": "T"}) == "T / {{ nope }}"


def test_template_missing_file_falls_back(tmp_path):
    tpl = PromptTemplate.from_file(tmp_path / "missing.md")
    assert tpl.text == DEFAULT_TEMPLATE


def test_deeply_nested_reply_is_parse_error():
    deep = "[" * 100000 + "]" * 100000
    raw = '{"analysis": ' + deep + ', "summary": "s", "market_influence": "minimal", "events": []}'
    analyzer, _ = _analyzer(raw)
    with pytest.raises(AnalysisParseError):
        asyncio.run(analyzer.analyze(_articles(1), None))
    assert analyzer.analysis_count == 0
