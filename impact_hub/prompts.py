# -*- coding: utf-8 -*-
"""
impact_hub/prompts.py
分析 prompt 模板：文本放在 ops/analysis_prompt.md，占位符写成 {{name}}。
模板里未提供的占位符原样保留，方便排查。
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Mapping, Union

_VAR_RE = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")

# 模板文件缺失时的兜底
DEFAULT_TEMPLATE = """You are a senior crypto market analyst. Assess how the news below could influence cryptocurrency markets.

Timestamp: {{timestamp}}
Analysis type: {{analysis_type}}
Market context: {{market_context}}

# RSS articles ({{total_rss_articles}})

{{rss_articles_section}}

# Global news events ({{total_global_events}})

{{global_news_section}}

Respond with JSON only:
{
  "analysis": "detailed reasoning",
  "summary": "one paragraph summary",
  "market_influence": "minimal|moderate|significant|major",
  "events": [{"title": "...", "summary": "...", "analysis": "..."}]
}
"""


class PromptTemplate:
    def __init__(self, text: str):
        self.text = text

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "PromptTemplate":
        p = Path(path)
        try:
            return cls(p.read_text(encoding="utf-8"))
        except OSError as e:
            print(f"[prompt] 读取模板失败，使用内置模板。path={p} err={e}")
            return cls(DEFAULT_TEMPLATE)

    def render(self, variables: Mapping[str, Any]) -> str:
        def sub(m: "re.Match[str]") -> str:
            name = m.group(1)
            if name not in variables:
                return m.group(0)
            return str(variables[name])

        return _VAR_RE.sub(sub, self.text)
