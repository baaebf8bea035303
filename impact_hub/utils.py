import hashlib
import re
import time
from datetime import datetime, timezone
from typing import Any, Union

from impact_hub.models import Article


def now_ms() -> int:
    """
    获取当前时间的UTC毫秒时间戳

    返回:
        当前时间的毫秒时间戳
    """
    return int(time.time() * 1000)


def iso_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def ms_to_iso(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000.0, tz=timezone.utc).isoformat().replace("+00:00", "Z")


def article_id(article: Union[Article, dict]) -> str:
    """
    文章去重键：title + url + publishedAt 拼接后取 sha1。
    任何字段缺失都按空串处理；其它字段不同也视为同一篇。
    """
    if isinstance(article, Article):
        title, url, published = article.title, article.url, article.published_at
    else:
        title = article.get("title") or ""
        url = article.get("url") or ""
        published = article.get("publishedAt") or article.get("published_at") or ""
    base = f"{title}{url}{published}"
    return hashlib.sha1(base.encode("utf-8")).hexdigest()


# 按顺序匹配，先中先用
_FENCE_PATTERNS = (
    re.compile(r"```(?:json)?\s*\n?([\s\S]*?)\n?```", re.IGNORECASE),
    re.compile(r"`{3}\s*\n?([\s\S]*?)\n?`{3}"),
)


def extract_json(content: Any) -> str:
    """
    从 LLM 原始输出里抠出 JSON 文本：
    1) ``` 围栏（可带 json 标签）  2) 无标签的 ``` 围栏
    3) 去掉首尾反引号后取第一个 { 到最后一个 }
    4) 都不行就原样（trim 后）交给解析器，让它明确报错
    """
    text = (content or "").strip() if isinstance(content, str) else str(content or "").strip()

    for pat in _FENCE_PATTERNS:
        m = pat.search(text)
        if m:
            return m.group(1).strip()

    stripped = text.strip("`")
    start = stripped.find("{")
    end = stripped.rfind("}")
    if start != -1 and end > start:
        return stripped[start:end + 1]

    return text
