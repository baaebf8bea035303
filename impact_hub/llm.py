# -*- coding: utf-8 -*-
"""
impact_hub/llm.py
OpenRouter chat-completions 适配器（httpx 异步）。
搜索（perplexity/sonar）和分析（gpt 类模型）都走这一个出口，
只负责把 prompt 发出去、把文本拿回来；JSON 抽取与校验交给调用方。
"""

from __future__ import annotations

import re
from typing import Any, Dict, Optional

import httpx

_KEY_RE = re.compile(r"(Bearer\s+)[^\s'\"]+", re.IGNORECASE)


class LLMError(Exception):
    """请求没拿到可用正文：超时、网络、HTTP 错误、choices 为空"""


def redact(text: str) -> str:
    return _KEY_RE.sub(r"\1***", text or "")


class ChatClient:
    def __init__(
        self,
        api_key: str,
        base_url: str = "https://openrouter.ai/api/v1",
        app_title: str = "impact-hub news analysis",
    ):
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._app_title = app_title
        self._client: Optional[httpx.AsyncClient] = None

    def _client_get(self) -> httpx.AsyncClient:
        # 复用连接池；超时按每次请求单独给
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={"User-Agent": "impact-hub/1.0"},
                trust_env=True,
            )
        return self._client

    async def complete(
        self,
        prompt: str,
        *,
        model: str,
        max_tokens: int,
        timeout: float,
        temperature: Optional[float] = None,
    ) -> str:
        """单轮 user 消息 -> 模型文本；任何失败都抛 LLMError"""
        payload: Dict[str, Any] = {
            "model": model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": max_tokens,
        }
        if temperature is not None:
            payload["temperature"] = temperature

        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
            "X-Title": self._app_title,
        }

        try:
            r = await self._client_get().post(
                f"{self._base_url}/chat/completions",
                json=payload,
                headers=headers,
                timeout=timeout,
            )
        except httpx.TimeoutException as e:
            raise LLMError(f"timeout after {timeout}s: {e!r}") from e
        except httpx.HTTPError as e:
            raise LLMError(f"request failed: {redact(repr(e))}") from e

        if r.status_code != 200:
            raise LLMError(f"http {r.status_code}: {redact((r.text or '')[:300])}")

        try:
            data = r.json()
        except ValueError as e:
            raise LLMError(f"response is not JSON: {e}") from e

        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices:
            raise LLMError("No response from LLM")
        try:
            content = choices[0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise LLMError(f"malformed choices: {e!r}") from e
        if not isinstance(content, str):
            raise LLMError("No response from LLM")
        return content.strip()

    async def close(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None
