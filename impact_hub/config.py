# -*- coding: utf-8 -*-
"""
impact_hub/config.py
ops/config.yml 可选；不存在就用默认。
密钥与部署相关的值从环境变量读（不写进 yml）：
  OPENROUTER_API_KEY / RSS_FEED_SERVICE_URL / PORT / IMPACT_HUB_DB
"""

from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

ROOT = Path(__file__).resolve().parents[1]  # 项目根目录

DEFAULT_CFG: Dict[str, Any] = {
    "server": {
        "host": "0.0.0.0",
        "port": 8088,
    },
    "openrouter": {
        "base_url": "https://openrouter.ai/api/v1",
        "api_key": "",
        "app_title": "impact-hub news analysis",
    },
    "feed": {
        # service: 走 RSS Feed Service 的 HTTP 接口；rss: 直接按 ops/sources.yml 拉 RSS
        "mode": "service",
        "service_url": "",
        "timeout_sec": 15,
        "lookback_hours": 6,
        "max_articles": 50,
    },
    "retention": {
        "hours": 6,
        # 0 = 不限条数，只按时间淘汰
        "max_entries": 0,
        "cleanup_every_sec": 7200,
    },
    "search": {
        "model": "perplexity/sonar",
        "max_tokens": 70000,
        "timeout_sec": 60,
    },
    "analysis": {
        "model": "openai/gpt-5-mini",
        "max_tokens": 50000,
        "temperature": 0.3,
        "timeout_sec": 60,
        "every_sec": 3600,
        "run_on_start": False,
        "prompt_path": "ops/analysis_prompt.md",
    },
    "storage": {
        "db_path": "impact.db",
    },
    "dashboard": {
        # 看板时间显示用的时区（pytz 名称）
        "display_timezone": "UTC",
    },
}


def _merge(base: Dict[str, Any], data: Dict[str, Any]) -> Dict[str, Any]:
    # 按小节浅合并（只合一层，避免过度魔法）
    out = copy.deepcopy(base)
    for key, val in (data or {}).items():
        if isinstance(val, dict) and isinstance(out.get(key), dict):
            out[key] = {**out[key], **val}
        else:
            out[key] = val
    return out


def _apply_env(cfg: Dict[str, Any]) -> Dict[str, Any]:
    key = os.environ.get("OPENROUTER_API_KEY", "").strip()
    if key:
        cfg["openrouter"]["api_key"] = key

    url = os.environ.get("RSS_FEED_SERVICE_URL", "").strip()
    if url:
        cfg["feed"]["service_url"] = url
    elif cfg["feed"].get("mode") == "service" and not cfg["feed"].get("service_url"):
        print("[config] RSS_FEED_SERVICE_URL 缺失，feed 自动降级为 rss 模式")
        cfg["feed"]["mode"] = "rss"

    port = os.environ.get("PORT", "").strip()
    if port:
        try:
            cfg["server"]["port"] = int(port)
        except ValueError:
            print(f"[config] PORT 非法，忽略: {port!r}")

    db = os.environ.get("IMPACT_HUB_DB", "").strip()
    if db:
        cfg["storage"]["db_path"] = db
    return cfg


def load_cfg(path: Optional[Path] = None) -> Dict[str, Any]:
    """读取 ops/config.yml（可选）+ 环境变量，返回完整配置"""
    cfg_path = Path(path) if path else ROOT / "ops" / "config.yml"
    data: Dict[str, Any] = {}
    if cfg_path.exists():
        try:
            data = yaml.safe_load(cfg_path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as e:
            print(f"[config] 读取 {cfg_path} 失败，使用默认。err={e}")
            data = {}
    if not isinstance(data, dict):
        print(f"[config] {cfg_path} 顶层不是映射，忽略")
        data = {}
    return _apply_env(_merge(DEFAULT_CFG, data))


def resolve_path(p: str) -> Path:
    """相对路径按项目根目录解析"""
    path = Path(p)
    return path if path.is_absolute() else ROOT / path
