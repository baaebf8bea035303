# -*- coding: utf-8 -*-
"""
tests/test_config.py
配置：yml 按小节覆盖默认值，环境变量优先。
"""
import sys, os
ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

from impact_hub.config import DEFAULT_CFG, ROOT, load_cfg, resolve_path

ENV_KEYS = ("OPENROUTER_API_KEY", "RSS_FEED_SERVICE_URL", "PORT", "IMPACT_HUB_DB")


def _clear_env(monkeypatch):
    for k in ENV_KEYS:
        monkeypatch.delenv(k, raising=False)


def test_yaml_overrides_one_section_key(tmp_path, monkeypatch):
    _clear_env(monkeypatch)
    p = tmp_path / "config.yml"
    p.write_text("analysis:\n  every_sec: 600\nfeed:\n  mode: rss\n", encoding="utf-8")

    cfg = load_cfg(p)
    assert cfg["analysis"]["every_sec"] == 600
    # 同小节其它键保留默认
    assert cfg["analysis"]["model"] == DEFAULT_CFG["analysis"]["model"]
    assert cfg["feed"]["mode"] == "rss"
    # 默认值本身不被改动
    assert DEFAULT_CFG["analysis"]["every_sec"] == 3600


def test_env_overrides(tmp_path, monkeypatch):
    _clear_env(monkeypatch)
    monkeypatch.setenv("OPENROUTER_API_KEY", "sk-env")
    monkeypatch.setenv("RSS_FEED_SERVICE_URL", "http://feed.internal:3000")
    monkeypatch.setenv("PORT", "9100")
    monkeypatch.setenv("IMPACT_HUB_DB", "/tmp/impact-test.db")

    cfg = load_cfg(tmp_path / "missing.yml")
    assert cfg["openrouter"]["api_key"] == "sk-env"
    assert cfg["feed"]["mode"] == "service"
    assert cfg["feed"]["service_url"] == "http://feed.internal:3000"
    assert cfg["server"]["port"] == 9100
    assert cfg["storage"]["db_path"] == "/tmp/impact-test.db"


def test_service_mode_without_url_falls_back_to_rss(tmp_path, monkeypatch):
    _clear_env(monkeypatch)
    cfg = load_cfg(tmp_path / "missing.yml")
    assert cfg["feed"]["mode"] == "rss"


def test_bad_port_and_bad_yaml_are_ignored(tmp_path, monkeypatch):
    _clear_env(monkeypatch)
    monkeypatch.setenv("PORT", "eighty")
    p = tmp_path / "config.yml"
    p.write_text("- just\n- a list\n", encoding="utf-8")
    cfg = load_cfg(p)
    assert cfg["server"]["port"] == DEFAULT_CFG["server"]["port"]

    p.write_text("analysis: [unclosed\n", encoding="utf-8")
    assert load_cfg(p)["analysis"]["every_sec"] == 3600


def test_resolve_path():
    assert resolve_path("ops/analysis_prompt.md") == ROOT / "ops" / "analysis_prompt.md"
    assert str(resolve_path("/var/lib/impact.db")) == "/var/lib/impact.db"


def test_dashboard_timezone(tmp_path, monkeypatch):
    _clear_env(monkeypatch)
    assert load_cfg(tmp_path / "missing.yml")["dashboard"]["display_timezone"] == "UTC"

    p = tmp_path / "config.yml"
    p.write_text("dashboard:\n  display_timezone: Australia/Sydney\n", encoding="utf-8")
    assert load_cfg(p)["dashboard"]["display_timezone"] == "Australia/Sydney"
