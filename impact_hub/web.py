# coding: utf-8
# 看板：只读分析归档库（analyses 表）
# 运行：streamlit run impact_hub/web.py
from __future__ import annotations

import html
import json
import sqlite3

import pandas as pd
import streamlit as st
from streamlit_autorefresh import st_autorefresh

from impact_hub.config import load_cfg, resolve_path

CFG = load_cfg()
DB_PATH = resolve_path(CFG["storage"]["db_path"])
TZ_NAME = CFG["dashboard"].get("display_timezone") or "UTC"

INFLUENCE_ORDER = ["major", "significant", "moderate", "minimal"]
INFLUENCE_BADGE = {
    "major": "🔴 major",
    "significant": "🟠 significant",
    "moderate": "🟡 moderate",
    "minimal": "🟢 minimal",
}

st.set_page_config(page_title="Impact Hub - 市场影响看板", page_icon="🛰️", layout="wide")

# ========== 样式 ==========
st.markdown("""
<style>
.radar{position:relative;width:20px;height:20px;margin-right:8px}
.radar:before,.radar:after{content:"";position:absolute;border:2px solid rgba(0,200,0,.7);border-radius:50%;inset:0;animation:pulse 1.6s linear infinite}
.radar:after{animation-delay:.8s}
@keyframes pulse{0%{transform:scale(.3);opacity:.9}70%{transform:scale(1.4);opacity:.1}100%{transform:scale(1.6);opacity:0}}
.ih-table{width:100%;border-collapse:collapse;font-size:14px}
.ih-table th,.ih-table td{border-bottom:1px solid rgba(255,255,255,.08);padding:8px 10px;vertical-align:top}
.ih-table th{position:sticky;top:0;background:rgba(0,0,0,.25);backdrop-filter:blur(6px)}
.nowrap{white-space:nowrap}
.small{font-size:12px;color:#a0a0a0}
.err{color:#e0685c}
</style>
""", unsafe_allow_html=True)

# ========== 顶栏 ==========
radar_col, status_col, ctrl_col = st.columns([0.06, 0.54, 0.40], gap="small")
with radar_col:
    st.markdown("<div class='radar'></div>", unsafe_allow_html=True)
with status_col:
    st.markdown("**分析归档** _news impact assessments_")
with ctrl_col:
    auto_refresh = st.checkbox("自动刷新（60s）", value=True)
if auto_refresh:
    st_autorefresh(interval=60 * 1000, key="auto-rerun")
st.markdown("---")


# ========== DB 工具 ==========
def _utc_ms_to_local_str(ms: int, tz_name: str) -> str:
    import datetime, pytz
    tz = pytz.timezone(tz_name)
    dt = datetime.datetime.fromtimestamp(ms / 1000.0, tz=pytz.UTC)
    return dt.astimezone(tz).strftime("%Y-%m-%d %H:%M:%S")


def _connect() -> sqlite3.Connection:
    if not DB_PATH.exists():
        raise FileNotFoundError(f"数据库不存在: {DB_PATH}")
    conn = sqlite3.connect(str(DB_PATH))
    conn.row_factory = sqlite3.Row
    return conn


def _fetch_recent(conn, limit: int = 50) -> pd.DataFrame:
    sql = """
    SELECT id, created_at_utc, analysis, summary, market_influence, events_json, error
    FROM analyses
    ORDER BY created_at_utc DESC
    LIMIT ?
    """
    return pd.read_sql_query(sql, conn, params=[limit])


def _influence_counts(df: pd.DataFrame) -> pd.DataFrame:
    if df is None or df.empty:
        return pd.DataFrame(columns=["market_influence", "count"])
    counts = df["market_influence"].value_counts()
    rows = [{"market_influence": k, "count": int(counts.get(k, 0))} for k in INFLUENCE_ORDER]
    return pd.DataFrame(rows)


# ========== HTML 表格渲染 ==========
def render_table_html(df: pd.DataFrame, tz_name: str) -> str:
    cols = ["时间", "影响", "事件数", "摘要"]
    rows = []
    for _, r in df.iterrows():
        time_str = _utc_ms_to_local_str(int(r["created_at_utc"]), tz_name)
        influence = str(r.get("market_influence", "") or "")
        try:
            n_events = len(json.loads(r.get("events_json") or "[]"))
        except ValueError:
            n_events = 0
        summary = html.escape(str(r.get("summary", "") or ""))
        if r.get("error"):
            summary += f"<div class='small err'>{html.escape(str(r['error']))}</div>"
        rows.append(
            "<tr>"
            f"<td class='nowrap small'>{time_str}</td>"
            f"<td class='nowrap'>{INFLUENCE_BADGE.get(influence, influence)}</td>"
            f"<td>{n_events}</td>"
            f"<td>{summary}</td>"
            "</tr>"
        )
    thead = "<tr>" + "".join([f"<th>{c}</th>" for c in cols]) + "</tr>"
    return f"<table class='ih-table'><thead>{thead}</thead><tbody>{''.join(rows)}</tbody></table>"


# ========== 读库 & 展示 ==========
try:
    conn = _connect()
except Exception as e:
    st.error(f"无法连接数据库：{DB_PATH}\n{e}")
    st.stop()

try:
    df = _fetch_recent(conn)
finally:
    conn.close()

if df.empty:
    st.info("还没有分析结果。服务跑完第一轮后再来看。")
    st.stop()

left_main, right_main = st.columns([0.62, 0.38])

with left_main:
    latest = df.iloc[0]
    st.subheader(f"🧠 最新评估 · {INFLUENCE_BADGE.get(latest['market_influence'], latest['market_influence'])}")
    st.caption(_utc_ms_to_local_str(int(latest["created_at_utc"]), TZ_NAME))
    st.markdown(f"**Summary**：{latest['summary']}")
    with st.expander("完整分析", expanded=False):
        st.write(latest["analysis"])
    try:
        events = json.loads(latest["events_json"] or "[]")
    except ValueError:
        events = []
    for ev in events:
        st.markdown(f"- **{ev.get('title', '')}**：{ev.get('summary', '')}")

with right_main:
    st.subheader("📊 影响分布")
    st.dataframe(_influence_counts(df), use_container_width=True, hide_index=True)

st.markdown("---")
st.subheader("🛰️ 历史评估")
st.markdown(render_table_html(df, tz_name=TZ_NAME), unsafe_allow_html=True)
