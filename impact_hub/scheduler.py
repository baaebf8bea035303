# -*- coding: utf-8 -*-
"""
impact_hub/scheduler.py
两个常驻循环，和核心逻辑解耦：只调用 pipeline.run_cycle() / run_cleanup()。
测试里可直接调用入口函数，不需要真实时钟。
"""

from __future__ import annotations

import asyncio

from impact_hub.pipeline import AnalysisPipeline


async def run_analysis_loop(pipeline: AnalysisPipeline, every_sec: int = 3600, run_on_start: bool = False):
    """定时分析；撞上正在进行的分析由 run_cycle 自己静默跳过。"""
    print(f"[scheduler] analysis started, every {every_sec}s")
    try:
        if not run_on_start:
            await asyncio.sleep(every_sec)
        while True:
            try:
                await pipeline.run_cycle()
            except Exception as e:
                print(f"[scheduler] run_cycle error: {e!r}")
            await asyncio.sleep(every_sec)
    except asyncio.CancelledError:
        print("[scheduler] analysis cancelled")
        raise
    finally:
        print("[scheduler] analysis finished")


async def run_housekeeper(pipeline: AnalysisPipeline, every_sec: int = 7200):
    """定期清理过期文章，避免保留区膨胀。"""
    print("[housekeeper] started")
    try:
        while True:
            await asyncio.sleep(every_sec)
            if not pipeline.state.is_running:
                print("[housekeeper] 服务未运行，跳过清理")
                continue
            try:
                pipeline.run_cleanup()
            except Exception as e:
                print(f"[housekeeper] run_cleanup error: {e!r}")
    except asyncio.CancelledError:
        print("[housekeeper] cancelled")
        raise
    finally:
        print("[housekeeper] finished")
