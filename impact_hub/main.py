# impact_hub/main.py
# 串起：service -> scheduler(analysis + housekeeper) -> api server

from __future__ import annotations

import asyncio

import uvicorn

from impact_hub.api import create_app
from impact_hub.config import load_cfg
from impact_hub.scheduler import run_analysis_loop, run_housekeeper
from impact_hub.service import NewsImpactService


async def main(run_seconds: int = 0, serve_api: bool = True):
    cfg = load_cfg()
    service = await NewsImpactService.create(cfg)
    service.start()

    tasks = []
    print("[main] creating tasks…")

    # 1) 定时分析
    tasks.append(asyncio.create_task(run_analysis_loop(
        service.pipeline,
        every_sec=int(cfg["analysis"]["every_sec"]),
        run_on_start=bool(cfg["analysis"].get("run_on_start", False)),
    )))

    # 2) 清理器
    tasks.append(asyncio.create_task(run_housekeeper(
        service.pipeline, every_sec=int(cfg["retention"]["cleanup_every_sec"]),
    )))

    # 3) HTTP 接口
    if serve_api:
        server = uvicorn.Server(uvicorn.Config(
            create_app(service),
            host=cfg["server"]["host"],
            port=int(cfg["server"]["port"]),
            log_level="info",
        ))
        tasks.append(asyncio.create_task(server.serve()))
        print(f"[main] api on {cfg['server']['host']}:{cfg['server']['port']}")

    print(f"[main] running for {run_seconds or 'ever'}s …")
    try:
        if run_seconds and run_seconds > 0:
            await asyncio.sleep(run_seconds)
        elif serve_api:
            # 常驻：uvicorn 收到 SIGINT/SIGTERM 会自己退出
            await tasks[-1]
        else:
            await asyncio.Event().wait()
    except asyncio.CancelledError:
        print("[main] cancelled")
        raise
    finally:
        # 优雅退出
        for t in tasks:
            t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await service.close()
        print("[main] finished")


if __name__ == "__main__":
    import argparse
    parser = argparse.ArgumentParser()
    parser.add_argument("--run-seconds", type=int, default=0)
    parser.add_argument("--no-api", action="store_true", help="只跑定时任务，不起 HTTP")
    args = parser.parse_args()

    asyncio.run(main(run_seconds=args.run_seconds, serve_api=not args.no_api))
