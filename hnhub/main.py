# hnhub/main.py
# 串起：config -> store(+seed) -> 启动抓取 -> 首页刷新 / 全量刷新两个定时循环

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import List, Optional

from hnhub.config import load_cfg
from hnhub.service import HubService
from hnhub.utils import setup_logging

log = logging.getLogger("hnhub.main")


async def _startup_fetch(hub: HubService) -> None:
    """启动时抓一次；失败只记日志"""
    try:
        await hub.ingest(hub.full_refresh_pages)
    except Exception:
        log.exception("[main] 启动抓取失败")


async def main(run_seconds: int = 0, cfg: Optional[dict] = None) -> None:
    cfg = cfg or load_cfg()
    hub = await HubService.from_config(cfg)
    i_cfg = cfg["ingest"]

    tasks: List[asyncio.Task] = []
    log.info(
        "[main] flags: auto_fetch=%s fetch_multiple_pages=%s categorize=%s",
        i_cfg["auto_fetch"], i_cfg["fetch_multiple_pages"], cfg["categorize"]["enabled"],
    )

    if i_cfg["auto_fetch"]:
        tasks.append(asyncio.create_task(_startup_fetch(hub)))
        # 1) 首页刷新
        tasks.append(asyncio.create_task(hub.orchestrator.run_periodic(
            1, float(i_cfg["front_page_every_sec"]), name="front-page")))
        # 2) 全量刷新
        tasks.append(asyncio.create_task(hub.orchestrator.run_periodic(
            hub.full_refresh_pages, float(i_cfg["full_refresh_every_sec"]), name="full-refresh")))
    else:
        log.info("[main] auto_fetch 关闭，只能按需调用 ingest()")

    log.info("[main] running for %ss …", run_seconds or "∞")
    try:
        if run_seconds and run_seconds > 0:
            await asyncio.sleep(run_seconds)
        else:
            # 0 或负数 => 永久运行
            await asyncio.Event().wait()
    except asyncio.CancelledError:
        log.info("[main] cancelled")
        raise
    finally:
        for t in tasks:
            t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await hub.close()
        log.info("[main] finished")


def cli(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Hacker News ingestion + categorization service")
    parser.add_argument("--run-seconds", type=int, default=0, help="运行秒数，0 表示常驻")
    parser.add_argument("--config", default=None, help="配置文件路径（默认 ops/config.yml）")
    args = parser.parse_args(argv)

    cfg = load_cfg(args.config)
    setup_logging(cfg.get("log_level", "INFO"))
    try:
        asyncio.run(main(run_seconds=args.run_seconds, cfg=cfg))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    cli()
