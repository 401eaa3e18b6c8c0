# -*- coding: utf-8 -*-
"""
hnhub/ingest.py
抓取编排：fetch -> parse -> store，逐页落库
- 第1页立即抓，之后每页之间等 page_delay_sec
- 第1页失败抛 IngestError；第k页(k>1)失败只记日志并停止，前面已入库的不回滚
- 一把 asyncio.Lock 保证同一时刻只有一个抓取过程：
  按需触发排在后面等，定时触发遇到正在跑就跳过
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from hnhub.categorizer import CategorizationScheduler
from hnhub.errors import FetchError, IngestError
from hnhub.fetcher import PageFetcher
from hnhub.parsers.hn_listing import PAGE_SIZE, parse_listing
from hnhub.storage import StoryStore
from hnhub.utils import now_ms

log = logging.getLogger(__name__)


class IngestOrchestrator:
    def __init__(
        self,
        store: StoryStore,
        fetcher: PageFetcher,
        *,
        scheduler: Optional[CategorizationScheduler] = None,
        page_size: int = PAGE_SIZE,
        page_delay_sec: float = 5.0,
        categorize_batch_size: int = 10,
    ):
        self.store = store
        self.fetcher = fetcher
        self.scheduler = scheduler
        self.page_size = page_size
        self.page_delay_sec = page_delay_sec
        self.categorize_batch_size = categorize_batch_size
        self._lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def fetch_and_store_page(self, page: int) -> int:
        """抓取并入库单页，返回写入条数；抓取失败抛 FetchError"""
        html = await self.fetcher.fetch_page(page)
        fetched_at = now_ms()
        stories = parse_listing(html, page, fetched_at, page_size=self.page_size)
        result = await self.store.upsert_batch(stories, fetched_at)
        log.info("[ingest] page %s: stored %d / %d", page, result.stored, len(stories))
        return result.stored

    async def _ingest_locked(self, pages: int) -> int:
        total = 0
        try:
            total += await self.fetch_and_store_page(1)
        except FetchError as e:
            raise IngestError(f"page 1 fetch failed: {e}") from e

        for page in range(2, pages + 1):
            await asyncio.sleep(self.page_delay_sec)
            try:
                total += await self.fetch_and_store_page(page)
            except FetchError as e:
                log.warning("[ingest] page %s 抓取失败，放弃剩余页: %s", page, e)
                break
        return total

    async def ingest(self, pages: int = 1, *, categorize: bool = True) -> int:
        """
        按需抓取 pages 页。已有抓取在跑时排队等待，不会交错抓页。

        返回:
            本次写入的故事条数
        """
        pages = max(int(pages), 1)
        async with self._lock:
            log.info("[ingest] 开始抓取 %d 页", pages)
            total = await self._ingest_locked(pages)
            log.info("[ingest] 完成 %d 页，共写入 %d 条", pages, total)

        # 分类在锁外跑，不阻塞下一次抓取
        if categorize and self.scheduler is not None and self.scheduler.enabled:
            try:
                await self.scheduler.run(self.categorize_batch_size)
            except asyncio.CancelledError:
                raise
            except Exception:
                # 页面已落库，分类失败只记日志
                log.exception("[ingest] 抓取后的分类批次失败")
        return total

    async def trigger(self, pages: int = 1) -> bool:
        """
        定时触发入口：正在抓取就跳过；所有异常只记日志，不让进程崩溃

        返回:
            是否实际执行了一次抓取
        """
        if self.busy:
            log.info("[ingest] 上一次抓取还在进行，跳过本次定时触发")
            return False
        try:
            await self.ingest(pages)
        except asyncio.CancelledError:
            raise
        except Exception:
            log.exception("[ingest] 定时抓取失败")
        return True

    async def run_periodic(self, pages: int, every_sec: float, *, name: str = "refresh",
                           run_immediately: bool = False) -> None:
        """固定间隔循环，直到任务被取消"""
        log.info("[ingest] %s started: %d 页 / 每 %ss", name, pages, every_sec)
        try:
            if not run_immediately:
                await asyncio.sleep(every_sec)
            while True:
                await self.trigger(pages)
                await asyncio.sleep(every_sec)
        except asyncio.CancelledError:
            log.info("[ingest] %s cancelled", name)
            raise
