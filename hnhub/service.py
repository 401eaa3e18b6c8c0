# -*- coding: utf-8 -*-
"""
service.py
对外的函数级接口（路由层调用）：
ingest / list_stories / list_recent / list_homepage / list_uncategorized /
run_categorization / get_quota_status / reset_quota
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Set

from hnhub.categorizer import CategorizationScheduler
from hnhub.classifier import GeminiClassifier, QuotaState
from hnhub.fetcher import PageFetcher
from hnhub.ingest import IngestOrchestrator
from hnhub.models import Prompt, Story, Topic
from hnhub.seeder import load_seed, seed_if_empty
from hnhub.storage import StoryStore
from hnhub.utils import window_start_ms

log = logging.getLogger(__name__)


class HubService:
    def __init__(
        self,
        store: StoryStore,
        orchestrator: IngestOrchestrator,
        scheduler: CategorizationScheduler,
        classifier: GeminiClassifier,
        *,
        reference_timezone: str = "America/New_York",
        window_days: int = 4,
        max_pages: int = 5,
        fetch_multiple_pages: bool = True,
    ):
        self.store = store
        self.orchestrator = orchestrator
        self.scheduler = scheduler
        self.classifier = classifier
        self.reference_timezone = reference_timezone
        self.window_days = window_days
        self.max_pages = max_pages
        self.fetch_multiple_pages = fetch_multiple_pages
        self._bg_tasks: Set[asyncio.Task] = set()

    @classmethod
    async def from_config(cls, cfg: dict) -> "HubService":
        """按配置组装各组件；store 在这里打开，由 close() 关闭"""
        store = await StoryStore.open(cfg["store"]["db_path"])
        try:
            await seed_if_empty(store, load_seed(cfg["store"].get("seed_path")))
        except Exception:
            await store.close()
            raise

        f_cfg = cfg["fetcher"]
        fetcher = PageFetcher(
            f_cfg["base_url"], timeout_sec=float(f_cfg["timeout_sec"]), user_agent=f_cfg["user_agent"],
        )
        c_cfg = cfg["classifier"]
        classifier = GeminiClassifier(
            c_cfg.get("api_key", ""),
            model=c_cfg["model"],
            base_url=c_cfg["base_url"],
            timeout_sec=float(c_cfg["timeout_sec"]),
            quota=QuotaState(),
        )
        k_cfg = cfg["categorize"]
        scheduler = CategorizationScheduler(
            store, classifier,
            batch_size=int(k_cfg["batch_size"]),
            delay_sec=float(k_cfg["delay_sec"]),
            enabled=bool(k_cfg["enabled"]),
        )
        i_cfg = cfg["ingest"]
        orchestrator = IngestOrchestrator(
            store, fetcher,
            scheduler=scheduler,
            page_size=int(i_cfg["page_size"]),
            page_delay_sec=float(i_cfg["page_delay_sec"]),
            categorize_batch_size=int(k_cfg["batch_size_after_ingest"]),
        )
        return cls(
            store, orchestrator, scheduler, classifier,
            reference_timezone=i_cfg["reference_timezone"],
            window_days=int(i_cfg["window_days"]),
            max_pages=int(i_cfg["max_pages"]),
            fetch_multiple_pages=bool(i_cfg["fetch_multiple_pages"]),
        )

    @property
    def full_refresh_pages(self) -> int:
        return self.max_pages if self.fetch_multiple_pages else 1

    # --------- 抓取 ---------
    async def ingest(self, pages: Optional[int] = None) -> None:
        """第1页失败抛 IngestError；后续页失败不算错误"""
        await self.orchestrator.ingest(pages or self.full_refresh_pages)

    # --------- 查询 ---------
    async def list_stories(self, since_ms: int, page: int = 1, page_size: int = 30) -> List[Story]:
        return await self.store.query_window(since_ms, page, page_size)

    async def list_recent(self, days: Optional[int] = None, page: int = 1, page_size: int = 30,
                          now: Optional[int] = None) -> List[Story]:
        """参考时区下最近 N 个日历日"""
        since = window_start_ms(days or self.window_days, self.reference_timezone, now)
        return await self.store.query_window(since, page, page_size)

    async def list_homepage(self, page: int = 1, page_size: int = 30) -> List[Story]:
        return await self.store.query_homepage(page, page_size)

    async def list_uncategorized(self, limit: int = 30) -> List[Story]:
        return await self.store.query_uncategorized(limit)

    async def list_topics(self) -> List[Topic]:
        return await self.store.list_topics()

    async def get_active_prompt(self) -> Optional[Prompt]:
        return await self.store.get_active_prompt()

    # --------- 分类 ---------
    async def run_categorization(self, batch_size: Optional[int] = None) -> None:
        await self.scheduler.run(batch_size)

    def start_categorization(self, batch_size: Optional[int] = None) -> asyncio.Task:
        """后台跑一个批次（fire-and-forget），异常只记日志"""
        task = asyncio.create_task(self._categorize_bg(batch_size))
        self._bg_tasks.add(task)
        task.add_done_callback(self._bg_tasks.discard)
        return task

    async def _categorize_bg(self, batch_size: Optional[int]) -> None:
        try:
            await self.scheduler.run(batch_size)
        except asyncio.CancelledError:
            raise
        except Exception:
            log.exception("[service] 后台分类失败")

    def get_quota_status(self) -> bool:
        return self.classifier.quota_exhausted

    def reset_quota(self) -> None:
        self.classifier.reset_quota()

    async def close(self) -> None:
        for t in list(self._bg_tasks):
            t.cancel()
        await asyncio.gather(*self._bg_tasks, return_exceptions=True)
        await self.orchestrator.fetcher.aclose()
        await self.classifier.close()
        await self.store.close()
