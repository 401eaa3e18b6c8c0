# 分类调度：挑出未分类的故事，逐条调用分类客户端并写回
# 同一时刻只允许一个批次运行；重叠的触发直接拒绝，不排队

import asyncio
import logging
from typing import Optional

from hnhub.classifier import GeminiClassifier
from hnhub.errors import StoreError
from hnhub.models import CategorizationReport
from hnhub.storage import StoryStore

log = logging.getLogger(__name__)


class CategorizationScheduler:
    """Idle / Running 两态的分类批处理器"""

    def __init__(
        self,
        store: StoryStore,
        classifier: GeminiClassifier,
        *,
        batch_size: int = 5,
        delay_sec: float = 2.0,
        enabled: bool = True,
    ):
        self.store = store
        self.classifier = classifier
        self.batch_size = batch_size
        self.delay_sec = delay_sec
        self.enabled = enabled
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def run(self, batch_size: Optional[int] = None) -> Optional[CategorizationReport]:
        """
        跑一个批次

        返回:
            CategorizationReport；已有批次在跑或被禁用时返回 None
        """
        if not self.enabled:
            return None
        if self._running:
            log.info("[categorizer] 已有批次在运行，本次触发被拒绝")
            return None

        # 检查与置位之间没有 await，单线程事件循环下不会被抢占
        self._running = True
        try:
            return await self._run_batch(batch_size or self.batch_size)
        finally:
            self._running = False

    async def _run_batch(self, batch_size: int) -> CategorizationReport:
        report = CategorizationReport()

        if self.classifier.quota_exhausted:
            log.info("[categorizer] 配额已耗尽，跳过分类")
            report.aborted_on_quota = True
            return report

        stories = await self.store.query_uncategorized(batch_size)
        report.candidates = len(stories)
        if not stories:
            log.info("[categorizer] 没有未分类的故事")
            return report

        prompt = await self.store.get_active_prompt()
        topic_names = [t.name for t in await self.store.list_topics()]
        prompt_text = prompt.prompt_text if prompt else None

        log.info("[categorizer] 找到 %d 条未分类故事 (batch=%d)", len(stories), batch_size)

        for i, story in enumerate(stories):
            # 配额可能被其他共享 QuotaState 的客户端置位；剩下的留给下次
            if self.classifier.quota_exhausted:
                log.warning("[categorizer] 处理中配额耗尽，停止本批次")
                report.aborted_on_quota = True
                break

            categories = await self.classifier.classify(story.title, prompt_text, topic_names)
            if categories is None and self.classifier.quota_exhausted:
                log.warning("[categorizer] 处理中配额耗尽，停止本批次")
                report.aborted_on_quota = True
                break
            if categories is None:
                report.skipped += 1
                log.info("[categorizer] %s 未能分类", story.id)
            else:
                try:
                    await self.store.set_categories(story.id, categories)
                    report.categorized += 1
                    log.info("[categorizer] %s -> %s", story.id, categories)
                except StoreError as e:
                    report.skipped += 1
                    log.error("[categorizer] 写回 %s 失败: %s", story.id, e)

            if i < len(stories) - 1 and self.delay_sec > 0:
                await asyncio.sleep(self.delay_sec)

        log.info("[categorizer] 批次完成: categorized=%d skipped=%d", report.categorized, report.skipped)
        return report
