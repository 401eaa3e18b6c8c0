# -*- coding: utf-8 -*-
"""
tests/test_categorizer.py
分类调度：批次大小、配额中途耗尽、重叠触发被拒绝、空批次
"""

import asyncio

import httpx

from hnhub.categorizer import CategorizationScheduler
from hnhub.classifier import GeminiClassifier
from hnhub.models import Story
from hnhub.seeder import seed_if_empty
from hnhub.storage import StoryStore


class StubClassifier:
    """按标题返回预设结果；quota_after=N 表示第 N 次调用后耗尽"""

    def __init__(self, answers=None, quota_after=None, gate=None):
        self.answers = answers or {}
        self.quota_after = quota_after
        self.gate = gate
        self.calls = []
        self.quota_exhausted = False

    async def classify(self, title, prompt_text, topic_names):
        if self.quota_exhausted:
            return None
        self.calls.append((title, prompt_text, tuple(topic_names)))
        if self.gate is not None:
            await self.gate.wait()
        if self.quota_after is not None and len(self.calls) >= self.quota_after:
            self.quota_exhausted = True
            return None
        return self.answers.get(title, ["programming"])


async def seeded_store(db_path, n=5):
    store = await StoryStore.open(db_path)
    await seed_if_empty(store)
    stories = [Story(id=f"s{i}", title=f"title {i}", url=None) for i in range(n)]
    # fetched_at 递增，s{n-1} 最新
    for i, s in enumerate(stories):
        await store.upsert_batch([s], 1_000 + i)
    return store


def test_batch_categorizes_newest_first(db_path):
    async def main():
        store = await seeded_store(db_path, n=5)
        clf = StubClassifier(answers={"title 4": ["ai"], "title 3": []})
        sched = CategorizationScheduler(store, clf, batch_size=3, delay_sec=0)
        report = await sched.run()

        assert report.candidates == 3
        assert report.categorized == 3
        assert [c[0] for c in clf.calls] == ["title 4", "title 3", "title 2"]
        # 激活的 prompt 与全部 topic 名都传给了分类器
        assert "JSON array" in clf.calls[0][1]
        assert clf.calls[0][2] == ("ai", "business", "politics", "programming", "science", "technology")

        assert (await store.get_story("s4")).categories == ["ai"]
        assert (await store.get_story("s3")).categories == []
        assert [s.id for s in await store.query_uncategorized(10)] == ["s1", "s0"]
        await store.close()

    asyncio.run(main())


def test_quota_exhaustion_aborts_remaining(db_path):
    async def main():
        store = await seeded_store(db_path, n=5)
        clf = StubClassifier(quota_after=2)
        sched = CategorizationScheduler(store, clf, batch_size=5, delay_sec=0)
        report = await sched.run()

        assert report.aborted_on_quota
        assert report.categorized == 1
        assert len(clf.calls) == 2
        # 被中断的故事仍是未分类，留给下一次
        remaining = {s.id for s in await store.query_uncategorized(10)}
        assert remaining == {"s0", "s1", "s2", "s3"}

        # 已耗尽时新批次直接返回
        again = await sched.run()
        assert again.aborted_on_quota and again.candidates == 0
        await store.close()

    asyncio.run(main())


def test_quota_with_real_client(db_path):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(429, json={"error": {"status": "RESOURCE_EXHAUSTED"}})

    async def main():
        store = await seeded_store(db_path, n=3)
        clf = GeminiClassifier("key", client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
        sched = CategorizationScheduler(store, clf, batch_size=3, delay_sec=0)
        report = await sched.run()
        assert report.aborted_on_quota
        assert len(await store.query_uncategorized(10)) == 3
        await store.close()

    asyncio.run(main())
    assert len(calls) == 1


def test_empty_batch_returns_immediately(db_path):
    async def main():
        store = await StoryStore.open(db_path)
        clf = StubClassifier()
        sched = CategorizationScheduler(store, clf, batch_size=5, delay_sec=60)
        report = await asyncio.wait_for(sched.run(), timeout=5)
        assert report.candidates == 0
        assert clf.calls == []
        assert not sched.running
        await store.close()

    asyncio.run(main())


def test_overlapping_run_is_rejected(db_path):
    async def main():
        store = await seeded_store(db_path, n=2)
        gate = asyncio.Event()
        clf = StubClassifier(gate=gate)
        sched = CategorizationScheduler(store, clf, batch_size=2, delay_sec=0)

        first = asyncio.create_task(sched.run())
        for _ in range(200):
            if clf.calls:
                break
            await asyncio.sleep(0.01)
        assert sched.running
        assert await sched.run() is None

        gate.set()
        report = await first
        assert report.categorized == 2
        assert not sched.running
        await store.close()

    asyncio.run(main())


def test_disabled_scheduler_is_noop(db_path):
    async def main():
        store = await seeded_store(db_path, n=1)
        clf = StubClassifier()
        sched = CategorizationScheduler(store, clf, enabled=False)
        assert await sched.run() is None
        assert clf.calls == []
        await store.close()

    asyncio.run(main())
