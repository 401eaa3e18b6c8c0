# -*- coding: utf-8 -*-
"""
seeder.py
首次启动时写入默认 prompt / topics / keywords。
参考数据放在 ops/seed.yml（可选）；没有就用这里的 DEFAULT_SEED。
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Union

import yaml

from hnhub.errors import StoreError
from hnhub.storage import StoryStore
from hnhub.utils import now_ms

log = logging.getLogger(__name__)


DEFAULT_PROMPT_TEXT = (
    "Analyze the following Hacker News post title and determine which categories it belongs to "
    "from the provided list.\n"
    "Return ONLY a JSON array of category names, with no additional text or explanation.\n"
    'Example response: ["technology", "ai"]\n'
    "If no categories apply, return an empty array: []"
)

DEFAULT_SEED = {
    "prompt": {"name": "Default Categorization Prompt", "text": DEFAULT_PROMPT_TEXT},
    "topics": [
        {"name": "technology", "description": "General technology news and updates",
         "keywords": ["tech", "software", "hardware", "gadget", "device", "innovation"]},
        {"name": "ai", "description": "Artificial intelligence and machine learning",
         "keywords": ["artificial intelligence", "machine learning", "neural network", "deep learning",
                      "gpt", "llm", "chatgpt", "gemini", "claude"]},
        {"name": "programming", "description": "Software development and programming",
         "keywords": ["code", "developer", "javascript", "python", "rust", "golang", "typescript",
                      "framework", "library", "api"]},
        {"name": "business", "description": "Business, startups, and entrepreneurship",
         "keywords": ["startup", "funding", "venture capital", "vc", "acquisition", "ipo",
                      "entrepreneur", "ceo", "revenue", "profit"]},
        {"name": "politics", "description": "Political news and discussions",
         "keywords": ["government", "election", "policy", "biden", "trump", "congress", "senate",
                      "democrat", "republican", "legislation"]},
        {"name": "science", "description": "Scientific discoveries and research",
         "keywords": ["research", "study", "discovery", "physics", "biology", "chemistry",
                      "astronomy", "experiment", "scientist", "journal"]},
    ],
}


def load_seed(path: Optional[Union[str, Path]] = None) -> dict:
    """读取 seed.yml；不存在 / 解析失败时回退 DEFAULT_SEED"""
    if not path:
        return DEFAULT_SEED
    p = Path(path)
    if not p.exists():
        return DEFAULT_SEED
    try:
        data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        log.warning("[seeder] 读取 %s 失败，使用内置默认: %s", p, e)
        return DEFAULT_SEED
    return {
        "prompt": data.get("prompt") or DEFAULT_SEED["prompt"],
        "topics": data.get("topics") or DEFAULT_SEED["topics"],
    }


async def seed_if_empty(store: StoryStore, seed: Optional[dict] = None) -> bool:
    """
    topics 或 prompts 任一为空时写入默认数据。

    返回:
        True 表示执行了写入
    """
    if await store.count_topics() > 0 and await store.count_prompts() > 0:
        return False

    seed = seed or DEFAULT_SEED
    ts = now_ms()

    if await store.count_prompts() == 0:
        prompt = seed["prompt"]
        await store.add_prompt(prompt["name"], prompt["text"], active=True, created_at=ts)
        log.info("[seeder] 写入默认 prompt: %s", prompt["name"])

    if await store.count_topics() == 0:
        for topic in seed["topics"]:
            try:
                topic_id = await store.add_topic(topic["name"], topic.get("description", ""), created_at=ts)
            except StoreError as e:
                # 单个 topic 失败继续下一个
                log.error("[seeder] topic %s 写入失败: %s", topic.get("name"), e)
                continue
            for kw in topic.get("keywords") or []:
                await store.add_keyword(topic_id, kw, created_at=ts)
        log.info("[seeder] 写入 %d 个默认 topic", len(seed["topics"]))

    return True
