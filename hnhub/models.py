# -*- coding: utf-8 -*-
"""
models.py
定义数据模型。字段名与 storage.py 的建表 SQL 一一对应：
stories(id, title, url, points, comment_count, fetched_at, submitted_at, rank, categories)
"""

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class Story:
    # 站点分配的外部ID（tr.athing 的 id），唯一去重键
    id: str

    # 标题与外链；url 为空表示讨论帖（Ask HN 等）
    title: str
    url: Optional[str]

    # 分数与评论数，每次刷新直接覆盖
    points: int = 0
    comment_count: int = 0

    # 抓取批次时间（UTC毫秒），同一批次共享
    fetched_at: int = 0

    # 站点真实提交时间（UTC毫秒），解析不到时为 None，消费方回退到 fetched_at
    submitted_at: Optional[int] = None

    # 全局排名：页内序号 + (页码-1) * 每页条数
    rank: Optional[int] = None

    # None = 尚未分类；[] = 已分类但无匹配
    categories: Optional[List[str]] = None

    @property
    def effective_ts(self) -> int:
        return self.submitted_at if self.submitted_at is not None else self.fetched_at


@dataclass
class Topic:
    id: Optional[int]
    name: str
    description: str = ""
    created_at: int = 0


@dataclass
class Keyword:
    id: Optional[int]
    topic_id: int
    keyword: str
    created_at: int = 0


@dataclass
class Prompt:
    id: Optional[int]
    name: str
    prompt_text: str
    created_at: int = 0
    is_active: int = 1


@dataclass
class UpsertResult:
    """upsert_batch 的结果：成功条数 + 逐行错误"""
    stored: int = 0
    errors: list = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.errors)


@dataclass
class CategorizationReport:
    """一次分类批次的统计"""
    candidates: int = 0
    categorized: int = 0
    skipped: int = 0
    aborted_on_quota: bool = False
