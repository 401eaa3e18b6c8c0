# -*- coding: utf-8 -*-
"""
errors.py
管线内的异常分类：
- FetchError          抓取失败（网络 / 非2xx / 超时），单次运行内不重试
- ParseError          单行解析失败，解析器内部吞掉并跳过
- StoreError          写入逐行记录；查询时向上抛
- ClassificationError 分类失败，客户端转成 None
- QuotaExhaustedError 配额耗尽，锁存直到 reset
- IngestError         按需刷新时第1页失败，抛给调用方
"""

from typing import Optional


class HubError(Exception):
    """所有 hnhub 异常的基类"""


class FetchError(HubError):
    def __init__(self, message: str, *, page: Optional[int] = None, status: Optional[int] = None):
        super().__init__(message)
        self.page = page
        self.status = status


class ParseError(HubError):
    pass


class StoreError(HubError):
    def __init__(self, message: str, *, story_id: Optional[str] = None):
        super().__init__(message)
        self.story_id = story_id


class ClassificationError(HubError):
    pass


class QuotaExhaustedError(ClassificationError):
    pass


class IngestError(HubError):
    pass
