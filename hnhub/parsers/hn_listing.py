# Hacker News 列表页解析器
# 结构：tr.athing(id) 行放标题链接，紧随其后的 tr 放 score / age / comments

import logging
import re
from datetime import datetime, timezone
from typing import List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from hnhub.errors import ParseError
from hnhub.models import Story
from hnhub.utils import first_int

log = logging.getLogger(__name__)

PAGE_SIZE = 30
SITE_ROOT = "https://news.ycombinator.com/"

_AGE_RE = re.compile(r"(\d+)\s+(minute|hour|day|week|month|year)s?\s+ago", re.IGNORECASE)

_UNIT_MS = {
    "minute": 60 * 1000,
    "hour": 3600 * 1000,
    "day": 24 * 3600 * 1000,
    "week": 7 * 24 * 3600 * 1000,
    "month": 30 * 24 * 3600 * 1000,
    "year": 365 * 24 * 3600 * 1000,
}


def parse_age_title(title: Optional[str]) -> Optional[int]:
    """
    解析 span.age 的 title 属性，如 "2025-03-01T12:32:18 1740832338"

    优先取末尾的 epoch 秒；没有则把 ISO 部分按 UTC 解析。

    返回:
        UTC毫秒，解析失败返回 None
    """
    if not title:
        return None
    parts = title.split()
    if len(parts) >= 2 and parts[-1].isdigit():
        return int(parts[-1]) * 1000
    try:
        dt = datetime.fromisoformat(parts[0].replace("Z", "+00:00"))
    except (ValueError, IndexError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def parse_relative_age(text: Optional[str], ref_ms: int) -> Optional[int]:
    """'3 hours ago' -> ref_ms - 3h；只作兜底，精度只到显示单位"""
    if not text:
        return None
    m = _AGE_RE.search(text)
    if not m:
        return None
    return ref_ms - int(m.group(1)) * _UNIT_MS[m.group(2).lower()]


def _comment_count(subtext) -> int:
    # 评论链接文本如 "12&nbsp;comments" / "1 comment" / "discuss"
    count = 0
    for a in subtext.select('a[href^="item?id="]'):
        text = a.get_text(" ", strip=True).replace("\xa0", " ")
        if "comment" in text.lower():
            count = first_int(text, 0)
    return count


def _parse_row(row, fetched_at: int) -> Optional[Story]:
    story_id = (row.get("id") or "").strip()
    link = row.select_one("span.titleline > a")
    title = link.get_text(strip=True) if link else ""
    if not story_id or not title:
        return None

    href = link.get("href")
    url = urljoin(SITE_ROOT, href) if href else None

    sub_row = row.find_next_sibling("tr")
    subtext = None
    if sub_row is not None:
        subtext = sub_row.select_one(".subtext") or sub_row.select_one(".subline") or sub_row

    points = 0
    comments = 0
    submitted_at = None
    if subtext is not None:
        score = subtext.select_one(".score")
        points = first_int(score.get_text(strip=True), 0) if score else 0
        comments = _comment_count(subtext)

        age = subtext.select_one(".age")
        if age is not None:
            submitted_at = parse_age_title(age.get("title"))
            if submitted_at is None:
                submitted_at = parse_relative_age(age.get_text(" ", strip=True), fetched_at)

    return Story(
        id=story_id,
        title=title,
        url=url,
        points=points,
        comment_count=comments,
        fetched_at=fetched_at,
        submitted_at=submitted_at,
    )


def parse_listing(html: str, page: int, fetched_at: int, page_size: int = PAGE_SIZE) -> List[Story]:
    """
    解析一页列表 HTML，返回 Story 列表

    参数:
        html: 列表页原始 HTML
        page: 页码（从1开始），用于计算全局 rank
        fetched_at: 本批次抓取时间(UTC毫秒)
        page_size: 站点每页条数

    返回:
        Story 列表；缺 id / 标题的行直接跳过，单行异常只记日志
    """
    stories: List[Story] = []
    soup = BeautifulSoup(html or "", "lxml")
    offset = (max(page, 1) - 1) * page_size

    for i, row in enumerate(soup.select("tr.athing")):
        try:
            story = _parse_row(row, fetched_at)
        except Exception as e:  # 单行坏数据不影响整页
            err = ParseError(f"row id={row.get('id')!r}: {e!r}")
            log.debug("[parser] 跳过异常行 %s", err)
            continue
        if story is None:
            continue
        # 按页面原始行位置计，坏行留空位，保证与首页顺序一致
        story.rank = i + offset
        stories.append(story)

    log.info("[parser] page %s 解析出 %d 条", page, len(stories))
    return stories
