# -*- coding: utf-8 -*-
# 共享夹具：伪造 HN 列表页 HTML、临时数据库

from typing import Optional

import pytest


def story_rows(story_id: str, title: str, *, href: Optional[str] = "https://example.com/a",
               score: Optional[str] = "42 points", age_title: Optional[str] = "2025-03-01T12:32:18 1740832338",
               age_text: str = "3 hours ago", comments: Optional[str] = "12&nbsp;comments") -> str:
    link = f'<a href="{href}">{title}</a>' if href is not None else f"<a>{title}</a>"
    score_html = f'<span class="score" id="score_{story_id}">{score}</span> by ' if score is not None else ""
    age_attr = f' title="{age_title}"' if age_title is not None else ""
    comments_html = f' | <a href="item?id={story_id}">{comments}</a>' if comments is not None else ""
    return f"""
    <tr class="athing submission" id="{story_id}">
      <td align="right" valign="top" class="title"><span class="rank">1.</span></td>
      <td class="title"><span class="titleline">{link}<span class="sitebit comhead"> (<a href="from?site=example.com"><span class="sitestr">example.com</span></a>)</span></span></td>
    </tr>
    <tr><td colspan="2"></td><td class="subtext"><span class="subline">
      {score_html}<a href="user?id=pg" class="hnuser">pg</a>
      <span class="age"{age_attr}><a href="item?id={story_id}">{age_text}</a></span>
      | <a href="hide?id={story_id}">hide</a>{comments_html}
    </span></td></tr>
    <tr class="spacer" style="height:5px"></tr>
    """

def listing_page(*rows: str) -> str:
    body = "".join(rows)
    return f"""<html><head><title>Hacker News</title></head><body><center>
    <table id="hnmain"><tr><td><table border="0" cellpadding="0" cellspacing="0">
    {body}
    <tr class="morespace" style="height:10px"></tr>
    </table></td></tr></table></center></body></html>"""

def simple_page(page: int, count: int = 3, prefix: str = "s") -> str:
    rows = [story_rows(f"{prefix}{page}_{i}", f"Story {page}-{i}") for i in range(count)]
    return listing_page(*rows)

@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "hn_test.db"
