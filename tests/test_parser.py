# -*- coding: utf-8 -*-
"""
tests/test_parser.py
验证列表页解析：字段提取、默认值、时间解析优先级、全局 rank
"""

from datetime import datetime, timezone

from conftest import listing_page, simple_page, story_rows
from hnhub.parsers.hn_listing import parse_age_title, parse_listing, parse_relative_age

FETCHED_AT = 1_750_000_000_000


def test_two_rows_points_and_sequential_rank():
    html = listing_page(
        story_rows("101", "Scored story", score="42 points"),
        story_rows("102", "Who is hiring?", score=None, comments=None),
    )
    stories = parse_listing(html, 1, FETCHED_AT)

    assert [s.id for s in stories] == ["101", "102"]
    assert stories[0].points == 42
    assert stories[1].points == 0
    assert [s.rank for s in stories] == [0, 1]
    assert all(s.fetched_at == FETCHED_AT for s in stories)


def test_fields_extracted():
    html = listing_page(story_rows("7", "Show HN: A thing", href="https://example.com/thing",
                                   score="1,204 points", comments="345&nbsp;comments"))
    (s,) = parse_listing(html, 1, FETCHED_AT)

    assert s.title == "Show HN: A thing"
    assert s.url == "https://example.com/thing"
    assert s.points == 1204
    assert s.comment_count == 345
    assert s.categories is None


def test_single_comment_and_discuss():
    html = listing_page(
        story_rows("1", "One", comments="1&nbsp;comment"),
        story_rows("2", "None yet", comments="discuss"),
    )
    one, none = parse_listing(html, 1, FETCHED_AT)
    assert one.comment_count == 1
    assert none.comment_count == 0


def test_relative_link_is_resolved():
    html = listing_page(story_rows("9", "Ask HN: Anything?", href="item?id=9"))
    (s,) = parse_listing(html, 1, FETCHED_AT)
    assert s.url == "https://news.ycombinator.com/item?id=9"


def test_missing_title_or_id_is_skipped():
    bad = '<tr class="athing" id="55"><td><span class="titleline"><a href="x"></a></span></td></tr><tr><td class="subtext"></td></tr>'
    no_id = '<tr class="athing"><td><span class="titleline"><a href="y">No id</a></span></td></tr><tr><td class="subtext"></td></tr>'
    html = listing_page(bad, no_id, story_rows("56", "Kept"))
    stories = parse_listing(html, 1, FETCHED_AT)
    assert [s.id for s in stories] == ["56"]
    # rank 按页面行位置，跳过的行也占位
    assert stories[0].rank == 2


def test_rank_keeps_gap_for_skipped_row():
    broken = '<tr class="athing" id="b"><td><span class="titleline"><a href="x"></a></span></td></tr><tr><td class="subtext"></td></tr>'
    html = listing_page(story_rows("a", "First"), broken, story_rows("c", "Third"))
    stories = parse_listing(html, 2, FETCHED_AT)
    assert [(s.id, s.rank) for s in stories] == [("a", 30), ("c", 32)]


def test_username_with_comment_is_not_a_count():
    row = story_rows("3", "Fresh", comments="discuss").replace(
        '<a href="user?id=pg" class="hnuser">pg</a>',
        '<a href="user?id=comments4u" class="hnuser">comments4u</a>',
    )
    (s,) = parse_listing(listing_page(row), 1, FETCHED_AT)
    assert s.comment_count == 0


def test_submitted_at_prefers_epoch_in_title():
    html = listing_page(story_rows("1", "T", age_title="2025-03-01T12:32:18 1740832338", age_text="5 days ago"))
    (s,) = parse_listing(html, 1, FETCHED_AT)
    assert s.submitted_at == 1740832338 * 1000


def test_submitted_at_iso_only():
    expected = int(datetime(2025, 3, 1, 12, 32, 18, tzinfo=timezone.utc).timestamp() * 1000)
    assert parse_age_title("2025-03-01T12:32:18") == expected


def test_submitted_at_relative_fallback():
    html = listing_page(story_rows("1", "T", age_title=None, age_text="3 hours ago"))
    (s,) = parse_listing(html, 1, FETCHED_AT)
    assert s.submitted_at == FETCHED_AT - 3 * 3600 * 1000


def test_relative_age_units():
    assert parse_relative_age("1 minute ago", 1_000_000) == 1_000_000 - 60_000
    assert parse_relative_age("2 days ago", 10 ** 10) == 10 ** 10 - 2 * 86_400_000
    assert parse_relative_age("yesterday", 10 ** 10) is None
    assert parse_age_title("garbage") is None
    assert parse_age_title(None) is None


def test_rank_offset_on_later_pages():
    for page in (1, 2, 5):
        stories = parse_listing(simple_page(page, count=4), page, FETCHED_AT, page_size=30)
        assert [s.rank for s in stories] == [i + (page - 1) * 30 for i in range(4)]


def test_empty_or_unrelated_markup():
    assert parse_listing("", 1, FETCHED_AT) == []
    assert parse_listing("<html><body><p>Sorry.</p></body></html>", 1, FETCHED_AT) == []
