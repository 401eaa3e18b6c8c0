# -*- coding: utf-8 -*-
"""
hnhub/storage.py
SQLite（aiosqlite）持久化：
- 打开/关闭连接，按版本号顺序执行迁移
- 故事批量写入（逐行 upsert，同一事务，逐行收集错误）
- 时间窗口查询 / 首页排名查询 / 未分类查询
- 写回分类
- topics / keywords / prompts 参考数据
stories 字段与 hnhub.models.Story 一致：
id, title, url, points, comment_count, fetched_at, submitted_at, rank, categories
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Union

import aiosqlite

from hnhub.errors import StoreError
from hnhub.models import Keyword, Prompt, Story, Topic, UpsertResult
from hnhub.utils import now_ms

log = logging.getLogger(__name__)


# --------- 迁移：按顺序追加，永不修改已发布的条目 ---------
MIGRATIONS: Sequence[Sequence[str]] = (
    # v1: 基础表
    (
        """
        CREATE TABLE IF NOT EXISTS stories (
            id            TEXT PRIMARY KEY,
            title         TEXT NOT NULL,
            url           TEXT,
            points        INTEGER NOT NULL DEFAULT 0,
            comment_count INTEGER NOT NULL DEFAULT 0,
            fetched_at    INTEGER NOT NULL,
            submitted_at  INTEGER,
            rank          INTEGER
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_stories_fetched ON stories(fetched_at DESC)",
    ),
    # v2: 分类列
    (
        "ALTER TABLE stories ADD COLUMN categories TEXT",
        "CREATE INDEX IF NOT EXISTS idx_stories_effective ON stories(COALESCE(submitted_at, fetched_at) DESC)",
        "CREATE INDEX IF NOT EXISTS idx_stories_rank ON stories(rank)",
    ),
    # v3: 参考数据
    (
        """
        CREATE TABLE IF NOT EXISTS topics (
            id          INTEGER PRIMARY KEY AUTOINCREMENT,
            name        TEXT NOT NULL UNIQUE,
            description TEXT,
            created_at  INTEGER NOT NULL
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS keywords (
            id         INTEGER PRIMARY KEY AUTOINCREMENT,
            topic_id   INTEGER NOT NULL REFERENCES topics(id),
            keyword    TEXT NOT NULL,
            created_at INTEGER NOT NULL,
            UNIQUE (topic_id, keyword)
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS prompts (
            id          INTEGER PRIMARY KEY AUTOINCREMENT,
            name        TEXT NOT NULL,
            prompt_text TEXT NOT NULL,
            created_at  INTEGER NOT NULL,
            is_active   INTEGER NOT NULL DEFAULT 1
        )
        """,
    ),
)

SCHEMA_VERSION = len(MIGRATIONS)

_STORY_COLS = "id, title, url, points, comment_count, fetched_at, submitted_at, rank, categories"

# categories 不在 UPDATE 列表里：抓取永远不会覆盖分类结果
UPSERT_SQL = """
INSERT INTO stories(id, title, url, points, comment_count, fetched_at, submitted_at, rank)
VALUES(?,?,?,?,?,?,?,?)
ON CONFLICT(id) DO UPDATE SET
    title         = excluded.title,
    url           = excluded.url,
    points        = excluded.points,
    comment_count = excluded.comment_count,
    fetched_at    = excluded.fetched_at,
    submitted_at  = excluded.submitted_at,
    rank          = excluded.rank
"""


def _dump_categories(categories: Optional[Iterable[str]]) -> Optional[str]:
    if categories is None:
        return None
    return json.dumps(list(categories), ensure_ascii=False)


def _load_categories(raw: Optional[str]) -> Optional[List[str]]:
    if raw is None:
        return None
    try:
        data = json.loads(raw)
    except ValueError:
        log.warning("[store] categories 列不是合法 JSON: %r", raw[:80])
        return None
    return [str(x) for x in data] if isinstance(data, list) else []


def _row_to_story(row) -> Story:
    return Story(
        id=row[0],
        title=row[1],
        url=row[2],
        points=row[3] or 0,
        comment_count=row[4] or 0,
        fetched_at=row[5],
        submitted_at=row[6],
        rank=row[7],
        categories=_load_categories(row[8]),
    )


class StoryStore:
    """
    显式持有一个 aiosqlite 连接；由调用方 open / close，
    再把实例交给抓取、分类等组件使用。
    """

    def __init__(self, db: aiosqlite.Connection):
        self._db = db

    # --------- 生命周期 ---------
    @classmethod
    async def open(cls, db_path: Union[str, Path]) -> "StoryStore":
        """打开数据库并执行未应用的迁移"""
        if str(db_path) != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        db = await aiosqlite.connect(str(db_path))
        try:
            await db.execute("PRAGMA journal_mode=WAL;")
            await db.execute("PRAGMA synchronous=NORMAL;")
            await db.execute("PRAGMA foreign_keys=ON;")
            store = cls(db)
            await store._migrate()
        except Exception:
            await db.close()
            raise
        return store

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    async def __aenter__(self) -> "StoryStore":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def _migrate(self) -> None:
        async with self._db.execute("PRAGMA user_version;") as cur:
            row = await cur.fetchone()
        current = int(row[0]) if row else 0
        for version, statements in enumerate(MIGRATIONS, start=1):
            if version <= current:
                continue
            for stmt in statements:
                await self._db.execute(stmt)
            # PRAGMA 不支持参数绑定
            await self._db.execute(f"PRAGMA user_version = {version};")
            await self._db.commit()
            log.info("[store] 迁移到 schema v%d", version)

    async def schema_version(self) -> int:
        async with self._db.execute("PRAGMA user_version;") as cur:
            row = await cur.fetchone()
        return int(row[0])

    # --------- 写入（幂等） ---------
    async def upsert_batch(self, stories: Iterable[Story], fetched_at: Optional[int] = None) -> UpsertResult:
        """
        一个事务内逐行 upsert；单行失败记到 result.errors，不影响同批其他行。
        fetched_at 给出时覆盖每条的 fetched_at（同一抓取批次共享）。
        """
        result = UpsertResult()
        try:
            for s in stories:
                ts = fetched_at if fetched_at is not None else (s.fetched_at or now_ms())
                try:
                    await self._db.execute(UPSERT_SQL, (
                        s.id, s.title, s.url, int(s.points or 0), int(s.comment_count or 0),
                        int(ts), s.submitted_at, s.rank,
                    ))
                    result.stored += 1
                except (aiosqlite.Error, ValueError, TypeError) as e:
                    err = StoreError(f"upsert {s.id!r} failed: {e}", story_id=s.id)
                    result.errors.append(err)
                    log.error("[store] %s", err)
        except BaseException:
            # 非单行错误（坏对象、取消）：整批回滚，不留未提交的半批
            await self._db.rollback()
            raise
        try:
            await self._db.commit()
        except aiosqlite.Error as e:
            raise StoreError(f"commit failed: {e}") from e
        log.info("[store] stored=%d errors=%d", result.stored, result.failed)
        return result

    async def set_categories(self, story_id: str, categories: Optional[Sequence[str]]) -> bool:
        """写回分类；id 不存在时什么也不做，返回 False"""
        try:
            cur = await self._db.execute(
                "UPDATE stories SET categories = ? WHERE id = ?;",
                (_dump_categories(categories), story_id),
            )
            await self._db.commit()
        except aiosqlite.Error as e:
            raise StoreError(f"set_categories {story_id!r} failed: {e}", story_id=story_id) from e
        return cur.rowcount > 0

    # --------- 查询 ---------
    async def _fetch_stories(self, sql: str, params: tuple) -> List[Story]:
        try:
            async with self._db.execute(sql, params) as cur:
                rows = await cur.fetchall()
        except aiosqlite.Error as e:
            raise StoreError(f"query failed: {e}") from e
        return [_row_to_story(r) for r in rows]

    async def get_story(self, story_id: str) -> Optional[Story]:
        rows = await self._fetch_stories(f"SELECT {_STORY_COLS} FROM stories WHERE id = ?;", (story_id,))
        return rows[0] if rows else None

    async def query_window(self, since_ms: int, page: int = 1, page_size: int = 30) -> List[Story]:
        """
        有效时间（submitted_at，缺失时回退 fetched_at）>= since_ms 的故事，
        按同一有效时间倒序分页。
        """
        page = max(int(page), 1)
        sql = f"""
        SELECT {_STORY_COLS}
          FROM stories
         WHERE COALESCE(submitted_at, fetched_at) >= ?
         ORDER BY COALESCE(submitted_at, fetched_at) DESC, id DESC
         LIMIT ? OFFSET ?;
        """
        return await self._fetch_stories(sql, (int(since_ms), int(page_size), (page - 1) * int(page_size)))

    async def query_homepage(self, page: int = 1, page_size: int = 30) -> List[Story]:
        """按抓取时的全局排名还原首页顺序"""
        page = max(int(page), 1)
        sql = f"""
        SELECT {_STORY_COLS}
          FROM stories
         WHERE rank IS NOT NULL
         ORDER BY rank ASC, fetched_at DESC
         LIMIT ? OFFSET ?;
        """
        return await self._fetch_stories(sql, (int(page_size), (page - 1) * int(page_size)))

    async def query_uncategorized(self, limit: int) -> List[Story]:
        """最新抓到的优先"""
        sql = f"""
        SELECT {_STORY_COLS}
          FROM stories
         WHERE categories IS NULL
         ORDER BY fetched_at DESC, id DESC
         LIMIT ?;
        """
        return await self._fetch_stories(sql, (int(limit),))

    async def _count(self, table: str) -> int:
        try:
            async with self._db.execute(f"SELECT COUNT(*) FROM {table};") as cur:
                row = await cur.fetchone()
        except aiosqlite.Error as e:
            raise StoreError(f"count {table} failed: {e}") from e
        return int(row[0])

    async def count_stories(self) -> int:
        return await self._count("stories")

    async def count_topics(self) -> int:
        return await self._count("topics")

    async def count_prompts(self) -> int:
        return await self._count("prompts")

    # --------- 参考数据：topics / keywords / prompts ---------
    async def add_topic(self, name: str, description: str = "", created_at: Optional[int] = None) -> int:
        try:
            cur = await self._db.execute(
                "INSERT INTO topics(name, description, created_at) VALUES(?,?,?);",
                (name, description, created_at or now_ms()),
            )
            await self._db.commit()
        except aiosqlite.Error as e:
            raise StoreError(f"add_topic {name!r} failed: {e}") from e
        return cur.lastrowid

    async def add_keyword(self, topic_id: int, keyword: str, created_at: Optional[int] = None) -> None:
        try:
            await self._db.execute(
                "INSERT OR IGNORE INTO keywords(topic_id, keyword, created_at) VALUES(?,?,?);",
                (topic_id, keyword, created_at or now_ms()),
            )
            await self._db.commit()
        except aiosqlite.Error as e:
            raise StoreError(f"add_keyword {keyword!r} failed: {e}") from e

    async def add_prompt(self, name: str, prompt_text: str, *, active: bool = True,
                         created_at: Optional[int] = None) -> int:
        """新增 prompt；active=True 时其余 prompt 全部置为非激活"""
        try:
            if active:
                await self._db.execute("UPDATE prompts SET is_active = 0;")
            cur = await self._db.execute(
                "INSERT INTO prompts(name, prompt_text, created_at, is_active) VALUES(?,?,?,?);",
                (name, prompt_text, created_at or now_ms(), 1 if active else 0),
            )
            await self._db.commit()
        except aiosqlite.Error as e:
            raise StoreError(f"add_prompt {name!r} failed: {e}") from e
        return cur.lastrowid

    async def activate_prompt(self, prompt_id: int) -> bool:
        try:
            async with self._db.execute("SELECT 1 FROM prompts WHERE id = ?;", (prompt_id,)) as cur:
                if await cur.fetchone() is None:
                    return False
            await self._db.execute("UPDATE prompts SET is_active = CASE WHEN id = ? THEN 1 ELSE 0 END;",
                                   (prompt_id,))
            await self._db.commit()
        except aiosqlite.Error as e:
            raise StoreError(f"activate_prompt {prompt_id} failed: {e}") from e
        return True

    async def get_active_prompt(self) -> Optional[Prompt]:
        sql = """
        SELECT id, name, prompt_text, created_at, is_active
          FROM prompts
         WHERE is_active = 1
         ORDER BY id DESC
         LIMIT 1;
        """
        try:
            async with self._db.execute(sql) as cur:
                row = await cur.fetchone()
        except aiosqlite.Error as e:
            raise StoreError(f"get_active_prompt failed: {e}") from e
        return Prompt(*row) if row else None

    async def list_topics(self) -> List[Topic]:
        try:
            async with self._db.execute(
                "SELECT id, name, description, created_at FROM topics ORDER BY name;"
            ) as cur:
                rows = await cur.fetchall()
        except aiosqlite.Error as e:
            raise StoreError(f"list_topics failed: {e}") from e
        return [Topic(r[0], r[1], r[2] or "", r[3]) for r in rows]

    async def list_keywords(self, topic_id: Optional[int] = None) -> List[Keyword]:
        sql = "SELECT id, topic_id, keyword, created_at FROM keywords"
        params: tuple = ()
        if topic_id is not None:
            sql += " WHERE topic_id = ?"
            params = (topic_id,)
        sql += " ORDER BY topic_id, keyword;"
        try:
            async with self._db.execute(sql, params) as cur:
                rows = await cur.fetchall()
        except aiosqlite.Error as e:
            raise StoreError(f"list_keywords failed: {e}") from e
        return [Keyword(*r) for r in rows]
