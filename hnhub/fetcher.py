from __future__ import annotations

import logging
from typing import Optional

import httpx

from hnhub.errors import FetchError

log = logging.getLogger(__name__)

# -------------------- 单页抓取 --------------------


def page_url(base_url: str, page: int) -> str:
    """第1页 -> 站点根；第n页 -> news?p=n"""
    base = base_url if base_url.endswith("/") else base_url + "/"
    if page <= 1:
        return base
    return f"{base}news?p={page}"


class PageFetcher:
    """
    抓取列表页原始 HTML。
    复用一个 httpx AsyncClient，避免频繁建连；不做内部重试，
    失败统一抛 FetchError，由编排层决定怎么处理。
    """

    def __init__(
        self,
        base_url: str = "https://news.ycombinator.com/",
        *,
        timeout_sec: float = 15.0,
        user_agent: str = "hn-hub/1.0",
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url
        self._timeout = timeout_sec
        self._user_agent = user_agent
        self._client = client
        self._owns_client = client is None

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                headers={"User-Agent": self._user_agent},
                follow_redirects=True,
            )
        return self._client

    async def fetch_page(self, page: int) -> str:
        url = page_url(self.base_url, page)
        log.info("[fetcher] GET page %s: %s", page, url)
        try:
            resp = await self._ensure_client().get(url)
        except httpx.TimeoutException as e:
            raise FetchError(f"timeout fetching page {page}: {e!r}", page=page) from e
        except httpx.HTTPError as e:
            raise FetchError(f"network error fetching page {page}: {e!r}", page=page) from e

        if not resp.is_success:
            raise FetchError(
                f"page {page} 响应失败 status={resp.status_code}",
                page=page,
                status=resp.status_code,
            )
        return resp.text

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None
