"""
hnhub/classifier.py
分类客户端：把标题 + 激活的 prompt + topic 列表交给 Gemini generateContent，
把模型的自由文本输出解析成经过校验的分类列表。
- 失败一律返回 None（fail closed），不向上抛
- 429 / RESOURCE_EXHAUSTED 会把 QuotaState 置为耗尽；耗尽期间直接返回 None，不发请求
- QuotaState 是显式对象，可在多个客户端之间注入共享
"""

from __future__ import annotations

import json
import logging
import re
from typing import List, Optional, Sequence

import httpx

from hnhub.errors import ClassificationError, QuotaExhaustedError

log = logging.getLogger(__name__)


_FENCE_RE = re.compile(r"^```[a-zA-Z0-9_-]*\s*\n?(.*?)\n?```$", re.DOTALL)


class QuotaState:
    """配额锁存：一旦耗尽，直到 reset() 才恢复"""

    def __init__(self):
        self._exhausted = False
        self.reason: Optional[str] = None

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    def mark_exhausted(self, reason: str = "") -> None:
        if not self._exhausted:
            log.warning("[classifier] 配额耗尽，后续调用将直接跳过: %s", reason)
        self._exhausted = True
        self.reason = reason

    def reset(self) -> None:
        self._exhausted = False
        self.reason = None


def build_prompt(title: str, prompt_text: str, topic_names: Sequence[str]) -> str:
    return f"{prompt_text}\n\nCategories: {', '.join(topic_names)}\n\nTitle: \"{title}\""


def strip_code_fence(text: str) -> str:
    """去掉 ```json ... ``` 或 `...` 包裹"""
    s = (text or "").strip()
    m = _FENCE_RE.match(s)
    if m:
        s = m.group(1).strip()
    return s.strip("`").strip()


def normalize_categories(data, topic_names: Sequence[str]) -> List[str]:
    """
    把解析后的 JSON 规范成分类列表：
    - 非数组 -> []
    - 只保留字符串项，大小写不敏感地映射到已知 topic 名，未知的丢弃
    - 保序去重
    """
    if not isinstance(data, list):
        return []
    known = {name.lower(): name for name in topic_names}
    out: List[str] = []
    for item in data:
        if not isinstance(item, str):
            continue
        name = known.get(item.strip().lower())
        if name and name not in out:
            out.append(name)
    return out


def _is_quota_error(resp: httpx.Response) -> bool:
    if resp.status_code == 429:
        return True
    try:
        data = resp.json()
    except ValueError:
        return False
    err = data.get("error") if isinstance(data, dict) else None
    return isinstance(err, dict) and err.get("status") == "RESOURCE_EXHAUSTED"


def _response_text(data: dict) -> str:
    # candidates[0].content.parts[0].text
    try:
        text = data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError) as e:
        raise ClassificationError(f"unexpected response shape: {e!r}") from e
    if not isinstance(text, str):
        raise ClassificationError(f"model text is not a string: {type(text).__name__}")
    return text


class GeminiClassifier:
    def __init__(
        self,
        api_key: str = "",
        *,
        model: str = "gemini-2.0-flash",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout_sec: float = 30.0,
        quota: Optional[QuotaState] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._api_key = api_key
        self.model = model
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_sec
        self.quota = quota or QuotaState()
        self._client = client
        self._owns_client = client is None

    def _client_get(self) -> httpx.AsyncClient:
        if self._client is None:
            timeout = httpx.Timeout(self._timeout, connect=5.0)
            self._client = httpx.AsyncClient(timeout=timeout, trust_env=True)
        return self._client

    @property
    def quota_exhausted(self) -> bool:
        return self.quota.exhausted

    def reset_quota(self) -> None:
        self.quota.reset()
        log.info("[classifier] 配额状态已重置")

    async def generate(self, prompt: str) -> str:
        """
        调用 generateContent，返回模型文本。
        配额耗尽抛 QuotaExhaustedError，其他失败抛 ClassificationError。
        """
        if self.quota.exhausted:
            raise QuotaExhaustedError("quota exhausted")

        url = f"{self._base_url}/models/{self.model}:generateContent"
        payload = {"contents": [{"parts": [{"text": prompt}]}]}
        try:
            r = await self._client_get().post(url, params={"key": self._api_key}, json=payload)
        except httpx.HTTPError as e:
            raise ClassificationError(f"request failed: {e!r}") from e

        if _is_quota_error(r):
            self.quota.mark_exhausted(f"http {r.status_code}")
            raise QuotaExhaustedError(f"http {r.status_code}: {(r.text or '')[:300]}")
        if not r.is_success:
            raise ClassificationError(f"http {r.status_code}: {(r.text or '')[:300]}")

        try:
            data = r.json()
        except ValueError as e:
            raise ClassificationError("response is not JSON") from e
        return _response_text(data)

    async def classify(self, title: str, prompt_text: Optional[str],
                       topic_names: Sequence[str]) -> Optional[List[str]]:
        """
        返回分类列表；[] 表示“已分类但无匹配”，None 表示本次没能分类
        """
        if self.quota.exhausted:
            return None
        if not self._api_key:
            log.debug("[classifier] 未配置 GEMINI_API_KEY，跳过")
            return None
        if not prompt_text or not topic_names:
            log.info("[classifier] 没有 prompt 或 topics，跳过分类")
            return None

        try:
            text = await self.generate(build_prompt(title, prompt_text, topic_names))
        except QuotaExhaustedError:
            return None
        except ClassificationError as e:
            log.error("[classifier] 分类失败: %s", e)
            return None

        try:
            data = json.loads(strip_code_fence(text))
        except ValueError:
            log.error("[classifier] 模型输出无法解析为 JSON: %r", text[:200])
            return None
        return normalize_categories(data, topic_names)

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None
