# -*- coding: utf-8 -*-
"""
config.py
读取 ops/config.yml（可选），按段浅合并到 DEFAULT_CFG，再用环境变量覆盖。
"""

from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Optional, Union

import yaml

log = logging.getLogger(__name__)

ROOT = Path(__file__).resolve().parents[1]
CFG_PATH = ROOT / "ops" / "config.yml"


DEFAULT_CFG = {
    "log_level": "INFO",
    "store": {
        "db_path": str(ROOT / "hn.db"),
        "seed_path": str(ROOT / "ops" / "seed.yml"),
    },
    "fetcher": {
        "base_url": "https://news.ycombinator.com/",
        "timeout_sec": 15.0,
        "user_agent": "hn-hub/1.0",
    },
    "ingest": {
        "page_size": 30,
        "max_pages": 5,
        "page_delay_sec": 5.0,
        "auto_fetch": True,
        "fetch_multiple_pages": True,
        "front_page_every_sec": 60,
        "full_refresh_every_sec": 1800,
        "reference_timezone": "America/New_York",
        "window_days": 4,
    },
    "categorize": {
        "enabled": False,
        "batch_size": 5,
        "batch_size_after_ingest": 10,
        "delay_sec": 2.0,
    },
    "classifier": {
        "api_key": "",
        "model": "gemini-2.0-flash",
        "base_url": "https://generativelanguage.googleapis.com/v1beta",
        "timeout_sec": 30.0,
    },
}

# 环境变量 -> (段, 键, 类型)
_ENV_MAP = {
    "GEMINI_API_KEY": ("classifier", "api_key", str),
    "GEMINI_MODEL": ("classifier", "model", str),
    "HN_DB_PATH": ("store", "db_path", str),
    "HN_AUTO_FETCH": ("ingest", "auto_fetch", bool),
    "HN_FETCH_MULTIPLE_PAGES": ("ingest", "fetch_multiple_pages", bool),
    "HN_CATEGORIZE_STORIES": ("categorize", "enabled", bool),
    "HN_REFERENCE_TZ": ("ingest", "reference_timezone", str),
}


def _as_bool(v: str) -> bool:
    return v.strip().lower() in {"1", "true", "yes", "on"}


def _merge(base: dict, data: dict) -> dict:
    """只做段级浅合并，避免过度魔法"""
    out = copy.deepcopy(base)
    for k, v in (data or {}).items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = {**out[k], **v}
        else:
            out[k] = v
    return out


def load_cfg(path: Optional[Union[str, Path]] = None, env: Optional[dict] = None) -> dict:
    """ops/config.yml 可选；不存在或读取失败就用默认。"""
    cfg_path = Path(path) if path else CFG_PATH
    cfg = copy.deepcopy(DEFAULT_CFG)

    if cfg_path.exists():
        try:
            data = yaml.safe_load(cfg_path.read_text(encoding="utf-8")) or {}
            cfg = _merge(cfg, data)
        except (OSError, yaml.YAMLError) as e:
            log.warning("[config] 读取 %s 失败，使用默认。err=%s", cfg_path, e)

    environ = os.environ if env is None else env
    for name, (section, key, kind) in _ENV_MAP.items():
        raw = environ.get(name)
        if raw is None or raw == "":
            continue
        cfg[section][key] = _as_bool(raw) if kind is bool else kind(raw)

    return cfg
