# -*- coding: utf-8 -*-
# 工具模块：时间、时区窗口、日志

import logging
import re
import time
from datetime import datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo


_INT_RE = re.compile(r"(\d+)")


def now_ms() -> int:
    """
    获取当前时间的UTC毫秒时间戳

    返回:
        当前时间的毫秒时间戳
    """
    return int(time.time() * 1000)


def first_int(text: Optional[str], default: int = 0) -> int:
    """取文本中第一个整数，如 '42 points' -> 42；没有则返回 default"""
    if not text:
        return default
    m = _INT_RE.search(text.replace(",", ""))
    return int(m.group(1)) if m else default


def window_start_ms(days: int, tz_name: str, now: Optional[int] = None) -> int:
    """
    计算参考时区下“N 个日历日之前”的毫秒时间戳。

    在参考时区里按墙上时间倒退 N 天（而不是 N*86400 秒），
    所以中间跨越夏令时切换时，边界仍然落在同一个钟点上。

    参数:
        days: 回溯天数
        tz_name: IANA 时区名，如 "America/New_York"
        now: 当前时间（UTC毫秒），默认取系统时间

    返回:
        窗口起点（UTC毫秒）
    """
    tz = ZoneInfo(tz_name)
    now_ms_ = now if now is not None else now_ms()
    local_now = datetime.fromtimestamp(now_ms_ / 1000, tz=tz)
    # 同一 tzinfo 的 aware datetime 相减是墙上时间运算，timestamp() 再按目标日期的偏移换算
    cutoff = local_now - timedelta(days=days)
    return int(cutoff.timestamp() * 1000)


# ------------------------------------------------------------
# 日志：统一 "[组件] 消息" 前缀格式
# ------------------------------------------------------------

class TagFormatter(logging.Formatter):
    """带颜色的级别 + 方括号组件前缀"""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"
    PREFIX_WIDTH = 11

    def __init__(self, datefmt: str = "%H:%M:%S", color: bool = True):
        super().__init__(datefmt=datefmt)
        self.color = color

    def format(self, record):
        level = f"{record.levelname:<7}"
        if self.color:
            level = f"{self.LEVEL_COLORS.get(record.levelname, '')}{level}{self.RESET}"

        msg = record.getMessage()
        prefix = "main"
        if record.name.startswith("httpx"):
            prefix = "http"
        elif msg.startswith("["):
            end = msg.find("]")
            if end > 0:
                prefix = msg[1:end]
                msg = msg[end + 1:].lstrip()

        line = f"{self.formatTime(record, self.datefmt)} {level} [{prefix:<{self.PREFIX_WIDTH}}] {msg}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(level: str = "INFO", color: bool = True) -> None:
    """配置根 logger；httpx 的逐请求日志压到 WARNING"""
    handler = logging.StreamHandler()
    handler.setFormatter(TagFormatter(color=color))

    root = logging.getLogger()
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    root.handlers = [handler]

    for name in ("httpx", "httpcore"):
        lg = logging.getLogger(name)
        lg.setLevel(logging.WARNING)
