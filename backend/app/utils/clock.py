from __future__ import annotations
from datetime import datetime, timezone
from typing import Optional


def now_utc() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)  # 与 DB naive UTC 对齐


def as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """带时区的时间转换成 naive UTC，naive 值原样返回。"""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
