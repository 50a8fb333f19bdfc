from __future__ import annotations

from typing import List, Optional


def calc_next_delay_ms(attempt: int, base_ms: int = 1000, max_ms: Optional[int] = None) -> int:
    """
    指数退避（无抖动）：attempt 从 0 开始，base * 2**attempt。
    attempt=0 -> 1000ms, attempt=1 -> 2000ms, attempt=2 -> 4000ms
    """
    attempt = max(0, attempt)
    delay = base_ms * (2 ** attempt)
    if max_ms is not None:
        return min(max_ms, delay)
    return delay


def retry_schedule_ms(max_attempts: int, base_ms: int = 1000) -> List[int]:
    """两次尝试之间的等待序列；最后一次失败后不再等待。"""
    return [calc_next_delay_ms(i, base_ms) for i in range(max(0, max_attempts - 1))]
