from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional
import copy
import math
import uuid


def to_jsonable(value: Any):
    """
    Recursively convert arbitrary Python values into JSON-serializable primitives.
    """
    if isinstance(value, Decimal):
        f = float(value)
        if math.isnan(f) or math.isinf(f):
            return None
        return f
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (list, tuple, set)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
    return value


def clone_content(value: Optional[dict]) -> Optional[dict]:
    """
    JSON 列赋值前做深拷贝：SQLAlchemy 只在对象引用变化时才标记 JSON 列已修改，
    三个缓冲之间也不能共享同一个 dict。
    """
    if value is None:
        return None
    return copy.deepcopy(to_jsonable(value))
