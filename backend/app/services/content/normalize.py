# 字段归一化：把字符串 / HTML / 数组 / SEO 嵌套字段统一成可比较的形式
# 类型不对时一律退化为空字符串比较

from __future__ import annotations

import json
import math
import re
from decimal import Decimal
from typing import Any, Iterable, List, Mapping, Optional

ContentData = Mapping[str, Any]

_META_TAG_RE = re.compile(r"<meta[^>]*>", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")


def as_content(value: Any) -> dict:
    """None / 非 dict 一律视为 {}。"""
    return dict(value) if isinstance(value, Mapping) else {}


def as_list(value: Any) -> list:
    return list(value) if isinstance(value, (list, tuple)) else []


def _number_to_str(value: Any) -> str:
    # 与前端 String(number) 对齐：10.0 -> "10"，NaN/Infinity 原样输出
    if isinstance(value, Decimal):
        value = float(value)
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer():
            return str(int(value))
        return repr(value)
    return str(value)


def normalize_value(value: Any) -> str:
    """null -> ""；字符串 trim；其它标量 str()。"""
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float, Decimal)):
        return _number_to_str(value)
    return str(value)


def normalize_html(html: Any) -> str:
    """
    去掉 <meta> 标签、&nbsp; 替换为空格、折叠连续空白并 trim。
    编辑器重新包裹/转义 HTML 不应被识别为内容变化。
    """
    if html is None:
        return ""
    if not isinstance(html, str):
        html = normalize_value(html)
    text = _META_TAG_RE.sub("", html)
    text = text.replace("&nbsp;", " ")
    text = _WHITESPACE_RE.sub(" ", text)
    return text.strip()


def strict_normalize(value: Any) -> str:
    """
    和 normalize_value 一样，但显式处理 bool / 数字：
    0 与 "0"、True 与 "true" 不算差异。
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float, Decimal)):
        return _number_to_str(value)
    if isinstance(value, str):
        return value.strip()
    return ""


# ========= 数组字段：排序后的派生 key，用于顺序无关比较 =========
def tag_keys(tags: Any) -> List[str]:
    return sorted(strict_normalize(t) for t in as_list(tags))


def _category_name(category: Any) -> str:
    if isinstance(category, Mapping):
        return strict_normalize(category.get("name"))
    if isinstance(category, str):
        return strict_normalize(category)
    return ""


def category_keys(categories: Any) -> List[str]:
    return sorted(_category_name(c) for c in as_list(categories))


def image_keys(images: Any) -> List[dict]:
    """图片只比较 {id, src}，alt 不参与；src 缺失时回退到 url。"""
    keys = []
    for img in as_list(images):
        if not isinstance(img, Mapping):
            keys.append({"id": "", "src": ""})
            continue
        img_id = img.get("id")
        keys.append({
            "id": normalize_value(img_id) if img_id not in (None, "", 0) else "",
            "src": strict_normalize(img.get("src") or img.get("url")),
        })
    return sorted(keys, key=lambda k: k["src"])


def stable_dump(value: Any) -> str:
    """结构化比较用的字符串化；key 顺序不影响结果。"""
    return json.dumps(value, sort_keys=True, ensure_ascii=False, default=str)


def seo_part(content: Optional[ContentData], key: str) -> Any:
    seo = as_content(content).get("seo")
    if isinstance(seo, Mapping):
        return seo.get(key)
    return None


# ========= 多来源取值 =========
def first_non_empty(sources: Iterable[Any]) -> Optional[Any]:
    """按优先级返回第一个非空值（None / 空字符串 / 空容器都视为空）。"""
    for value in sources:
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        if isinstance(value, (list, tuple, dict)) and not value:
            continue
        return value
    return None
