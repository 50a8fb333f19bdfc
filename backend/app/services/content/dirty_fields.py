# 脏字段检测：working_content vs store_snapshot_content
# 纯函数，无 I/O；结果按固定检测顺序输出且去重

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Tuple

from app.services.content.normalize import (
    ContentData,
    as_content,
    category_keys,
    image_keys,
    normalize_html,
    seo_part,
    stable_dump,
    strict_normalize,
    tag_keys,
)


# 检测顺序即输出顺序
DIRTY_FIELD_ORDER: Tuple[str, ...] = (
    "title",
    "sku",
    "slug",
    "vendor",
    "product_type",
    "image_url",
    "regular_price",
    "sale_price",
    "price",
    "stock",
    "description",
    "short_description",
    "seo.title",
    "seo.description",
    "tags",
    "categories",
    "images",
)

SCALAR_FIELDS = ("title", "sku", "slug", "vendor", "product_type", "image_url",
                 "regular_price", "sale_price", "price", "stock")
HTML_FIELDS = ("description", "short_description")

# 未显式设置类型时默认就是 simple
_DEFAULT_PRODUCT_TYPE = "simple"


def _product_type(value: Any) -> str:
    normalized = strict_normalize(value)
    return "" if normalized == _DEFAULT_PRODUCT_TYPE else normalized


def _scalar_key(field: str) -> Callable[[ContentData], str]:
    if field == "product_type":
        return lambda c: _product_type(c.get(field))
    return lambda c: strict_normalize(c.get(field))


def _html_key(field: str) -> Callable[[ContentData], str]:
    return lambda c: normalize_html(c.get(field))


def _seo_key(part: str) -> Callable[[ContentData], str]:
    return lambda c: strict_normalize(seo_part(c, part))


FIELD_COMPARATORS: Dict[str, Callable[[ContentData], Any]] = {
    **{f: _scalar_key(f) for f in SCALAR_FIELDS},
    **{f: _html_key(f) for f in HTML_FIELDS},
    "seo.title": _seo_key("title"),
    "seo.description": _seo_key("description"),
    "tags": lambda c: stable_dump(tag_keys(c.get("tags"))),
    "categories": lambda c: stable_dump(category_keys(c.get("categories"))),
    "images": lambda c: stable_dump(image_keys(c.get("images"))),
}


def compute_dirty_fields_content(
    working: Optional[ContentData],
    snapshot: Optional[ContentData],
) -> List[str]:
    """
    Return the ordered, de-duplicated list of fields where *working* diverged
    from *snapshot*. Either side may be None (treated as ``{}``).
    """
    w = as_content(working)
    s = as_content(snapshot)

    dirty: Dict[str, None] = {}  # 保持插入顺序的集合
    for field in DIRTY_FIELD_ORDER:
        key = FIELD_COMPARATORS[field]
        if key(w) != key(s):
            dirty[field] = None
    return list(dirty)


def is_dirty(working: Optional[ContentData], snapshot: Optional[ContentData]) -> bool:
    return bool(compute_dirty_fields_content(working, snapshot))
