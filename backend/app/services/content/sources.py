# 主图解析：从多个可选来源中按固定优先级取第一个可用的图片地址

from __future__ import annotations

from typing import Any, Callable, Optional, Sequence, Tuple

from app.services.content.normalize import as_content, as_list, first_non_empty


def _first_image_src(images: Any) -> Optional[str]:
    for img in as_list(images)[:1]:
        if isinstance(img, dict):
            return img.get("src") or img.get("url")
        if isinstance(img, str):
            return img
    return None


def _from_working(entity: Any) -> Optional[str]:
    return _first_image_src(as_content(_get(entity, "working_content")).get("images"))


def _from_metadata(entity: Any) -> Optional[str]:
    return _first_image_src(as_content(_get(entity, "metadata_json")).get("images"))


def _from_image_url(entity: Any) -> Optional[str]:
    return _get(entity, "image_url")


# 优先级固定：working_content.images -> metadata.images -> image_url
PRIMARY_IMAGE_SOURCES: Tuple[Tuple[str, Callable[[Any], Optional[str]]], ...] = (
    ("working_content.images", _from_working),
    ("metadata.images", _from_metadata),
    ("image_url", _from_image_url),
)


def _get(entity: Any, attr: str) -> Any:
    if isinstance(entity, dict):
        return entity.get(attr)
    return getattr(entity, attr, None)


def resolve_primary_image(
    entity: Any,
    sources: Sequence[Tuple[str, Callable[[Any], Optional[str]]]] = PRIMARY_IMAGE_SOURCES,
) -> Optional[str]:
    """entity 可以是 ORM 行或 dict。"""
    return first_non_empty(resolver(entity) for _, resolver in sources)
