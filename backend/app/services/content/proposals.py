# AI 草稿（draft_generated_content）相对 working_content 的剩余提案

from __future__ import annotations

from typing import Any, List, Mapping, Optional, Tuple

from app.services.content.errors import DraftFieldMissingError, NoDraftError
from app.services.content.normalize import (
    ContentData,
    as_content,
    as_list,
    normalize_html,
    normalize_value,
)


PROPOSAL_SIMPLE_FIELDS = ("title", "sku")
PROPOSAL_HTML_FIELDS = ("description", "short_description")
SEO_SUBFIELDS = ("title", "description")

# UI 管理的字段子集；slug / vendor / tags / categories 等孤立字段一律忽略
MANAGED_SIMPLE_FIELDS = ("title", "description", "short_description", "sku")


def _seo(content: Mapping[str, Any]) -> Mapping[str, Any]:
    seo = content.get("seo")
    return seo if isinstance(seo, Mapping) else {}


def _image_alt(img: Any) -> str:
    if isinstance(img, Mapping):
        return normalize_value(img.get("alt"))
    return ""


def _has_image_alt_changes(draft_images: list, working_images: list) -> bool:
    # 按下标比较 alt；working 在该下标没有图片时视为新图片
    for idx, draft_img in enumerate(draft_images):
        if idx >= len(working_images) or working_images[idx] is None:
            return True
        draft_alt = _image_alt(draft_img)
        if draft_alt and draft_alt != _image_alt(working_images[idx]):
            return True
    return False


def get_remaining_proposals(
    draft: Optional[ContentData],
    working: Optional[ContentData],
) -> List[str]:
    """
    Fields the draft still proposes: a non-empty draft value that differs from
    the working copy after normalization. Order: title, sku, description,
    short_description, seo.title, seo.description, images.
    """
    remaining: List[str] = []
    if not draft:
        return remaining

    d = as_content(draft)
    w = as_content(working)

    for field in PROPOSAL_SIMPLE_FIELDS:
        draft_value = normalize_value(d.get(field))
        if draft_value and draft_value != normalize_value(w.get(field)):
            remaining.append(field)

    for field in PROPOSAL_HTML_FIELDS:
        draft_value = normalize_html(d.get(field))
        if draft_value and draft_value != normalize_html(w.get(field)):
            remaining.append(field)

    if d.get("seo"):
        draft_seo, working_seo = _seo(d), _seo(w)
        for part in SEO_SUBFIELDS:
            draft_value = normalize_value(draft_seo.get(part))
            if draft_value and draft_value != normalize_value(working_seo.get(part)):
                remaining.append(f"seo.{part}")

    draft_images = as_list(d.get("images"))
    if draft_images and _has_image_alt_changes(draft_images, as_list(w.get("images"))):
        remaining.append("images")

    return remaining


def is_draft_already_applied(draft: Optional[ContentData], working: Optional[ContentData]) -> bool:
    # 草稿存在但没有任何剩余提案 = 已应用（"虚"草稿）
    if not draft:
        return True
    return len(get_remaining_proposals(draft, working)) == 0


def _is_present(value: Any) -> bool:
    if value is None or (isinstance(value, str) and value == ""):
        return False
    if isinstance(value, (list, tuple)):
        return len(value) > 0
    if isinstance(value, str):
        return value.strip() != ""
    return True


def has_remaining_draft_content(draft: Optional[ContentData]) -> bool:
    """只看 UI 管理的字段是否还有非空值，不和 working 比较。"""
    if not draft or not isinstance(draft, Mapping):
        return False

    for field in MANAGED_SIMPLE_FIELDS:
        if _is_present(draft.get(field)):
            return True

    for img in as_list(draft.get("images")):
        alt = img.get("alt") if isinstance(img, Mapping) else None
        if isinstance(alt, str) and alt.strip():
            return True

    seo = _seo(draft)
    for part in SEO_SUBFIELDS:
        value = seo.get(part)
        if isinstance(value, str) and value.strip():
            return True

    return False


def has_actionable_draft(draft: Optional[ContentData], working: Optional[ContentData]) -> bool:
    """列表/状态使用的判定：草稿有 UI 字段且尚未被应用。"""
    return has_remaining_draft_content(draft) and not is_draft_already_applied(draft, working)


def has_valid_draft_content(draft: Optional[ContentData]) -> bool:
    # 接受/拒绝单个字段后，用于判断剩余草稿是否还需保留
    # 这里只看"有没有值"：空列表的 images 也算有效
    if not draft:
        return False
    d = as_content(draft)
    for field in MANAGED_SIMPLE_FIELDS + ("images",):
        value = d.get(field)
        if value is not None and not (isinstance(value, str) and value == ""):
            return True
    seo = _seo(d)
    return bool(seo.get("title") or seo.get("description"))


def remove_field_from_draft(draft: Optional[ContentData], field: str) -> Optional[dict]:
    """
    返回删除 field 之后的新草稿（不修改入参）。
    seo.title / seo.description 删除子键；两者都空时整个 seo 去掉。
    """
    if not draft:
        return None
    updated = dict(draft)

    if field.startswith("seo."):
        part = field.split(".", 1)[1]
        seo = dict(_seo(updated))
        seo.pop(part, None)
        if not seo.get("title") and not seo.get("description"):
            updated.pop("seo", None)
        else:
            updated["seo"] = seo
    else:
        updated.pop(field, None)

    return updated


# ========= 接受草稿 =========
def accept_draft_field(
    draft: Optional[ContentData],
    working: Optional[ContentData],
    field: str,
) -> Tuple[dict, Optional[dict]]:
    """
    把 draft[field] 移入 working，返回 (新 working, 剩余 draft 或 None)。
    seo.* 合并进 working.seo；images 整体替换。
    """
    if not draft:
        raise NoDraftError("no draft to accept")
    d = as_content(draft)
    updated_working = as_content(working)

    if field.startswith("seo."):
        part = field.split(".", 1)[1]
        value = _seo(d).get(part)
        if not value:
            raise DraftFieldMissingError(f"draft has no value for {field}")
        seo = dict(_seo(updated_working))
        seo[part] = value
        updated_working["seo"] = seo
    elif field == "images":
        images = as_list(d.get("images"))
        if not images:
            raise DraftFieldMissingError("draft has no images to accept")
        updated_working["images"] = images
    else:
        if field not in d:
            raise DraftFieldMissingError(f"draft has no value for {field}")
        updated_working[field] = d[field]

    remaining = remove_field_from_draft(d, field)
    return updated_working, remaining if has_valid_draft_content(remaining) else None


def accept_all_draft(draft: Optional[ContentData], working: Optional[ContentData]) -> dict:
    """草稿所有键覆盖到 working；seo 按子键合并，其余键保留 working 原值。"""
    if not draft:
        raise NoDraftError("no draft to accept")
    d = as_content(draft)
    updated_working = as_content(working)
    for key, value in d.items():
        if key == "seo" and isinstance(value, Mapping):
            updated_working["seo"] = {**_seo(updated_working), **value}
        else:
            updated_working[key] = value
    return updated_working


def reject_draft_field(draft: Optional[ContentData], field: str) -> Optional[dict]:
    if not draft:
        raise NoDraftError("no draft to reject")
    remaining = remove_field_from_draft(draft, field)
    return remaining if has_valid_draft_content(remaining) else None
