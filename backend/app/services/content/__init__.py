"""
对外统一入口：三缓冲内容对比 / 草稿提案 / 状态 / 冲突。
"""

from .normalize import normalize_value, normalize_html, strict_normalize, first_non_empty
from .dirty_fields import compute_dirty_fields_content, DIRTY_FIELD_ORDER
from .proposals import (
    get_remaining_proposals,
    is_draft_already_applied,
    has_remaining_draft_content,
    has_actionable_draft,
    has_valid_draft_content,
    remove_field_from_draft,
    accept_draft_field,
    accept_all_draft,
    reject_draft_field,
)
from .status import ContentStatus, ContentStatusView, get_content_status, describe_content
from .conflicts import (
    ConflictReport, ConflictResolution, ContentConflict,
    detect_conflicts, apply_conflict_resolutions, store_has_updated,
)
from .labels import FIELD_LABELS, get_field_label, format_dirty_fields_list
from .sources import resolve_primary_image
from .errors import (
    ContentError, EntityNotFoundError, NoDraftError, DraftFieldMissingError, InvalidResolutionError,
)


__all__ = [
    "normalize_value", "normalize_html", "strict_normalize", "first_non_empty",
    "compute_dirty_fields_content", "DIRTY_FIELD_ORDER",
    "get_remaining_proposals", "is_draft_already_applied", "has_remaining_draft_content",
    "has_actionable_draft", "has_valid_draft_content", "remove_field_from_draft",
    "accept_draft_field", "accept_all_draft", "reject_draft_field",
    "ContentStatus", "ContentStatusView", "get_content_status", "describe_content",
    "ConflictReport", "ConflictResolution", "ContentConflict",
    "detect_conflicts", "apply_conflict_resolutions", "store_has_updated",
    "FIELD_LABELS", "get_field_label", "format_dirty_fields_list",
    "resolve_primary_image",
    "ContentError", "EntityNotFoundError", "NoDraftError", "DraftFieldMissingError", "InvalidResolutionError",
]
