# 内容状态：无状态分类器，每次读取时重新计算，不落库

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Sequence

from app.services.content.conflicts import ConflictReport, detect_conflicts
from app.services.content.normalize import as_content
from app.services.content.proposals import get_remaining_proposals, has_actionable_draft


class ContentStatus(str, Enum):
    SYNCED = "SYNCED"
    READY_TO_SYNC = "READY_TO_SYNC"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    CONFLICT = "CONFLICT"


'''
优先级链（第一个命中即返回）：
    CONFLICT > PENDING_APPROVAL > READY_TO_SYNC > SYNCED
草稿存在时即使没有脏字段也是 PENDING_APPROVAL：草稿本身可能就是对差异的处理
'''
def get_content_status(
    dirty_fields: Optional[Sequence[str]],
    has_draft: bool,
    has_conflict: bool = False,
) -> ContentStatus:
    if has_conflict:
        return ContentStatus.CONFLICT
    if has_draft:
        return ContentStatus.PENDING_APPROVAL
    if dirty_fields:
        return ContentStatus.READY_TO_SYNC
    return ContentStatus.SYNCED


@dataclass(slots=True)
class ContentStatusView:
    status: ContentStatus
    dirty_fields: List[str] = field(default_factory=list)
    remaining_proposals: List[str] = field(default_factory=list)
    has_conflict: bool = False
    conflict_fields: List[str] = field(default_factory=list)


def _get(entity: Any, attr: str) -> Any:
    if isinstance(entity, dict):
        return entity.get(attr)
    return getattr(entity, attr, None)


def describe_content(entity: Any, conflict_report: Optional[ConflictReport] = None) -> ContentStatusView:
    """
    给 UI 的状态展示：状态 + 原始脏字段 + 剩余提案。
    entity 可以是 ORM 行，也可以是同名键的 dict。
    """
    working = as_content(_get(entity, "working_content"))
    draft = _get(entity, "draft_generated_content")
    dirty = list(_get(entity, "dirty_fields_content") or [])

    if conflict_report is None:
        conflict_report = detect_conflicts(
            working,
            _get(entity, "store_snapshot_content"),
            store_updated_at=_get(entity, "store_content_updated_at"),
            local_updated_at=_get(entity, "working_content_updated_at"),
            last_synced_at=_get(entity, "last_synced_at"),
        )

    status = get_content_status(
        dirty,
        has_actionable_draft(draft, working),
        conflict_report.has_conflict,
    )
    return ContentStatusView(
        status=status,
        dirty_fields=dirty,
        remaining_proposals=get_remaining_proposals(draft, working),
        has_conflict=conflict_report.has_conflict,
        conflict_fields=conflict_report.fields,
    )
