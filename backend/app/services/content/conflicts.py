# 冲突检测：门店内容在上次同步之后被修改，且与本地 working 不一致

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, List, Literal, Mapping, Optional

from app.services.content.errors import InvalidResolutionError
from app.services.content.normalize import ContentData, as_content, stable_dump
from app.utils.clock import as_naive_utc


CONFLICT_FIELDS = (
    "title",
    "description",
    "short_description",
    "sku",
    "slug",
    "price",
    "regular_price",
    "sale_price",
    "stock",
)
CONFLICT_SEO_FIELDS = ("title", "description")

ResolutionAction = Literal["keep_local", "use_store", "merge"]
_ACTIONS = {"keep_local", "use_store", "merge"}


@dataclass(slots=True)
class ContentConflict:
    field: str
    store_value: Any
    local_value: Any
    last_sync_at: Optional[datetime] = None
    store_updated_at: Optional[datetime] = None
    local_updated_at: Optional[datetime] = None


@dataclass(slots=True)
class ConflictReport:
    conflicts: List[ContentConflict] = field(default_factory=list)
    last_sync_at: Optional[datetime] = None
    store_updated_at: Optional[datetime] = None
    local_updated_at: Optional[datetime] = None

    @property
    def has_conflict(self) -> bool:
        return len(self.conflicts) > 0

    @property
    def fields(self) -> List[str]:
        return [c.field for c in self.conflicts]


@dataclass(slots=True)
class ConflictResolution:
    field: str
    resolution: ResolutionAction
    merged_value: Any = None


def values_differ(a: Any, b: Any) -> bool:
    if a is None or b is None:
        return (a is None) != (b is None)
    if isinstance(a, (dict, list)) and isinstance(b, (dict, list)):
        return stable_dump(a) != stable_dump(b)
    return a != b


def store_has_updated(store_updated_at: Optional[datetime], last_synced_at: Optional[datetime]) -> bool:
    if store_updated_at is None or last_synced_at is None:
        return False
    return as_naive_utc(store_updated_at) > as_naive_utc(last_synced_at)


def detect_conflicts(
    working: Optional[ContentData],
    snapshot: Optional[ContentData],
    *,
    store_updated_at: Optional[datetime] = None,
    local_updated_at: Optional[datetime] = None,
    last_synced_at: Optional[datetime] = None,
) -> ConflictReport:
    """
    Only reports conflicts once the store changed after the last sync
    acknowledgment; otherwise local edits are plain dirty fields.
    """
    report = ConflictReport(
        last_sync_at=last_synced_at,
        store_updated_at=store_updated_at,
        local_updated_at=local_updated_at,
    )
    if not working or not snapshot:
        return report
    if not store_has_updated(store_updated_at, last_synced_at):
        return report

    w, s = as_content(working), as_content(snapshot)

    def _add(name: str, store_value: Any, local_value: Any) -> None:
        report.conflicts.append(ContentConflict(
            field=name,
            store_value=store_value,
            local_value=local_value,
            last_sync_at=last_synced_at,
            store_updated_at=store_updated_at,
            local_updated_at=local_updated_at,
        ))

    for name in CONFLICT_FIELDS:
        if values_differ(w.get(name), s.get(name)):
            _add(name, s.get(name), w.get(name))

    w_seo, s_seo = w.get("seo"), s.get("seo")
    if isinstance(w_seo, Mapping) and isinstance(s_seo, Mapping):
        for part in CONFLICT_SEO_FIELDS:
            if values_differ(w_seo.get(part), s_seo.get(part)):
                _add(f"seo.{part}", s_seo.get(part), w_seo.get(part))

    return report


def apply_conflict_resolutions(
    working: Optional[ContentData],
    snapshot: Optional[ContentData],
    resolutions: Iterable[ConflictResolution],
) -> dict:
    """按字段应用 keep_local / use_store / merge，返回新的 working。"""
    resolved = as_content(working)
    s = as_content(snapshot)

    for res in resolutions:
        if res.resolution not in _ACTIONS:
            raise InvalidResolutionError(f"unknown resolution {res.resolution!r} for field {res.field}")
        if res.resolution == "keep_local":
            continue

        if res.field.startswith("seo."):
            part = res.field.split(".", 1)[1]
            seo = dict(resolved.get("seo") or {})
            if res.resolution == "use_store":
                seo[part] = as_content(s.get("seo")).get(part)
            else:
                seo[part] = res.merged_value
            resolved["seo"] = seo
        elif res.resolution == "use_store":
            resolved[res.field] = s.get(res.field)
        else:
            resolved[res.field] = res.merged_value

    return resolved
