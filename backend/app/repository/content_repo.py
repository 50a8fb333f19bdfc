# products / articles 三缓冲内容的数据库读写
# 所有改写 working / snapshot 的入口都在这里，保证 dirty_fields_content 始终等于重新计算的结果

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Type

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.db.model.content import Article, Product, SyncHistory, TripleBufferMixin
from app.integrations.push_gateway.schemas import EntityType, PushResponse
from app.services.content.conflicts import ConflictResolution, apply_conflict_resolutions
from app.services.content.dirty_fields import compute_dirty_fields_content
from app.services.content.errors import EntityNotFoundError
from app.services.content.proposals import (
    accept_all_draft,
    accept_draft_field,
    reject_draft_field,
)
from app.services.content.status import ContentStatus, describe_content
from app.utils.clock import as_naive_utc, now_utc
from app.utils.serialization import clone_content


logger = logging.getLogger(__name__)

MODEL_BY_TYPE: Dict[str, Type[TripleBufferMixin]] = {
    "product": Product,
    "article": Article,
}


@dataclass(slots=True)
class RevertResult:
    reverted: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def model_for(entity_type: EntityType) -> Type[TripleBufferMixin]:
    try:
        return MODEL_BY_TYPE[entity_type]
    except KeyError:
        raise ValueError(f"unknown entity type: {entity_type!r}") from None


# ---------- 内部：唯一改写 working / snapshot 的地方 ----------
def _recompute_dirty(entity: TripleBufferMixin) -> List[str]:
    entity.dirty_fields_content = compute_dirty_fields_content(
        entity.working_content, entity.store_snapshot_content
    )
    return entity.dirty_fields_content


def _write_working(entity: TripleBufferMixin, working: Optional[dict], now: datetime) -> None:
    entity.working_content = clone_content(working) or {}
    entity.content_version = (entity.content_version or 0) + 1
    entity.working_content_updated_at = now
    _recompute_dirty(entity)


def _write_snapshot(entity: TripleBufferMixin, snapshot: Optional[dict]) -> None:
    entity.store_snapshot_content = clone_content(snapshot) or {}
    _recompute_dirty(entity)


# ---------- Query ----------
def get(db: Session, entity_type: EntityType, entity_id: str, tenant_id: Optional[str] = None):
    model = model_for(entity_type)
    stmt = select(model).where(model.id == entity_id)
    if tenant_id is not None:
        stmt = stmt.where(model.tenant_id == tenant_id)
    return db.scalars(stmt).first()


def get_or_raise(db: Session, entity_type: EntityType, entity_id: str, tenant_id: Optional[str] = None):
    entity = get(db, entity_type, entity_id, tenant_id)
    if entity is None:
        raise EntityNotFoundError(f"{entity_type} {entity_id} not found")
    return entity


def list_unsynced(db: Session, entity_type: EntityType, tenant_id: str) -> list:
    """dirty_fields_content 非空的实体（JSON 列跨方言不好过滤，在内存里筛）。"""
    model = model_for(entity_type)
    stmt = (
        select(model)
        .where(model.tenant_id == tenant_id)
        .order_by(model.working_content_updated_at.desc(), model.id.asc())
    )
    return [row for row in db.scalars(stmt) if row.dirty_fields_content]


def content_stats(db: Session, entity_type: EntityType, tenant_id: str) -> Dict[str, int]:
    model = model_for(entity_type)
    counts = {s.value: 0 for s in ContentStatus}
    stmt = select(model).where(model.tenant_id == tenant_id)
    total = 0
    for row in db.scalars(stmt):
        counts[describe_content(row).status.value] += 1
        total += 1
    counts["total"] = total
    return counts


def list_sync_history(db: Session, tenant_id: str, limit: int = 50) -> list[SyncHistory]:
    stmt = (
        select(SyncHistory)
        .where(SyncHistory.tenant_id == tenant_id)
        .order_by(SyncHistory.created_at.desc(), SyncHistory.id.desc())
        .limit(limit)
    )
    return list(db.scalars(stmt))


def count_entities(db: Session, entity_type: EntityType, tenant_id: str) -> int:
    model = model_for(entity_type)
    stmt = select(func.count()).select_from(model).where(model.tenant_id == tenant_id)
    return int(db.scalar(stmt) or 0)


# ---------- Lifecycle ----------
def create_entity(
    db: Session,
    *,
    entity_type: EntityType,
    tenant_id: str,
    store_content: Optional[dict],
    platform: str = "woocommerce",
    platform_id: Optional[str] = None,
    metadata: Optional[dict] = None,
    image_url: Optional[str] = None,
    store_updated_at: Optional[datetime] = None,
):
    """导入 / 首次同步时建档：snapshot = working，draft 为空，dirty 为空。"""
    model = model_for(entity_type)
    now = now_utc()
    entity = model(
        tenant_id=tenant_id,
        platform=platform,
        platform_id=platform_id,
        store_snapshot_content=clone_content(store_content) or {},
        working_content=clone_content(store_content) or {},
        draft_generated_content=None,
        dirty_fields_content=[],
        metadata_json=clone_content(metadata) or {},
        image_url=image_url,
        content_version=1,
        store_content_updated_at=as_naive_utc(store_updated_at) or now,
        working_content_updated_at=now,
        last_synced_at=now,
    )
    db.add(entity)
    db.commit()
    db.refresh(entity)
    logger.info("content.create type=%s id=%s tenant=%s", entity_type, entity.id, tenant_id)
    return entity


def delete_entity(db: Session, entity) -> None:
    # 单行删除：三个缓冲一起丢弃
    db.delete(entity)
    db.commit()


# ---------- Mutations: working ----------
def update_working_content(db: Session, entity, working: Optional[dict]):
    _write_working(entity, working, now_utc())
    db.commit()
    db.refresh(entity)
    return entity


def set_draft(db: Session, entity, draft: Optional[dict]):
    """生成端点写入 AI 提案；空 dict 按 None 存。"""
    entity.draft_generated_content = clone_content(draft) if draft else None
    db.commit()
    db.refresh(entity)
    return entity


def accept_draft(db: Session, entity, field: Optional[str] = None):
    """
    field 为空：整份草稿合并进 working，草稿清空；
    否则只移动一个字段，草稿没有剩余有效内容时清空。
    """
    draft = entity.draft_generated_content
    if field:
        working, remaining = accept_draft_field(draft, entity.working_content, field)
    else:
        working, remaining = accept_all_draft(draft, entity.working_content), None

    _write_working(entity, working, now_utc())
    entity.draft_generated_content = clone_content(remaining)
    db.commit()
    db.refresh(entity)
    logger.info("content.accept_draft id=%s field=%s draft_left=%s", entity.id, field or "*", remaining is not None)
    return entity


def reject_draft(db: Session, entity, field: Optional[str] = None):
    if field:
        entity.draft_generated_content = clone_content(reject_draft_field(entity.draft_generated_content, field))
    else:
        entity.draft_generated_content = None
    db.commit()
    db.refresh(entity)
    logger.info("content.reject_draft id=%s field=%s", entity.id, field or "*")
    return entity


'''
撤销本地修改（只动本地，不调用门店）：
    working := snapshot，dirty := []
按 id 逐个处理，单个失败不影响其它 id；调用方根据 failed 给出笼统的“撤销失败”提示
'''
def cancel_sync(
    db: Session,
    entity_type: EntityType,
    ids: Sequence[str],
    tenant_id: Optional[str] = None,
) -> RevertResult:
    result = RevertResult()
    for entity_id in ids:
        try:
            entity = get_or_raise(db, entity_type, entity_id, tenant_id)
            _write_working(entity, entity.store_snapshot_content, now_utc())
            db.commit()
            result.reverted.append(entity_id)
        except EntityNotFoundError:
            logger.warning("content.cancel_sync missing id=%s", entity_id)
            result.failed.append(entity_id)
        except SQLAlchemyError:
            db.rollback()
            logger.exception("content.cancel_sync failed id=%s", entity_id)
            result.failed.append(entity_id)
    return result


# ---------- Mutations: snapshot ----------
def capture_working(
    db: Session,
    entity_type: EntityType,
    ids: Sequence[str],
    tenant_id: Optional[str] = None,
) -> Dict[str, Dict[str, Any]]:
    """推送前记下每个实体将要推送的 working 副本；不存在 / 其它租户的 id 不在结果里。"""
    model = model_for(entity_type)
    stmt = select(model).where(model.id.in_(list(ids)))
    if tenant_id is not None:
        stmt = stmt.where(model.tenant_id == tenant_id)
    stmt = stmt.execution_options(populate_existing=True)
    return {row.id: clone_content(row.working_content) or {} for row in db.scalars(stmt)}


def apply_push_results(
    db: Session,
    response: PushResponse,
    *,
    tenant_id: Optional[str] = None,
    forced: bool = False,
    pushed_content: Optional[Mapping[str, Dict[str, Any]]] = None,
) -> List[str]:
    """
    推送成功（success 且未 skipped）的实体：snapshot := 推送前记下的 working（没有记录时用当前 working），
    dirty 按当前 working 重新计算，记录 last_synced_at。
    每个结果都写一条 sync_history。返回真正推送成功的 id。
    """
    now = now_utc()
    pushed: List[str] = []
    model = model_for(response.type)
    for res in response.results:
        # 推送期间其它会话可能改过 working，按库里的最新值重新加载
        stmt = select(model).where(model.id == res.id).execution_options(populate_existing=True)
        if tenant_id is not None:
            stmt = stmt.where(model.tenant_id == tenant_id)
        entity = db.scalars(stmt).first()
        if res.pushed and entity is not None:
            sent = entity.working_content
            if pushed_content is not None and res.id in pushed_content:
                sent = pushed_content[res.id]
            _write_snapshot(entity, sent)
            entity.last_synced_at = now
            entity.store_content_updated_at = now
            if res.platform_id and not entity.platform_id:
                entity.platform_id = res.platform_id
            pushed.append(res.id)

        outcome = "skipped" if res.skipped else ("success" if res.success else "failed")
        db.add(SyncHistory(
            tenant_id=entity.tenant_id if entity is not None else tenant_id,
            entity_type=response.type,
            entity_id=res.id,
            platform_id=res.platform_id,
            outcome=outcome,
            message=res.error or res.skip_reason,
            forced=forced,
        ))
    db.commit()
    logger.info("content.apply_push_results type=%s pushed=%s total=%s", response.type, len(pushed), len(response.results))
    return pushed


def apply_store_pull(
    db: Session,
    entity,
    store_content: Optional[dict],
    store_updated_at: Optional[datetime] = None,
):
    """
    从门店拉取：snapshot 更新；本地没有未推送修改时 working 跟随门店。
    有本地修改时保留 working，之后由冲突检测提示。
    """
    had_local_changes = bool(entity.dirty_fields_content)
    entity.store_snapshot_content = clone_content(store_content) or {}
    entity.store_content_updated_at = as_naive_utc(store_updated_at) or now_utc()
    if not had_local_changes:
        entity.working_content = clone_content(store_content) or {}
        entity.last_synced_at = max(entity.store_content_updated_at, now_utc())
    _recompute_dirty(entity)
    db.commit()
    db.refresh(entity)
    return entity


def resolve_conflicts(db: Session, entity, resolutions: Iterable[ConflictResolution]):
    """按字段解决冲突后确认门店变更（last_synced_at := now），冲突标记随之消失。"""
    now = now_utc()
    working = apply_conflict_resolutions(entity.working_content, entity.store_snapshot_content, resolutions)
    _write_working(entity, working, now)
    entity.last_synced_at = now
    db.commit()
    db.refresh(entity)
    return entity


def force_store_content(db: Session, entity):
    """直接采用门店内容：working := snapshot 并确认门店变更。"""
    now = now_utc()
    _write_working(entity, entity.store_snapshot_content, now)
    entity.last_synced_at = now
    db.commit()
    db.refresh(entity)
    return entity


def snapshot_of(entity) -> Dict[str, Any]:
    """接口返回用的三缓冲快照。"""
    return {
        "id": entity.id,
        "platform": entity.platform,
        "platform_id": entity.platform_id,
        "store_snapshot_content": entity.store_snapshot_content or {},
        "working_content": entity.working_content or {},
        "draft_generated_content": entity.draft_generated_content,
        "dirty_fields_content": list(entity.dirty_fields_content or []),
        "content_version": entity.content_version,
        "last_synced_at": entity.last_synced_at,
        "store_content_updated_at": entity.store_content_updated_at,
        "working_content_updated_at": entity.working_content_updated_at,
    }
