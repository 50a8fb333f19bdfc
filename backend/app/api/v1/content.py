# 内容三缓冲接口 -> 编辑器 / 商品列表 / 冲突面板调用

from __future__ import annotations
import logging
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Response
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session, sessionmaker

from app.api.v1.deps import (
    get_cache, get_push_gateway, get_session_factory, get_sleep, get_tenant_id,
)
from app.db.session import get_db
from app.infrastructure.cache.query_cache import QueryCache
from app.orchestration.push_to_store.auto_sync import run_auto_sync_detached
from app.orchestration.push_to_store.push_task import (
    PushGateway, Sleep, aggregate_cache_keys, entity_cache_keys,
)
from app.repository import content_repo
from app.services.content import (
    ContentStatus, ConflictResolution, describe_content, detect_conflicts,
    format_dirty_fields_list, resolve_primary_image,
)
from app.services.content.errors import (
    DraftFieldMissingError, EntityNotFoundError, InvalidResolutionError, NoDraftError,
)


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/content", tags=["content"])

EntityTypeParam = Literal["product", "article"]


# ---------- Pydantic 模型 ----------
class ContentDetail(BaseModel):
    id: str
    tenant_id: str
    entity_type: EntityTypeParam
    platform: str
    platform_id: Optional[str] = None

    store_snapshot_content: Dict[str, Any] = Field(default_factory=dict)
    working_content: Dict[str, Any] = Field(default_factory=dict)
    draft_generated_content: Optional[Dict[str, Any]] = None
    dirty_fields_content: List[str] = Field(default_factory=list)

    # 状态展示：状态 + 原始脏字段 + 剩余提案
    status: ContentStatus
    remaining_proposals: List[str] = Field(default_factory=list)
    has_conflict: bool = False
    conflict_fields: List[str] = Field(default_factory=list)
    dirty_fields_label: str = ""
    primary_image: Optional[str] = None

    content_version: int = 1
    last_synced_at: Optional[datetime] = None
    store_content_updated_at: Optional[datetime] = None
    working_content_updated_at: Optional[datetime] = None


class ContentSummary(BaseModel):
    id: str
    platform_id: Optional[str] = None
    title: Optional[str] = None
    status: ContentStatus
    dirty_fields_content: List[str] = Field(default_factory=list)
    working_content_updated_at: Optional[datetime] = None


class CreateContentIn(BaseModel):
    store_content: Dict[str, Any] = Field(default_factory=dict)
    platform: str = "woocommerce"
    platform_id: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    image_url: Optional[str] = None
    store_updated_at: Optional[datetime] = None


class WorkingContentIn(BaseModel):
    working_content: Dict[str, Any]
    auto_sync: bool = False


class DraftIn(BaseModel):
    draft_generated_content: Optional[Dict[str, Any]] = None


class DraftFieldIn(BaseModel):
    field: Optional[str] = None   # 为空 = 全部


class StorePullIn(BaseModel):
    store_content: Dict[str, Any]
    store_updated_at: Optional[datetime] = None


class ConflictOut(BaseModel):
    field: str
    store_value: Any = None
    local_value: Any = None
    last_sync_at: Optional[datetime] = None


class ConflictReportOut(BaseModel):
    has_conflict: bool
    conflicts: List[ConflictOut] = Field(default_factory=list)
    last_sync_at: Optional[datetime] = None
    store_updated_at: Optional[datetime] = None
    local_updated_at: Optional[datetime] = None


class ResolutionIn(BaseModel):
    field: str
    resolution: Literal["keep_local", "use_store", "merge"]
    merged_value: Any = None


class ResolveConflictsIn(BaseModel):
    resolutions: List[ResolutionIn]


# ---------- helpers ----------
def _detail_cache_key(entity_type: str, entity_id: str) -> tuple:
    # 详情缓存放在实体的第一个 key 下：product-content / blog-article
    return entity_cache_keys(entity_type, entity_id)[-1]


def _build_detail(entity_type: str, entity) -> ContentDetail:
    view = describe_content(entity)
    snap = content_repo.snapshot_of(entity)
    return ContentDetail(
        **snap,
        tenant_id=entity.tenant_id,
        entity_type=entity_type,
        status=view.status,
        remaining_proposals=view.remaining_proposals,
        has_conflict=view.has_conflict,
        conflict_fields=view.conflict_fields,
        dirty_fields_label=format_dirty_fields_list(view.dirty_fields),
        primary_image=resolve_primary_image(entity),
    )


def _load(db: Session, entity_type: str, entity_id: str, tenant_id: str):
    try:
        return content_repo.get_or_raise(db, entity_type, entity_id, tenant_id)
    except EntityNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


def _invalidate(cache: QueryCache, entity_type: str, entity_id: str) -> None:
    for key in entity_cache_keys(entity_type, entity_id) + aggregate_cache_keys(entity_type):
        cache.invalidate(key)


def _changed(cache: QueryCache, entity_type: str, entity) -> ContentDetail:
    _invalidate(cache, entity_type, entity.id)
    return _build_detail(entity_type, entity)



# ---------- 列表 / 统计（放在 /{entity_id} 之前，避免被路径参数吞掉）----------
@router.get("/{entity_type}/unsynced", response_model=List[ContentSummary])
def list_unsynced(
    entity_type: EntityTypeParam,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    rows = content_repo.list_unsynced(db, entity_type, tenant_id)
    logger.info("content.unsynced type=%s tenant=%s count=%s", entity_type, tenant_id, len(rows))
    return [
        ContentSummary(
            id=row.id,
            platform_id=row.platform_id,
            title=(row.working_content or {}).get("title"),
            status=describe_content(row).status,
            dirty_fields_content=list(row.dirty_fields_content or []),
            working_content_updated_at=row.working_content_updated_at,
        )
        for row in rows
    ]


@router.get("/{entity_type}/stats", response_model=Dict[str, int])
def content_stats(
    entity_type: EntityTypeParam,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    return content_repo.content_stats(db, entity_type, tenant_id)


@router.post("/{entity_type}", response_model=ContentDetail, status_code=201)
def create_content(
    entity_type: EntityTypeParam,
    body: CreateContentIn,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    cache: QueryCache = Depends(get_cache),
):
    entity = content_repo.create_entity(
        db,
        entity_type=entity_type,
        tenant_id=tenant_id,
        store_content=body.store_content,
        platform=body.platform,
        platform_id=body.platform_id,
        metadata=body.metadata,
        image_url=body.image_url,
        store_updated_at=body.store_updated_at,
    )
    for key in aggregate_cache_keys(entity_type):
        cache.invalidate(key)
    return _build_detail(entity_type, entity)



# ---------- 单个实体 ----------
@router.get("/{entity_type}/{entity_id}", response_model=ContentDetail)
def get_content(
    entity_type: EntityTypeParam,
    entity_id: str,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    cache: QueryCache = Depends(get_cache),
):
    key = _detail_cache_key(entity_type, entity_id)
    cached = cache.get(key)
    if cached is not None and cached.get("tenant_id") == tenant_id:
        return ContentDetail.model_validate(cached)

    detail = _build_detail(entity_type, _load(db, entity_type, entity_id, tenant_id))
    cache.set(key, detail.model_dump(mode="json"))
    return detail


@router.delete("/{entity_type}/{entity_id}", status_code=204)
def delete_content(
    entity_type: EntityTypeParam,
    entity_id: str,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    cache: QueryCache = Depends(get_cache),
):
    entity = _load(db, entity_type, entity_id, tenant_id)
    content_repo.delete_entity(db, entity)
    _invalidate(cache, entity_type, entity_id)
    return Response(status_code=204)


"""
    保存编辑：重新计算脏字段；auto_sync=True 时保存成功后在后台随机延迟 force 推送
    推送失败不影响本次保存的结果
"""
@router.put("/{entity_type}/{entity_id}/working", response_model=ContentDetail)
def save_working_content(
    entity_type: EntityTypeParam,
    entity_id: str,
    body: WorkingContentIn,
    background_tasks: BackgroundTasks,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    cache: QueryCache = Depends(get_cache),
    gateway: PushGateway = Depends(get_push_gateway),
    session_factory: sessionmaker = Depends(get_session_factory),
    sleep: Sleep = Depends(get_sleep),
):
    entity = _load(db, entity_type, entity_id, tenant_id)
    entity = content_repo.update_working_content(db, entity, body.working_content)
    detail = _changed(cache, entity_type, entity)

    if body.auto_sync:
        background_tasks.add_task(
            run_auto_sync_detached,
            entity_type, entity.id, tenant_id,
            session_factory=session_factory, gateway=gateway, cache=cache, sleep=sleep,
        )
        logger.info("content.save auto_sync scheduled type=%s id=%s", entity_type, entity.id)
    return detail


@router.put("/{entity_type}/{entity_id}/draft", response_model=ContentDetail)
def save_draft(
    entity_type: EntityTypeParam,
    entity_id: str,
    body: DraftIn,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    cache: QueryCache = Depends(get_cache),
):
    entity = _load(db, entity_type, entity_id, tenant_id)
    entity = content_repo.set_draft(db, entity, body.draft_generated_content)
    return _changed(cache, entity_type, entity)


@router.post("/{entity_type}/{entity_id}/draft/accept", response_model=ContentDetail)
def accept_draft(
    entity_type: EntityTypeParam,
    entity_id: str,
    body: DraftFieldIn,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    cache: QueryCache = Depends(get_cache),
):
    entity = _load(db, entity_type, entity_id, tenant_id)
    try:
        entity = content_repo.accept_draft(db, entity, body.field)
    except NoDraftError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except DraftFieldMissingError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return _changed(cache, entity_type, entity)


@router.post("/{entity_type}/{entity_id}/draft/reject", response_model=ContentDetail)
def reject_draft(
    entity_type: EntityTypeParam,
    entity_id: str,
    body: DraftFieldIn,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    cache: QueryCache = Depends(get_cache),
):
    entity = _load(db, entity_type, entity_id, tenant_id)
    try:
        entity = content_repo.reject_draft(db, entity, body.field)
    except NoDraftError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _changed(cache, entity_type, entity)


@router.post("/{entity_type}/{entity_id}/pull", response_model=ContentDetail)
def apply_store_pull(
    entity_type: EntityTypeParam,
    entity_id: str,
    body: StorePullIn,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    cache: QueryCache = Depends(get_cache),
):
    """门店内容拉取回来后写入 snapshot（同步管理器调用）。"""
    entity = _load(db, entity_type, entity_id, tenant_id)
    entity = content_repo.apply_store_pull(db, entity, body.store_content, body.store_updated_at)
    return _changed(cache, entity_type, entity)



# ---------- 冲突 ----------
@router.get("/{entity_type}/{entity_id}/conflicts", response_model=ConflictReportOut)
def get_conflicts(
    entity_type: EntityTypeParam,
    entity_id: str,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    entity = _load(db, entity_type, entity_id, tenant_id)
    report = detect_conflicts(
        entity.working_content,
        entity.store_snapshot_content,
        store_updated_at=entity.store_content_updated_at,
        local_updated_at=entity.working_content_updated_at,
        last_synced_at=entity.last_synced_at,
    )
    return ConflictReportOut(
        has_conflict=report.has_conflict,
        conflicts=[
            ConflictOut(field=c.field, store_value=c.store_value, local_value=c.local_value, last_sync_at=c.last_sync_at)
            for c in report.conflicts
        ],
        last_sync_at=report.last_sync_at,
        store_updated_at=report.store_updated_at,
        local_updated_at=report.local_updated_at,
    )


@router.post("/{entity_type}/{entity_id}/conflicts/resolve", response_model=ContentDetail)
def resolve_conflicts(
    entity_type: EntityTypeParam,
    entity_id: str,
    body: ResolveConflictsIn,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    cache: QueryCache = Depends(get_cache),
):
    entity = _load(db, entity_type, entity_id, tenant_id)
    resolutions = [ConflictResolution(r.field, r.resolution, r.merged_value) for r in body.resolutions]
    try:
        entity = content_repo.resolve_conflicts(db, entity, resolutions)
    except InvalidResolutionError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return _changed(cache, entity_type, entity)


@router.post("/{entity_type}/{entity_id}/conflicts/use-store", response_model=ContentDetail)
def force_store_content(
    entity_type: EntityTypeParam,
    entity_id: str,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    cache: QueryCache = Depends(get_cache),
):
    entity = _load(db, entity_type, entity_id, tenant_id)
    entity = content_repo.force_store_content(db, entity)
    return _changed(cache, entity_type, entity)
