# 推送到门店 / 撤销本地修改 / 同步历史

from __future__ import annotations
import logging
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from app.api.v1.deps import get_cache, get_orchestrator, get_sleep, get_tenant_id
from app.db.session import get_db
from app.infrastructure.cache.query_cache import QueryCache
from app.orchestration.push_to_store.auto_sync import AutoSync
from app.orchestration.push_to_store.push_task import (
    PushOrchestrator, PushOutcome, Sleep, aggregate_cache_keys, enqueue_push,
    entity_cache_keys, inline_tasks_enabled, summarize_push, summarize_push_error,
)
from app.repository import content_repo


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sync", tags=["sync"])


class PushIn(BaseModel):
    type: Literal["product", "article"] = "product"
    ids: List[str] = Field(default_factory=list)
    force: bool = False


class AutoSyncIn(BaseModel):
    type: Literal["product", "article"] = "product"
    id: str


class CancelIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ids: List[str] = Field(default_factory=list, alias="productIds")
    type: Literal["product", "article"] = "product"


class OutcomeOut(BaseModel):
    kind: str
    variant: str
    title: str
    description: str


class PushOut(BaseModel):
    response: Optional[Dict[str, Any]] = None
    outcome: Optional[OutcomeOut] = None
    task_id: Optional[str] = None


class CancelOut(BaseModel):
    reverted: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)
    outcome: Optional[OutcomeOut] = None


class SyncHistoryOut(BaseModel):
    id: int
    entity_type: str
    entity_id: str
    platform_id: Optional[str] = None
    outcome: str
    message: Optional[str] = None
    forced: bool = False
    created_at: Optional[datetime] = None


def _outcome(o: PushOutcome) -> OutcomeOut:
    return OutcomeOut(kind=o.kind, variant=o.variant.value, title=o.title, description=o.description)


'''
批量推送：
    SYNC_TASKS_INLINE=True  -> 当前请求内执行（含重试），直接返回计数 + 提示
    SYNC_TASKS_INLINE=False -> 投递 Celery sync 队列，返回 202 + task_id
重试用尽后返回 502 + 错误提示（不做缓存失效）
只推送当前租户的实体；数据库认领 / 写回在线程池里跑，不占事件循环
'''
@router.post("/push", response_model=PushOut)
async def push_to_store(
    body: PushIn,
    tenant_id: str = Depends(get_tenant_id),
    orchestrator: PushOrchestrator = Depends(get_orchestrator),
):
    if not inline_tasks_enabled():
        task_id = enqueue_push(body.type, body.ids, force=body.force, tenant_id=tenant_id)
        logger.info("sync.push queued type=%s ids=%d task_id=%s", body.type, len(body.ids), task_id)
        return JSONResponse(status_code=202, content=PushOut(task_id=task_id).model_dump())

    try:
        response = await orchestrator.push_to_store(body.type, body.ids, force=body.force)
    except Exception as exc:
        logger.exception("sync.push failed type=%s ids=%d", body.type, len(body.ids))
        out = PushOut(outcome=_outcome(summarize_push_error(exc)))
        return JSONResponse(status_code=502, content=out.model_dump())

    return PushOut(response=response.to_dict(), outcome=_outcome(summarize_push(response)))


@router.post("/auto", response_model=PushOut)
async def auto_sync(
    body: AutoSyncIn,
    orchestrator: PushOrchestrator = Depends(get_orchestrator),
    sleep: Sleep = Depends(get_sleep),
):
    """保存后的自动推送（随机延迟 + force）。失败只记日志，返回空结果。"""
    response = await AutoSync(orchestrator, sleep=sleep).trigger_auto_sync(body.id, body.type)
    if response is None:
        return PushOut()
    return PushOut(response=response.to_dict(), outcome=_outcome(summarize_push(response)))


@router.post("/cancel", response_model=CancelOut)
def cancel_sync(
    body: CancelIn,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
    cache: QueryCache = Depends(get_cache),
):
    result = content_repo.cancel_sync(db, body.type, body.ids, tenant_id)

    for entity_id in result.reverted:
        for key in entity_cache_keys(body.type, entity_id):
            cache.invalidate(key)
    for key in aggregate_cache_keys(body.type):
        cache.invalidate(key)

    outcome = None
    if not result.ok:
        outcome = OutcomeOut(
            kind="error", variant="error", title="Undo failed",
            description="Some changes could not be reverted. Please try again.",
        )
    logger.info("sync.cancel type=%s reverted=%s failed=%s", body.type, len(result.reverted), len(result.failed))
    return CancelOut(reverted=result.reverted, failed=result.failed, outcome=outcome)


@router.get("/history", response_model=List[SyncHistoryOut])
def sync_history(
    limit: int = Query(50, ge=1, le=500),
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    rows = content_repo.list_sync_history(db, tenant_id, limit=limit)
    return [
        SyncHistoryOut(
            id=r.id, entity_type=r.entity_type, entity_id=r.entity_id, platform_id=r.platform_id,
            outcome=r.outcome, message=r.message, forced=bool(r.forced), created_at=r.created_at,
        )
        for r in rows
    ]
