# 路由公共依赖：租户、DB、缓存、推送网关（测试里通过 dependency_overrides 替换）

from __future__ import annotations
import asyncio
from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import settings
from app.db.session import SessionLocal, get_db
from app.infrastructure.cache.query_cache import QueryCache, get_query_cache
from app.integrations.push_gateway.http_client import PushGatewayHttpClient
from app.orchestration.push_to_store.push_task import DbResultSink, PushGateway, PushOrchestrator, Sleep


'''
租户隔离：所有内容接口都要求租户头（默认 X-Tenant-Id，可用 TENANT_HEADER 改名）
鉴权在网关层完成，这里只取租户 id
'''
def get_tenant_id(x_tenant_id: Optional[str] = Header(None, alias=settings.TENANT_HEADER)) -> str:
    if not x_tenant_id or not x_tenant_id.strip():
        raise HTTPException(status_code=400, detail=f"missing {settings.TENANT_HEADER} header")
    return x_tenant_id.strip()


def get_cache() -> QueryCache:
    return get_query_cache()


_gateway: Optional[PushGatewayHttpClient] = None


def get_push_gateway() -> PushGateway:
    global _gateway
    if _gateway is None:
        _gateway = PushGatewayHttpClient()
    return _gateway


def get_sleep() -> Sleep:
    return asyncio.sleep


def get_session_factory() -> sessionmaker[Session]:
    """后台任务（auto-sync）在响应返回后运行，需要自己开会话。"""
    return SessionLocal


def get_orchestrator(
    db: Session = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    gateway: PushGateway = Depends(get_push_gateway),
    cache: QueryCache = Depends(get_cache),
    sleep: Sleep = Depends(get_sleep),
) -> PushOrchestrator:
    return PushOrchestrator(gateway, cache, result_sink=DbResultSink(db, tenant_id), sleep=sleep)
