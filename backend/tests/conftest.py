# 公共 fixture：sqlite 内存库、进程内缓存、假推送网关、记录型 sleep

import os

# 在导入 app 之前固定配置：不连 Postgres / Redis，推送在进程内执行
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("SYNC_TASKS_INLINE", "true")
os.environ.pop("REDIS_URL", None)

from typing import Any, Dict, Iterator, List

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from app.db import create_all
from app.db.session import build_session_factory
from app.infrastructure.cache.query_cache import InMemoryQueryCache



class FakeGateway:
    """
    按顺序返回预设结果：dict 直接返回，Exception 实例抛出。
    最后一个结果会被重复使用。
    """

    def __init__(self, *outcomes: Any) -> None:
        self.outcomes: List[Any] = list(outcomes)
        self.calls: List[Dict[str, Any]] = []

    async def invoke(self, payload: Dict[str, Any]) -> Any:
        self.calls.append(payload)
        idx = min(len(self.calls), len(self.outcomes)) - 1
        outcome = self.outcomes[idx]
        if isinstance(outcome, BaseException):
            raise outcome
        if callable(outcome):
            return outcome(payload)
        return outcome


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def push_ok(payload: Dict[str, Any]) -> Dict[str, Any]:
    """网关成功响应：请求里的每个 id 都推送成功。"""
    results = [{"id": i, "platformId": f"wc-{i}", "success": True} for i in payload["ids"]]
    return {
        "success": True, "type": payload["type"], "total": len(results),
        "successful": len(results), "skipped": 0, "failed": 0, "results": results,
    }


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_all(bind=eng)
    try:
        yield eng
    finally:
        eng.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def db(session_factory) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def cache() -> InMemoryQueryCache:
    return InMemoryQueryCache()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def store_product() -> Dict[str, Any]:
    return {
        "title": "Oak Desk",
        "sku": "DESK-001",
        "slug": "oak-desk",
        "price": "199.00",
        "regular_price": "199.00",
        "stock": 5,
        "description": "<p>Solid oak desk</p>",
        "short_description": "<p>Oak</p>",
        "seo": {"title": "Oak Desk | Shop", "description": "Buy an oak desk"},
        "tags": ["office", "wood"],
        "categories": [{"id": 3, "name": "Desks"}],
        "images": [{"id": 11, "src": "https://cdn.test/desk.jpg", "alt": "Desk"}],
    }


# 测试模块不直接 import conftest，通过 fixture 拿到假对象
@pytest.fixture
def make_gateway():
    return FakeGateway


@pytest.fixture
def ok_response():
    return push_ok
