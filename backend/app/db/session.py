# Engine/Session 工厂 + FastAPI 依赖

from __future__ import annotations
from contextlib import contextmanager
from typing import Any, Dict, Generator, Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from app.core.config import settings


def _engine_kwargs(url: str) -> Dict[str, Any]:
    # sqlite（本地调试 / 测试）不支持连接池参数
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {
        "pool_size": settings.DATABASE_POOL_SIZE,         # 常驻连接
        "max_overflow": settings.DATABASE_MAX_OVERFLOW,   # 高峰期额外连接
        "pool_pre_ping": True,                            # 连接失效探测
        "pool_recycle": 1800,                             # 秒；半小时回收一次
    }


def build_engine(url: str) -> Engine:
    return create_engine(url, echo=False, future=True, **_engine_kwargs(url))


def build_session_factory(bind: Engine) -> sessionmaker[Session]:
    # autocommit=False, autoflush=False 更易控事务与 flush 时机
    return sessionmaker(
        bind=bind,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,  # 提交后对象仍可用（减少再次查询）
        class_=Session,
        future=True,
    )


# ---- Engine / Session Factory ----
engine = build_engine(settings.DATABASE_URL)
SessionLocal: sessionmaker[Session] = build_session_factory(engine)



'''
FastAPI 依赖：为每个请求提供独立会话
用法：
from app.db.session import get_db
def endpoint(db: Session = Depends(get_db)): ...
'''
def get_db() -> Generator[Session, None, None]:
    db: Session = SessionLocal()
    try:
        yield db    # repository 里显式 commit；此处不做隐式提交
    finally:
        db.close()  # 归还连接到连接池



# ---- Celery 任务里的上下文管理器（非 FastAPI 场景）----
@contextmanager
def session_scope() -> Iterator[Session]:
    db: Session = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


"""
    释放连接池中的所有连接；在 FastAPI 的 shutdown 钩子中调用。
"""
def dispose_engine() -> None:
    engine.dispose()
