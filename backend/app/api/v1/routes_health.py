# 健康检查（含DB探活）

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.db.session import get_db

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/health/db")
def health_db(db: Session = Depends(get_db)):
    # 轻量 DB ping（不依赖迁移）
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error("health.db failed err=%s", e)
        return {"status": "degraded", "db": "unreachable"}
    return {"status": "ok", "db": "ok"}
