from __future__ import annotations
import uuid
from typing import Optional, List, Dict, Any
from datetime import datetime

from sqlalchemy import DateTime, String, Integer, Text, Index, JSON, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from app.db.base import Base


# PostgreSQL 上用 JSONB，其它方言（测试用 sqlite）退回通用 JSON
JsonColumn = JSON().with_variant(JSONB(), "postgresql")


def _uuid_str() -> str:
    return str(uuid.uuid4())


"""
  三缓冲内容的公共列：
    store_snapshot_content  最后一次确认与门店一致的内容（仅 pull / push 成功时改写）
    working_content         本地编辑状态
    draft_generated_content AI 提案，可为空
    dirty_fields_content    派生缓存 = compute_dirty_fields_content(working, snapshot)
"""
class TripleBufferMixin:

    id:        Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid_str)
    tenant_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)

    platform:    Mapped[str]           = mapped_column(String(32), nullable=False, default="woocommerce")   # woocommerce / shopify / wordpress
    platform_id: Mapped[Optional[str]] = mapped_column(String(255))                                       # 门店侧 id

    store_snapshot_content:  Mapped[Dict[str, Any]]           = mapped_column(JsonColumn, nullable=False, default=dict)
    working_content:         Mapped[Dict[str, Any]]           = mapped_column(JsonColumn, nullable=False, default=dict)
    draft_generated_content: Mapped[Optional[Dict[str, Any]]] = mapped_column(JsonColumn, nullable=True)
    dirty_fields_content:    Mapped[List[str]]                = mapped_column(JsonColumn, nullable=False, default=list)

    metadata_json: Mapped[Dict[str, Any]] = mapped_column("metadata", JsonColumn, nullable=False, default=dict)  # 门店原始元数据
    image_url:     Mapped[Optional[str]]  = mapped_column(Text)

    content_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)   # working 每次改写 +1

    store_content_updated_at:   Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False))
    working_content_updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False))
    last_synced_at:             Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=False))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class Product(TripleBufferMixin, Base):
    __tablename__ = "products"
    __table_args__ = (
        Index("ix_products_tenant_platform_id", "tenant_id", "platform_id"),
    )


class Article(TripleBufferMixin, Base):
    __tablename__ = "articles"
    __table_args__ = (
        Index("ix_articles_tenant_platform_id", "tenant_id", "platform_id"),
    )


"""
  推送历史：每次推送每个实体一条（success / skipped / failed）
"""
class SyncHistory(Base):
    __tablename__ = "sync_history"

    id:          Mapped[int]           = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id:   Mapped[Optional[str]] = mapped_column(String(64), index=True)
    entity_type: Mapped[str]           = mapped_column(String(16), nullable=False)    # product / article
    entity_id:   Mapped[str]           = mapped_column(String(36), index=True, nullable=False)
    platform_id: Mapped[Optional[str]] = mapped_column(String(255))
    outcome:     Mapped[str]           = mapped_column(String(16), nullable=False)    # success / skipped / failed
    message:     Mapped[Optional[str]] = mapped_column(Text)                          # error 或 skip reason
    forced:      Mapped[bool]          = mapped_column(default=False, nullable=False)
    created_at:  Mapped[datetime]      = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
