# 聚合导入所有模型，供 Alembic 发现

from .content import (
    TripleBufferMixin,
    Product,
    Article,
    SyncHistory,
)

__all__ = [
    "TripleBufferMixin", "Product", "Article", "SyncHistory",
]
