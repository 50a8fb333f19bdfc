"""
  Query cache infrastructure.
     from app.infrastructure.cache import get_query_cache
"""
from .query_cache import QueryCache, RedisQueryCache, InMemoryQueryCache, get_query_cache, render_key

__all__ = ["QueryCache", "RedisQueryCache", "InMemoryQueryCache", "get_query_cache", "render_key"]
