"""
Nova Services - Shared infrastructure clients.

- llm_client: Reasoning model (Anthropic Messages API) and fast classifier
- embeddings: Query embeddings (Voyage)
- vector_index: Project-scoped similarity search (Qdrant)
- database: PostgreSQL pool manager
- redis_client: Redis connection manager with health checks and fallback
- session_cache: Per-session query history in Redis
"""

from .redis_client import RedisManager, get_redis
from .database import DatabaseManager, get_database

__all__ = ["RedisManager", "get_redis", "DatabaseManager", "get_database"]
