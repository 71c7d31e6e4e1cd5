"""Database infrastructure: records, sessions and the collection manager.

Core components:
- **base**: Declarative base and common record fields
- **identity**: ``Identifiable`` protocol and identity accessors
- **preload**: Preload name merging and relationship loader options
- **filters**: Sparse (non-zero) field extraction
- **repository**: Generic ``CollectionManager`` with CRUD, count and upsert
- **session**: Async engine and session factory management
- **dependencies**: FastAPI dependency injection helpers
"""

from src.infrastructure.database.base import Base, BaseModel
from src.infrastructure.database.identity import (
    NIL_IDENTITY,
    Identifiable,
    get_identity,
    is_nil,
    set_identity,
)
from src.infrastructure.database.preload import merge_preloads, preload_options
from src.infrastructure.database.repository import CollectionManager
from src.infrastructure.database.session import (
    close_database,
    create_database_engine,
    create_session_factory,
    get_async_session,
    get_engine,
    get_session_factory,
)

__all__ = [
    "NIL_IDENTITY",
    "Base",
    "BaseModel",
    "CollectionManager",
    "Identifiable",
    "close_database",
    "create_database_engine",
    "create_session_factory",
    "get_async_session",
    "get_engine",
    "get_identity",
    "get_session_factory",
    "is_nil",
    "merge_preloads",
    "preload_options",
    "set_identity",
]
