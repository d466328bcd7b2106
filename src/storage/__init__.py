"""Storage package exposing the database facade and its adapters."""
from .database import (
    AutomationDatabase,
    DatabaseAdapter,
    InMemoryAdapter,
    SqlAlchemyAdapter,
    create_adapter,
    expand_in,
)
from .schema import TABLES, schema_statements

__all__ = [
    "AutomationDatabase",
    "DatabaseAdapter",
    "InMemoryAdapter",
    "SqlAlchemyAdapter",
    "TABLES",
    "create_adapter",
    "expand_in",
    "schema_statements",
]
