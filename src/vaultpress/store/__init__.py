from .schema import CURRENT_SCHEMA_VERSION, SchemaManager
from .sqlite_database import SqliteDatabase

__all__ = ["CURRENT_SCHEMA_VERSION", "SchemaManager", "SqliteDatabase"]
