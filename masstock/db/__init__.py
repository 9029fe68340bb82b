from .database import Database, async_database_url

__all__ = ["Database", "async_database_url"]
