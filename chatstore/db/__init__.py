from .session import Database, get_sqlite_url  # noqa: F401
