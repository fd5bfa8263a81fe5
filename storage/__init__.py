from .project_store import ProjectRecord, SQLiteProjectStore

__all__ = ["ProjectRecord", "SQLiteProjectStore"]
