"""clipmind database layer."""

from clipmind.db.connection import Database
from clipmind.db.migrations import MIGRATIONS, run_migrations
from clipmind.db.repository import Repository
from clipmind.db.schema import initialize

__all__ = [
    "Database",
    "Repository",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
]
