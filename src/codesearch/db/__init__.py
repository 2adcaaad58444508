"""codesearch storage layer: metadata tables and vector tables in one SQLite file."""

from codesearch.db.connection import Database
from codesearch.db.migrations import MIGRATIONS, run_migrations
from codesearch.db.repository import Repository
from codesearch.db.schema import initialize
from codesearch.db.vectors import SqliteVecIndex, ensure_vec_table, model_to_slug, vec_table_name

__all__ = [
    "Database",
    "Repository",
    "SqliteVecIndex",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
    "ensure_vec_table",
    "model_to_slug",
    "vec_table_name",
]
