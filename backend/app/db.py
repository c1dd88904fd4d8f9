"""Connection and cursor helpers shared by the PostgreSQL repositories."""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterable, Optional

import psycopg2
import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

try:  # pragma: no cover - resolve connection helper when imported from FastAPI app
    from backend.app_context import get_conn
except ModuleNotFoundError as exc:  # pragma: no cover
    if exc.name != "backend":
        raise
    from ..app_context import get_conn  # type: ignore[no-redef]


@contextmanager
def managed_connection(conn: Optional[PgConnection] = None):
    """Context manager that manages transaction boundaries for optional connections."""

    if conn is not None:
        yield conn, False
        return

    connection = get_conn()
    try:
        yield connection, True
        connection.commit()
    except Exception:
        connection.rollback()
        raise
    finally:
        connection.close()


class PostgresRepository:
    """Base class for repositories that run raw SQL through ``RealDictCursor``."""

    def __init__(self, *, conn: Optional[PgConnection] = None) -> None:
        self._conn = conn

    @contextmanager
    def _cursor(self) -> Iterable[PgCursor]:
        with managed_connection(self._conn) as (connection, managed):
            cursor = connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            try:
                yield cursor
                if managed:
                    connection.commit()
            except Exception:
                if managed:
                    connection.rollback()
                raise
            finally:
                cursor.close()


def build_update_clause(changes: dict, allowed: Iterable[str]) -> tuple[str, list]:
    """Translate a partial update mapping into a ``SET`` clause and parameters.

    Only keys listed in ``allowed`` are considered; the caller is expected to
    have validated values already.  Returns an empty clause when nothing is
    left to update.
    """

    allowed_set = set(allowed)
    assignments = []
    params: list = []
    for column, value in changes.items():
        if column not in allowed_set:
            continue
        assignments.append(f"{column} = %s")
        if isinstance(value, dict):
            params.append(psycopg2.extras.Json(value))
        else:
            params.append(value)
    return ", ".join(assignments), params


__all__ = ["PostgresRepository", "build_update_clause", "managed_connection"]
