"""Base repository pattern for database operations.

Provides the common CRUD operations; subclasses only describe how a row
maps to an entity. Driver errors surface as RepositoryError.
"""
import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Dict, Generic, List, Optional, Sequence, TypeVar

import psycopg2

from .connection import ConnectionManager

logger = logging.getLogger(__name__)

T = TypeVar('T')


class RepositoryError(Exception):
    """Database unreachable or a statement failed."""
    pass


class BaseRepository(ABC, Generic[T]):
    """Abstract base repository with common operations.

    Subclasses implement entity-specific row conversion while inheriting
    connection handling, upsert and logging patterns.
    """

    # Column used by find_all() ordering; newest first
    order_column = "updated_at"

    def __init__(
        self,
        connection_manager: ConnectionManager,
        table_name: str,
    ):
        self.connection_manager = connection_manager
        self.table_name = table_name

        logger.info(
            "REPOSITORY_INITIALIZED",
            extra={"table_name": table_name}
        )

    @abstractmethod
    def _row_to_entity(self, row: tuple) -> T:
        """Convert database row to entity."""
        pass

    @abstractmethod
    def _entity_to_params(self, entity: T) -> Dict[str, Any]:
        """Convert entity to column name -> value mapping."""
        pass

    @contextmanager
    def _cursor(self, commit: bool = False):
        try:
            with self.connection_manager.get_connection() as conn:
                with conn.cursor() as cur:
                    yield cur
                if commit:
                    conn.commit()
        except psycopg2.Error as e:
            logger.error(
                "REPOSITORY_QUERY_FAILED",
                extra={"table_name": self.table_name, "error": str(e)}
            )
            raise RepositoryError(f"{self.table_name}: {e}") from e

    def _fetch_one(self, query: str, params: Sequence[Any]) -> Optional[T]:
        with self._cursor() as cur:
            cur.execute(query, params)
            row = cur.fetchone()

        if row is None:
            return None
        return self._row_to_entity(row)

    def _fetch_all(self, query: str, params: Sequence[Any]) -> List[T]:
        with self._cursor() as cur:
            cur.execute(query, params)
            rows = cur.fetchall()

        return [self._row_to_entity(row) for row in rows]

    def find_by_id(self, entity_id: str) -> Optional[T]:
        """Find entity by ID, or None."""
        return self._fetch_one(
            f"SELECT * FROM {self.table_name} WHERE id = %s",
            (entity_id,),
        )

    def find_all(self) -> List[T]:
        """Return every entity, newest first."""
        return self._fetch_all(
            f"SELECT * FROM {self.table_name} ORDER BY {self.order_column} DESC",
            (),
        )

    def save(self, entity: T) -> T:
        """Insert or update an entity keyed on id (last write wins)."""
        params = self._entity_to_params(entity)
        columns = list(params.keys())
        values = list(params.values())
        placeholders = ["%s"] * len(values)

        update_clause = ", ".join(f"{col} = EXCLUDED.{col}" for col in columns if col != "id")

        query = f"""
            INSERT INTO {self.table_name} ({", ".join(columns)})
            VALUES ({", ".join(placeholders)})
            ON CONFLICT (id) DO UPDATE SET {update_clause}
        """

        with self._cursor(commit=True) as cur:
            cur.execute(query, values)

        return entity

    def count(self) -> int:
        """Count total entities."""
        with self._cursor() as cur:
            cur.execute(f"SELECT COUNT(*) FROM {self.table_name}")
            row = cur.fetchone()

        return row[0] if row else 0
