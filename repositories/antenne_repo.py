"""
repositories/antenne_repo.py
-----------------------------
Data access layer for antennes.
All SQL queries related to the `antennes` table live here.
"""

from datetime import datetime
from typing import Any, Mapping, Optional

from db.connection import db_cursor
from exceptions import ValidationError
from models.antenne import (
    ANTENNE_COLUMNS,
    ETAT_ACTIF,
    Antenne,
    AntenneFilters,
    AntenneStats,
    Pagination,
)
from repositories.query_builder import (
    bind,
    compile_filter,
    compile_update,
    contains,
    placeholder,
)
from utils.logger import get_logger

logger = get_logger(__name__)

_SELECT_COLUMNS = ", ".join(ANTENNE_COLUMNS)

REQUIRED_FIELDS: tuple[str, ...] = ("prenom", "civilite")

# Columns written by create(), in INSERT order. id is assigned by the store.
_INSERT_COLUMNS: tuple[str, ...] = tuple(c for c in ANTENNE_COLUMNS if c != "id")

_BOOLEAN_DEFAULTS: dict[str, bool] = {
    "antenne_principale": False,
    "not_share_phone_number": False,
}


class AntenneRepository:
    """Repository for CRUD operations on the antennes table."""

    # ── READ ──────────────────────────────────────────────

    def find_all(
        self,
        filters: Optional[AntenneFilters] = None,
        pagination: Optional[Pagination] = None,
    ) -> tuple[list[Antenne], int]:
        """
        List non-deleted antennes matching the filters, most recently updated first.

        Args:
            filters: Optional criteria, AND-combined.
            pagination: Page and page size (defaults: 1 and 20).

        Returns:
            (antennes of the requested page, total number of matches).

        Raises:
            StoreError: If a query fails.
        """
        pagination = pagination or Pagination()
        predicate, values = compile_filter(filters)

        count_sql = f"SELECT COUNT(*) FROM antennes WHERE {predicate};"

        limit_position = len(values) + 1
        data_sql = (
            f"SELECT {_SELECT_COLUMNS} FROM antennes WHERE {predicate} "
            f"ORDER BY updated_at DESC "
            f"LIMIT {placeholder(limit_position)} OFFSET {placeholder(limit_position + 1)};"
        )
        data_values = [*values, pagination.limit, pagination.offset]

        with db_cursor("find_all") as cur:
            cur.execute(count_sql, bind(values))
            total = int(cur.fetchone()[0])
            cur.execute(data_sql, bind(data_values))
            antennes = [Antenne.from_row(r) for r in cur.fetchall()]
        return antennes, total

    def find_by_id(self, antenne_id: int) -> Optional[Antenne]:
        """
        Fetch a single non-deleted antenne.

        Returns:
            An Antenne object or None if not found.
        """
        sql = (
            f"SELECT {_SELECT_COLUMNS} FROM antennes "
            f"WHERE id = {placeholder(1)} AND deleted = false;"
        )
        with db_cursor("find_by_id") as cur:
            cur.execute(sql, bind([antenne_id]))
            row = cur.fetchone()
        return Antenne.from_row(row) if row else None

    def find_by_ville(self, ville: str) -> list[Antenne]:
        """
        Fetch every non-deleted antenne whose city contains ``ville`` (case-insensitive).
        Not paginated.
        """
        sql = (
            f"SELECT {_SELECT_COLUMNS} FROM antennes "
            f"WHERE ville ILIKE {placeholder(1)} AND deleted = false;"
        )
        with db_cursor("find_by_ville") as cur:
            cur.execute(sql, bind([contains(ville)]))
            return [Antenne.from_row(r) for r in cur.fetchall()]

    def get_stats(self) -> AntenneStats:
        """Count total, active, inactive and principal antennes in one pass."""
        sql = """
            SELECT
                COUNT(*),
                COUNT(*) FILTER (WHERE etat = 'actif'),
                COUNT(*) FILTER (WHERE etat = 'inactif'),
                COUNT(*) FILTER (WHERE antenne_principale = true)
            FROM antennes
            WHERE deleted = false;
        """
        with db_cursor("get_stats") as cur:
            cur.execute(sql)
            row = cur.fetchone()
        return AntenneStats(
            total=int(row[0]),
            actifs=int(row[1]),
            inactifs=int(row[2]),
            principales=int(row[3]),
        )

    # ── CREATE ────────────────────────────────────────────

    def create(self, payload: Mapping[str, Any]) -> Antenne:
        """
        Insert a new antenne.

        Args:
            payload: Field name -> value. `prenom` and `civilite` are required;
                other fields are optional and empty values are stored as NULL.

        Returns:
            The stored Antenne, including its id and timestamps.

        Raises:
            ValidationError: If a required field is missing or empty.
            StoreError: If the insert fails.
        """
        missing = [f for f in REQUIRED_FIELDS if not payload.get(f)]
        if missing:
            raise ValidationError(missing)

        now = datetime.now()
        row_values = []
        for column in _INSERT_COLUMNS:
            if column == "etat":
                value = payload.get("etat") or ETAT_ACTIF
            elif column in _BOOLEAN_DEFAULTS:
                value = payload.get(column)
                if value is None:
                    value = _BOOLEAN_DEFAULTS[column]
            elif column == "deleted":
                value = False
            elif column in ("created_at", "updated_at"):
                value = now
            else:
                value = payload.get(column) or None
            row_values.append(value)

        placeholders = ", ".join(placeholder(i) for i in range(1, len(row_values) + 1))
        sql = (
            f"INSERT INTO antennes ({', '.join(_INSERT_COLUMNS)}) "
            f"VALUES ({placeholders}) RETURNING {_SELECT_COLUMNS};"
        )
        with db_cursor("create", commit=True) as cur:
            cur.execute(sql, bind(row_values))
            antenne = Antenne.from_row(cur.fetchone())
        logger.info(f"Created antenne {antenne}")
        return antenne

    # ── UPDATE ────────────────────────────────────────────

    def update(self, antenne_id: int, partial: Mapping[str, Any]) -> Optional[Antenne]:
        """
        Apply a partial update to an existing antenne.

        Only the allow-listed fields present in ``partial`` are written. When
        none is present the current antenne is returned as is and updated_at
        is left untouched.

        The existence check and the write are not atomic; an antenne deleted
        in between is reported as not found.

        Returns:
            The updated Antenne, or None if not found.
        """
        current = self.find_by_id(antenne_id)
        if current is None:
            return None

        assignments, values = compile_update(partial)
        if not assignments:
            return current

        id_position = len(values) + 1
        sql = (
            f"UPDATE antennes SET {assignments} "
            f"WHERE id = {placeholder(id_position)} AND deleted = false "
            f"RETURNING {_SELECT_COLUMNS};"
        )
        with db_cursor("update", commit=True) as cur:
            cur.execute(sql, bind([*values, antenne_id]))
            row = cur.fetchone()
        if row is None:
            return None
        antenne = Antenne.from_row(row)
        logger.info(f"Updated antenne {antenne}")
        return antenne

    # ── DELETE ────────────────────────────────────────────

    def soft_delete(self, antenne_id: int) -> bool:
        """
        Mark an antenne as deleted. The row is kept in the table.

        Returns:
            True if a row was marked, False if not found.
        """
        sql = (
            f"UPDATE antennes SET deleted = true, updated_at = {placeholder(1)} "
            f"WHERE id = {placeholder(2)} AND deleted = false;"
        )
        with db_cursor("soft_delete", commit=True) as cur:
            cur.execute(sql, bind([datetime.now(), antenne_id]))
            deleted = cur.rowcount > 0
        if deleted:
            logger.info(f"Soft-deleted antenne #{antenne_id}")
        return deleted
