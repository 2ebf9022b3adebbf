"""
repositories/query_builder.py
------------------------------
Builds the parameterized SQL fragments used by AntenneRepository.

Placeholders are positional and named after their position (``%(p1)s``,
``%(p2)s``, ...) so that one bound value can be referenced several times
while occupying a single position. Values always travel in a parallel list;
caller-controlled data never ends up in the SQL text.
"""

from datetime import datetime
from typing import Any, Mapping, Optional

from models.antenne import AntenneFilters

# Fields accepted by a partial update, in the order assignments are emitted.
UPDATABLE_COLUMNS: tuple[tuple[str, str], ...] = (
    ("nom", "nom"),
    ("prenom", "prenom"),
    ("civilite", "civilite"),
    ("date_naissance", "date_naissance"),
    ("tel_portable", "tel_portable"),
    ("tel_fixe", "tel_fixe"),
    ("email", "email"),
    ("situation_professionnelle", "situation_professionnelle"),
    ("adresse", "adresse"),
    ("adresse_complementaire", "adresse_complementaire"),
    ("cp", "cp"),
    ("ville", "ville"),
    ("pays", "pays"),
    ("pays_id", "pays_id"),
    ("type_statut_id", "type_statut_id"),
    ("raison_sociale", "raison_sociale"),
    ("siret", "siret"),
    ("etat", "etat"),
    ("type_profil_id", "type_profil_id"),
    ("antenne_principale", "antenne_principale"),
    ("bon_savoir", "bon_savoir"),
    ("information_facturation", "information_facturation"),
    ("iban", "iban"),
    ("bic", "bic"),
    ("precisions_lieu", "precisions_lieu"),
    ("preferences_horaires_pickup_retrait", "preferences_horaires_pickup_retrait"),
    ("preferences_horaires_pickup_retour", "preferences_horaires_pickup_retour"),
    ("not_share_phone_number", "not_share_phone_number"),
)

# Columns searched by the free-text `key` filter.
KEY_SEARCH_COLUMNS: tuple[str, ...] = ("nom", "prenom", "email", "raison_sociale", "ville")

BASE_PREDICATE = "deleted = false"


def placeholder(position: int) -> str:
    """Return the placeholder for a 1-based parameter position."""
    return f"%(p{position})s"


def bind(values: list[Any]) -> dict[str, Any]:
    """Turn an ordered value list into the mapping psycopg2 expects."""
    return {f"p{position}": value for position, value in enumerate(values, start=1)}


def contains(text: str) -> str:
    """Wrap a value for a substring ILIKE match."""
    return f"%{text}%"


def compile_filter(filters: Optional[AntenneFilters]) -> tuple[str, list[Any]]:
    """
    Build the WHERE predicate for a listing.

    Clauses are appended in a fixed order (key, etat, ville, type_profil_id,
    antenne_principale, has_iban) and values are pushed in the same order,
    so value N always matches placeholder N.

    Args:
        filters: Optional criteria; None means no filtering.

    Returns:
        (predicate, values): predicate without the WHERE keyword, and the
        ordered bound values it references.
    """
    filters = filters or AntenneFilters()
    clauses = [BASE_PREDICATE]
    values: list[Any] = []

    def next_position() -> int:
        return len(values) + 1

    if filters.key:
        p = placeholder(next_position())
        group = " OR ".join(f"{column} ILIKE {p}" for column in KEY_SEARCH_COLUMNS)
        clauses.append(f"({group})")
        values.append(contains(filters.key))

    if filters.etat:
        clauses.append(f"etat = {placeholder(next_position())}")
        values.append(filters.etat)

    if filters.ville:
        clauses.append(f"ville ILIKE {placeholder(next_position())}")
        values.append(contains(filters.ville))

    if filters.type_profil_id:
        clauses.append(f"type_profil_id = {placeholder(next_position())}")
        values.append(filters.type_profil_id)

    if filters.antenne_principale is not None:
        clauses.append(f"antenne_principale = {placeholder(next_position())}")
        values.append(filters.antenne_principale)

    if filters.has_iban:
        clauses.append("iban IS NOT NULL AND iban != ''")

    return " AND ".join(clauses), values


def compile_update(
    partial: Mapping[str, Any],
    start: int = 1,
    now: Optional[datetime] = None,
) -> tuple[str, list[Any]]:
    """
    Build the SET assignment list for a partial update.

    Only fields present in ``partial`` and listed in UPDATABLE_COLUMNS are
    emitted (a present None sets the column to NULL); unknown keys are
    ignored. When anything is assigned, ``updated_at`` is refreshed as the
    last assignment.

    Args:
        partial: Field name -> new value.
        start: Position of the first placeholder.
        now: Timestamp for updated_at (defaults to the current time).

    Returns:
        (assignments, values): an empty string and no values when nothing
        in ``partial`` is updatable.
    """
    assignments: list[str] = []
    values: list[Any] = []

    for field_name, column in UPDATABLE_COLUMNS:
        if field_name in partial:
            assignments.append(f"{column} = {placeholder(start + len(values))}")
            values.append(partial[field_name])

    if not assignments:
        return "", []

    assignments.append(f"updated_at = {placeholder(start + len(values))}")
    values.append(now or datetime.now())
    return ", ".join(assignments), values
