"""
models/antenne.py
-----------------
Domain model for antennes (contact/branch records) and the value objects
used to query them.
"""

import math
from dataclasses import asdict, dataclass
from datetime import date, datetime
from typing import Any, Optional

ETAT_ACTIF = "actif"
ETAT_INACTIF = "inactif"
ETATS = (ETAT_ACTIF, ETAT_INACTIF)

# Column order of the `antennes` table. Every SELECT lists these explicitly
# so rows can be mapped by position.
ANTENNE_COLUMNS: tuple[str, ...] = (
    "id",
    "nom",
    "prenom",
    "civilite",
    "date_naissance",
    "tel_portable",
    "tel_fixe",
    "email",
    "situation_professionnelle",
    "adresse",
    "adresse_complementaire",
    "cp",
    "ville",
    "pays",
    "pays_id",
    "type_statut_id",
    "raison_sociale",
    "siret",
    "etat",
    "type_profil_id",
    "antenne_principale",
    "bon_savoir",
    "information_facturation",
    "iban",
    "bic",
    "precisions_lieu",
    "preferences_horaires_pickup_retrait",
    "preferences_horaires_pickup_retour",
    "not_share_phone_number",
    "deleted",
    "created_at",
    "updated_at",
)


@dataclass
class Antenne:
    """
    Represents a single antenne as stored in the `antennes` table.

    Attributes:
        id: Database primary key (None for new records).
        prenom: First name (required).
        civilite: Title/salutation (required).
        etat: Either 'actif' or 'inactif'.
        antenne_principale: Whether this is a principal branch.
        not_share_phone_number: Privacy flag for phone-number sharing.
        deleted: Soft-delete flag; deleted antennes are never returned by reads.
        created_at: Set once at creation.
        updated_at: Refreshed on every mutation, soft delete included.
    """
    prenom: str
    civilite: str
    id: Optional[int] = None
    nom: Optional[str] = None
    date_naissance: Optional[date] = None
    tel_portable: Optional[str] = None
    tel_fixe: Optional[str] = None
    email: Optional[str] = None
    situation_professionnelle: Optional[str] = None
    adresse: Optional[str] = None
    adresse_complementaire: Optional[str] = None
    cp: Optional[str] = None
    ville: Optional[str] = None
    pays: Optional[str] = None
    pays_id: Optional[int] = None
    type_statut_id: Optional[int] = None
    raison_sociale: Optional[str] = None
    siret: Optional[str] = None
    etat: str = ETAT_ACTIF
    type_profil_id: Optional[int] = None
    antenne_principale: bool = False
    bon_savoir: Optional[str] = None
    information_facturation: Optional[str] = None
    iban: Optional[str] = None
    bic: Optional[str] = None
    precisions_lieu: Optional[str] = None
    preferences_horaires_pickup_retrait: Optional[str] = None
    preferences_horaires_pickup_retour: Optional[str] = None
    not_share_phone_number: bool = False
    deleted: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def is_active(self) -> bool:
        """Returns True if this antenne is 'actif'."""
        return self.etat == ETAT_ACTIF

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_row(cls, row: tuple) -> "Antenne":
        """Build an Antenne from a row selected with ANTENNE_COLUMNS."""
        return cls(**dict(zip(ANTENNE_COLUMNS, row)))

    def __str__(self) -> str:
        name = " ".join(part for part in (self.civilite, self.prenom, self.nom) if part)
        return f"#{self.id} {name} ({self.etat})"


@dataclass
class AntenneFilters:
    """
    Optional criteria for listing antennes. Unset (None/False) criteria are ignored.

    Attributes:
        key: Free text matched against nom, prenom, email, raison_sociale and ville.
        etat: Exact state.
        ville: City substring (case-insensitive).
        type_profil_id: Exact profile-type id.
        antenne_principale: Exact principal-branch flag.
        has_iban: Only antennes with a non-empty IBAN.
    """
    key: Optional[str] = None
    etat: Optional[str] = None
    ville: Optional[str] = None
    type_profil_id: Optional[int] = None
    antenne_principale: Optional[bool] = None
    has_iban: bool = False


@dataclass
class Pagination:
    """1-indexed page number and page size."""
    page: int = 1
    limit: int = 20

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def total_pages(self, total: int) -> int:
        return math.ceil(total / self.limit)


@dataclass
class AntenneStats:
    """Counts over non-deleted antennes."""
    total: int = 0
    actifs: int = 0
    inactifs: int = 0
    principales: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)
