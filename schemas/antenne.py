"""
schemas/antenne.py
------------------
Request bodies accepted by the antennes API.

Unknown keys are ignored rather than rejected. prenom/civilite are optional
here because the repository owns that validation (400, not 422). etat and the
two flags may be omitted but never sent as null.
"""

from datetime import date
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, field_validator

Etat = Literal["actif", "inactif"]


class AntenneFields(BaseModel):
    """All writable antenne fields, every one optional."""
    model_config = ConfigDict(extra="ignore")

    nom: Optional[str] = None
    prenom: Optional[str] = None
    civilite: Optional[str] = None
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
    etat: Optional[Etat] = None
    type_profil_id: Optional[int] = None
    antenne_principale: Optional[bool] = None
    bon_savoir: Optional[str] = None
    information_facturation: Optional[str] = None
    iban: Optional[str] = None
    bic: Optional[str] = None
    precisions_lieu: Optional[str] = None
    preferences_horaires_pickup_retrait: Optional[str] = None
    preferences_horaires_pickup_retour: Optional[str] = None
    not_share_phone_number: Optional[bool] = None

    @field_validator("etat", "antenne_principale", "not_share_phone_number")
    @classmethod
    def not_null(cls, value):
        # Omitted is fine, explicit null is not.
        if value is None:
            raise ValueError("ne peut pas être null")
        return value


class AntenneCreate(AntenneFields):
    def to_payload(self) -> dict[str, Any]:
        return self.model_dump()


class AntenneUpdate(AntenneFields):
    def to_payload(self) -> dict[str, Any]:
        """Only the fields the client actually sent (explicit nulls included)."""
        return self.model_dump(exclude_unset=True)
