"""
services/antenne_service.py
----------------------------
Business logic for antennes.
Orchestrates between the AntenneRepository and the EventPublisher: reads are
delegated, mutations are written first and announced afterwards.
"""

from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from models.antenne import Antenne, AntenneFilters, AntenneStats, Pagination
from repositories.antenne_repo import AntenneRepository
from services.event_publisher import EventPublisher, RoutingKey
from utils.logger import get_logger

logger = get_logger(__name__)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class AntenneService:
    """
    Handles the antenne use cases exposed over HTTP.

    Workflow for mutations:
        1. Write through the repository (errors propagate to the caller).
        2. Publish the matching event. A publication failure is logged by
           the publisher and never fails the request.
    """

    def __init__(self, publisher: EventPublisher, repo: Optional[AntenneRepository] = None):
        self.repo = repo or AntenneRepository()
        self.publisher = publisher

    # ── READ ──────────────────────────────────────────────

    def list_antennes(
        self, filters: AntenneFilters, pagination: Pagination
    ) -> tuple[list[Antenne], int]:
        return self.repo.find_all(filters, pagination)

    def get_antenne(self, antenne_id: int) -> Optional[Antenne]:
        return self.repo.find_by_id(antenne_id)

    def get_by_ville(self, ville: str) -> list[Antenne]:
        return self.repo.find_by_ville(ville)

    def get_stats(self) -> AntenneStats:
        return self.repo.get_stats()

    # ── WRITE ─────────────────────────────────────────────

    def create_antenne(self, payload: Mapping[str, Any]) -> Antenne:
        """
        Create an antenne and announce it with `antenne.created`.

        Raises:
            ValidationError: If prenom or civilite is missing.
            StoreError: If the insert fails.
        """
        antenne = self.repo.create(payload)
        self.publisher.publish(RoutingKey.CREATED, {
            "id": antenne.id,
            "data": antenne.to_dict(),
            "timestamp": _timestamp(),
        })
        return antenne

    def update_antenne(self, antenne_id: int, payload: Mapping[str, Any]) -> Optional[Antenne]:
        """
        Apply a partial update and announce it with `antenne.updated`.

        When the payload sets etat to 'inactif', `antenne.deactivated` is
        published right after `antenne.updated`.

        Returns:
            The updated Antenne, or None if not found (nothing is published).
        """
        antenne = self.repo.update(antenne_id, payload)
        if antenne is None:
            return None

        self.publisher.publish(RoutingKey.UPDATED, {
            "antenneId": antenne.id,
            "data": {
                "id": antenne.id,
                "prenom": antenne.prenom,
                "nom": antenne.nom,
                "etat": antenne.etat,
            },
            "timestamp": _timestamp(),
        })

        if "etat" in payload and not antenne.is_active():
            self.publisher.publish(RoutingKey.DEACTIVATED, {
                "antenneId": antenne_id,
                "timestamp": _timestamp(),
            })
        return antenne

    def delete_antenne(self, antenne_id: int) -> bool:
        """
        Soft-delete an antenne and announce it with `antenne.deleted`.

        Returns:
            True if deleted, False if not found (nothing is published).
        """
        deleted = self.repo.soft_delete(antenne_id)
        if deleted:
            self.publisher.publish(RoutingKey.DELETED, {
                "antenneId": antenne_id,
                "timestamp": _timestamp(),
            })
        return deleted
