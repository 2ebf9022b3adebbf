"""
handlers/antenne_handler.py
----------------------------
HTTP endpoints for antennes, mounted under /api/antennes.
Delegates all logic to AntenneService and shapes the JSON responses.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse

from exceptions import StoreError, ValidationError
from models.antenne import AntenneFilters, Pagination
from schemas.antenne import AntenneCreate, AntenneUpdate, Etat
from security.auth import get_current_user
from services.antenne_service import AntenneService
from utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(dependencies=[Depends(get_current_user)])

NOT_FOUND = "Antenne non trouvée"


def get_antenne_service(request: Request) -> AntenneService:
    """The service instance built at startup (see main.lifespan)."""
    return request.app.state.antenne_service


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


@router.get("")
def list_antennes(
    key: Optional[str] = None,
    etat: Optional[Etat] = None,
    ville: Optional[str] = None,
    type_profil_id: Optional[int] = None,
    antenne_principale: Optional[bool] = None,
    has_iban: bool = False,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1),
    service: AntenneService = Depends(get_antenne_service),
):
    """GET /api/antennes - filtered, paginated listing."""
    filters = AntenneFilters(
        key=key,
        etat=etat,
        ville=ville,
        type_profil_id=type_profil_id,
        antenne_principale=antenne_principale,
        has_iban=has_iban,
    )
    pagination = Pagination(page=page, limit=limit)
    try:
        antennes, total = service.list_antennes(filters, pagination)
    except StoreError as e:
        logger.error(f"Error fetching antennes: {e}")
        return _error(500, "Erreur lors de la récupération des antennes")

    return {
        "success": True,
        "data": [a.to_dict() for a in antennes],
        "pagination": {
            "page": pagination.page,
            "limit": pagination.limit,
            "total": total,
            "totalPages": pagination.total_pages(total),
        },
    }


@router.get("/stats")
def get_stats(service: AntenneService = Depends(get_antenne_service)):
    """GET /api/antennes/stats"""
    try:
        stats = service.get_stats()
    except StoreError as e:
        logger.error(f"Error fetching stats: {e}")
        return _error(500, "Erreur lors de la récupération des statistiques")
    return {"success": True, "data": stats.to_dict()}


@router.get("/ville/{ville}")
def get_by_ville(ville: str, service: AntenneService = Depends(get_antenne_service)):
    """GET /api/antennes/ville/{ville}"""
    try:
        antennes = service.get_by_ville(ville)
    except StoreError as e:
        logger.error(f"Error fetching antennes by ville: {e}")
        return _error(500, "Erreur lors de la récupération des antennes")
    return {"success": True, "data": [a.to_dict() for a in antennes]}


@router.get("/{antenne_id}")
def get_antenne(antenne_id: int, service: AntenneService = Depends(get_antenne_service)):
    """GET /api/antennes/{id}"""
    try:
        antenne = service.get_antenne(antenne_id)
    except StoreError as e:
        logger.error(f"Error fetching antenne #{antenne_id}: {e}")
        return _error(500, "Erreur lors de la récupération de l'antenne")
    if antenne is None:
        return _error(404, NOT_FOUND)
    return {"success": True, "data": antenne.to_dict()}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_antenne(body: AntenneCreate, service: AntenneService = Depends(get_antenne_service)):
    """POST /api/antennes"""
    try:
        antenne = service.create_antenne(body.to_payload())
    except ValidationError:
        return _error(400, "prenom et civilite sont obligatoires")
    except StoreError as e:
        logger.error(f"Error creating antenne: {e}")
        return _error(500, "Erreur lors de la création de l'antenne")
    return {
        "success": True,
        "data": antenne.to_dict(),
        "message": "Antenne créée avec succès",
    }


@router.put("/{antenne_id}")
def update_antenne(
    antenne_id: int,
    body: AntenneUpdate,
    service: AntenneService = Depends(get_antenne_service),
):
    """PUT /api/antennes/{id} - partial update, only the sent fields change."""
    try:
        antenne = service.update_antenne(antenne_id, body.to_payload())
    except StoreError as e:
        logger.error(f"Error updating antenne #{antenne_id}: {e}")
        return _error(500, "Erreur lors de la mise à jour de l'antenne")
    if antenne is None:
        return _error(404, NOT_FOUND)
    return {
        "success": True,
        "data": antenne.to_dict(),
        "message": "Antenne mise à jour avec succès",
    }


@router.delete("/{antenne_id}")
def delete_antenne(antenne_id: int, service: AntenneService = Depends(get_antenne_service)):
    """DELETE /api/antennes/{id} - soft delete."""
    try:
        deleted = service.delete_antenne(antenne_id)
    except StoreError as e:
        logger.error(f"Error deleting antenne #{antenne_id}: {e}")
        return _error(500, "Erreur lors de la suppression de l'antenne")
    if not deleted:
        return _error(404, NOT_FOUND)
    return {"success": True, "message": "Antenne supprimée avec succès"}
