"""
Module routes/play.py
Rôle:
- Endpoints joueurs : rejoindre la chasse, soumettre une photo ou une réponse,
  demander un indice, consulter la progression de l'équipe.

Intégrations:
- ValidationEngine (via `Depends(get_engine)`) : toute la logique d'avancée.
- Les erreurs métier (`HuntError`) sont traduites en HTTPException (statut + code).

Notes:
- lat/lng sont optionnels : sans coordonnées, la dernière position connue de
  l'équipe est utilisée ; sans aucune position la zone est considérée non atteinte.
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from geohunt.services.errors import HuntError
from geohunt.services.geofence import GeoPoint
from geohunt.services.hunt_store import get_engine
from geohunt.services.validation_engine import ValidationEngine

router = APIRouter(prefix="/api", tags=["play"])

DEFAULT_TEAM_ID = "default"


class _CamelPayload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TeamPayload(_CamelPayload):
    team_id: str = DEFAULT_TEAM_ID


class AnswerPayload(_CamelPayload):
    team_id: str = DEFAULT_TEAM_ID
    clue_id: str
    lat: Optional[float] = None
    lng: Optional[float] = None
    answer: str = ""


def _location(lat: Optional[float], lng: Optional[float]) -> Optional[GeoPoint]:
    if lat is None or lng is None:
        return None
    return GeoPoint(lat, lng)


def _http_error(exc: HuntError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.code)


@router.post("/join")
async def join(payload: TeamPayload, engine: ValidationEngine = Depends(get_engine)):
    """Rejoint la chasse (idempotent) → indice courant + historique de chat."""
    try:
        joined = await engine.join_team(payload.team_id.strip() or DEFAULT_TEAM_ID)
    except HuntError as exc:
        raise _http_error(exc)
    return {"ok": True, **joined}


@router.post("/upload")
async def upload_photo(
    clue_id: str = Form(..., alias="clueId"),
    team_id: str = Form(DEFAULT_TEAM_ID, alias="teamId"),
    lat: Optional[float] = Form(None),
    lng: Optional[float] = Form(None),
    photo: UploadFile = File(...),
    engine: ValidationEngine = Depends(get_engine),
):
    """
    Soumission photo : zone + similarité avec l'image de référence.
    Retourne {ok, geoOk, imgOk, similarity, distance}.
    """
    data = await photo.read()
    if not data:
        raise HTTPException(status_code=400, detail="missing_image")
    try:
        result = await engine.submit_photo(team_id, clue_id, _location(lat, lng), data)
    except HuntError as exc:
        raise _http_error(exc)
    return result.to_dict()


@router.post("/answer")
async def submit_answer(payload: AnswerPayload, engine: ValidationEngine = Depends(get_engine)):
    """Soumission d'une réponse texte. Retourne {ok, geoOk, ansOk, similarity, distance}."""
    try:
        result = await engine.submit_answer(
            payload.team_id,
            payload.clue_id,
            _location(payload.lat, payload.lng),
            payload.answer,
        )
    except HuntError as exc:
        raise _http_error(exc)
    return result.to_dict()


@router.post("/hint")
async def request_hint(payload: TeamPayload, engine: ValidationEngine = Depends(get_engine)):
    """Indice générique suivant pour l'indice courant de l'équipe."""
    try:
        tip = await engine.request_hint(payload.team_id)
    except HuntError as exc:
        raise _http_error(exc)
    return {"ok": True, "hint": tip}


@router.get("/team/{team_id}")
async def team_progress(team_id: str, engine: ValidationEngine = Depends(get_engine)):
    try:
        return engine.team_snapshot(team_id)
    except HuntError as exc:
        raise _http_error(exc)
