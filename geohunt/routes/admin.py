"""
Module routes/admin.py
Rôle:
- Édition de la chasse : lecture de la config, indice de départ, CRUD des
  indices, image de référence, astuces globales.
- Protégé par `Depends(admin_required)` route par route (préflights CORS libres).

Intégrations:
- ClueGraph : chaque mutation est validée puis écrite sur disque AVANT d'être
  visible par le moteur (snapshot remplacé d'un bloc).
- Les corps JSON utilisent les clés camelCase du fichier de config
  (`radiusMeters`, `nextClueId`, `validationMode`, `hintsPhoto`…).
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, File, HTTPException, UploadFile
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from geohunt.deps.auth import admin_required
from geohunt.services.clue_graph import ClueGraph
from geohunt.services.errors import HuntError
from geohunt.services.hunt_store import get_clue_graph

router = APIRouter(prefix="/api/admin", tags=["admin"])


class TipsPayload(BaseModel):
    wrong_image_tips: Optional[List[str]] = None
    wrong_answer_tips: Optional[List[str]] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _http_error(exc: HuntError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.message)


@router.get("/config", dependencies=[Depends(admin_required)])
async def read_config(graph: ClueGraph = Depends(get_clue_graph)):
    """Config complète (réponses attendues et chemins d'images inclus)."""
    return graph.snapshot().to_dict()


@router.put("/start/{clue_id}", dependencies=[Depends(admin_required)])
async def set_start(clue_id: str, graph: ClueGraph = Depends(get_clue_graph)):
    try:
        graph.set_start(clue_id)
    except HuntError as exc:
        raise _http_error(exc)
    return {"ok": True}


@router.post("/clue", dependencies=[Depends(admin_required)])
async def create_clue(payload: Dict[str, Any] = Body(...), graph: ClueGraph = Depends(get_clue_graph)):
    try:
        clue = graph.create_clue(payload)
    except HuntError as exc:
        raise _http_error(exc)
    return clue.to_dict()


@router.put("/clue/{clue_id}", dependencies=[Depends(admin_required)])
async def update_clue(
    clue_id: str,
    changes: Dict[str, Any] = Body(...),
    graph: ClueGraph = Depends(get_clue_graph),
):
    try:
        clue = graph.update_clue(clue_id, changes)
    except HuntError as exc:
        raise _http_error(exc)
    return clue.to_dict()


@router.delete("/clue/{clue_id}", dependencies=[Depends(admin_required)])
async def delete_clue(clue_id: str, graph: ClueGraph = Depends(get_clue_graph)):
    try:
        graph.delete_clue(clue_id)
    except HuntError as exc:
        raise _http_error(exc)
    return {"ok": True}


@router.post("/clue/{clue_id}/image", dependencies=[Depends(admin_required)])
async def set_clue_image(
    clue_id: str,
    image: UploadFile = File(...),
    graph: ClueGraph = Depends(get_clue_graph),
):
    """Remplace l'image de référence d'un indice (fichier validé par Pillow)."""
    data = await image.read()
    if not data:
        raise HTTPException(status_code=400, detail="Missing image")
    try:
        relative = graph.set_reference_image(clue_id, data, image.filename or "")
    except HuntError as exc:
        raise _http_error(exc)
    return {"ok": True, "referenceImage": relative}


@router.put("/tips", dependencies=[Depends(admin_required)])
async def set_tips(payload: TipsPayload, graph: ClueGraph = Depends(get_clue_graph)):
    try:
        graph.set_tips(payload.wrong_image_tips, payload.wrong_answer_tips)
    except HuntError as exc:
        raise _http_error(exc)
    return {"ok": True}
