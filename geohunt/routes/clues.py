"""
Module routes/clues.py
Rôle:
- Vue publique d'un indice (sans spoiler) : position, rayon, question, mode.
- Ne renvoie jamais l'image de référence ni la réponse attendue.
"""
from fastapi import APIRouter, Depends, HTTPException

from geohunt.services.clue_graph import ClueGraph
from geohunt.services.errors import HuntError
from geohunt.services.hunt_store import get_clue_graph

router = APIRouter(prefix="/api", tags=["clues"])


@router.get("/clue/{clue_id}")
async def get_clue(clue_id: str, graph: ClueGraph = Depends(get_clue_graph)):
    try:
        summary = graph.clue_summary(clue_id)
    except HuntError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.code)
    return summary.model_dump(mode="json", by_alias=True)
