"""
Module routes/health.py
Rôle:
- Endpoint de santé (service OK + état minimal de la config et des sockets).
"""
from fastapi import APIRouter, Depends

from geohunt.config.settings import settings
from geohunt.services.clue_graph import ClueGraph
from geohunt.services.hunt_store import get_clue_graph
from geohunt.services.ws_manager import WS

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health(graph: ClueGraph = Depends(get_clue_graph)):
    """Renvoie un OK minimal avec le nom de service configuré."""
    config = graph.snapshot()
    return {
        "ok": True,
        "service": settings.APP_NAME,
        "clues": len(config.clues),
        "start_clue_id": config.start_clue_id,
        "sockets": WS.stats(),
    }
