"""
Hunt runtime registry
=====================

Expose les instances partagées du backend (config d'indices, progressions,
moteur de validation). Elles sont créées à la demande puis mises en cache ;
les routes les récupèrent via `Depends(get_engine)` / `Depends(get_clue_graph)`,
ce qui permet aux tests de les remplacer (`app.dependency_overrides`).
"""
from __future__ import annotations

from pathlib import Path
from threading import RLock
from typing import Optional

from geohunt.config.settings import settings
from .clue_graph import ClueGraph
from .progress_store import TeamProgressStore
from .validation_engine import ValidationEngine
from .ws_manager import WS

_GRAPH: Optional[ClueGraph] = None
_ENGINE: Optional[ValidationEngine] = None
_LOCK = RLock()


def default_config_path() -> Path:
    return Path(settings.DATA_DIR) / settings.GAME_CONFIG_FILE


def get_clue_graph() -> ClueGraph:
    """Retourne la config d'indices partagée (chargée depuis le disque au premier appel)."""
    global _GRAPH
    with _LOCK:
        if _GRAPH is None:
            graph = ClueGraph(default_config_path(), Path(settings.DATA_DIR))
            graph.load()
            _GRAPH = graph
        return _GRAPH


def get_engine() -> ValidationEngine:
    """Retourne le moteur de validation partagé (progressions en mémoire, notifications WS)."""
    global _ENGINE
    with _LOCK:
        if _ENGINE is None:
            _ENGINE = ValidationEngine(get_clue_graph(), TeamProgressStore(), WS)
        return _ENGINE


def reset_runtime() -> None:
    """Oublie les instances en cache (les progressions d'équipes sont perdues)."""
    global _GRAPH, _ENGINE
    with _LOCK:
        _GRAPH = None
        _ENGINE = None
