"""
Application FastAPI — Point d'entrée
====================================

Rôle
----
- Instancie l'app FastAPI, configure le CORS pour le front (carte + caméra),
- Monte tous les routeurs (REST + WebSocket),
- Au démarrage : configure le logging, charge la config de chasse et génère
  les images de référence manquantes.

Notes
-----
- Les importations des routeurs sont explicites pour éviter les surprises d'auto-discovery.
- Garder `settings.ALLOWED_ORIGINS` en phase avec les URLs du front.
- ⚠️ Le middleware CORS doit être ajouté AVANT les include_router.
- Lancement local : `uvicorn geohunt.main:app --port 4000`.
"""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from geohunt.routes.play import router as play_router
from geohunt.routes.clues import router as clues_router
from geohunt.routes.admin import router as admin_router
from geohunt.routes.websocket import router as ws_router
from geohunt.routes.health import router as health_router

from geohunt.config.settings import settings
from geohunt.services.hunt_store import get_clue_graph
from geohunt.services.ws_manager import WS

logger = logging.getLogger("geohunt")

# --- App FastAPI principale  ---
app = FastAPI(title="GeoHunt Backend")

# ===========================
# CORS (dev: whitelist locale)
# ===========================
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],             # ← dont x-admin-token
)

# ===========================
# Montage des routers
# ===========================
# ⚠️ Les protections admin sont posées PAR ROUTE, pas sur le router entier.
app.include_router(play_router)
app.include_router(clues_router)
app.include_router(admin_router)
app.include_router(ws_router)                  # WebSocket endpoint (/ws)
app.include_router(health_router)


# --- Racine utile pour "ping" simple (sans /health) ---
@app.get("/")
async def root():
    """Ping basique : permet de vérifier que l'app tourne."""
    return {"ok": True, "service": "geohunt-backend"}


# --- Hooks de cycle de vie ---
@app.on_event("startup")
async def startup():
    """
    Au démarrage:
    - configure le logging (niveau `LOG_LEVEL`),
    - charge la config de chasse (erreur explicite si le fichier est invalide),
    - génère des images de référence factices pour les indices qui n'en ont pas.
    """
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    graph = get_clue_graph()
    if settings.GENERATE_PLACEHOLDERS:
        created = graph.ensure_reference_images()
        if created:
            logger.info("Placeholder reference images generated for %s", ", ".join(created))
    logger.info("== Registered routes ==")
    for r in app.routes:
        logger.debug("%s %s", r.path, getattr(r, "methods", None))


@app.on_event("shutdown")
async def shutdown():
    """Ferme proprement les sockets encore ouvertes."""
    await WS.close_all()
