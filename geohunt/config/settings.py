"""
Configuration de l'application (Settings)
=========================================

Rôle
----
- Centraliser les paramètres du backend (nom, host/port, jeton admin, chemins, seuils…).
- Les valeurs par défaut conviennent pour un environnement de dev local.
- Les variables peuvent être surchargées via un fichier `.env` ou l'environnement.

Intégrations
------------
- `pydantic-settings` charge automatiquement les variables d'env et `.env`.
- Les services/routers importent `from geohunt.config.settings import settings`.

Bonnes pratiques
----------------
- `ADMIN_TOKEN="dev"` désactive le contrôle admin (pratique en local uniquement).
- `DATA_DIR` calcule un chemin relatif au repo : `<repo>/geohunt/data`.
- Les seuils (`PHOTO_THRESHOLD`, `ANSWER_THRESHOLD`) sont de la politique de jeu,
  pas du comportement des scoreurs.

Exemples de `.env`
------------------
APP_NAME="GeoHunt Backend (Staging)"
PORT=8080
ADMIN_TOKEN="mettre-une-valeur-secrète-en-prod"
DATA_DIR="/var/opt/geohunt/data"
PHOTO_THRESHOLD=0.7
LOG_LEVEL="DEBUG"
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List
import os


class Settings(BaseSettings):
    # Nom du service (apparaît dans /health)
    APP_NAME: str = "GeoHunt Backend"
    # Bind réseau (FastAPI / Uvicorn)
    HOST: str = "0.0.0.0"
    PORT: int = 4000

    # Jeton admin attendu dans le header `x-admin-token` ("dev" = pas de contrôle)
    ADMIN_TOKEN: str = "dev"

    # Répertoire des fichiers persistés (config de jeu, images de référence)
    # Par défaut: <repo>/geohunt/data
    DATA_DIR: str = os.path.join(os.path.dirname(os.path.dirname(__file__)), "data")
    GAME_CONFIG_FILE: str = "game_config.json"

    # Seuils d'acceptation appliqués par le moteur de validation
    PHOTO_THRESHOLD: float = 0.75
    ANSWER_THRESHOLD: float = 0.8

    # Normalisation des images avant comparaison pixel à pixel
    IMAGE_SIZE: int = 256
    PIXEL_THRESHOLD: float = 0.1

    # Historique de chat conservé par équipe
    CHAT_HISTORY_LIMIT: int = 50

    # Génère des images de référence factices au démarrage si absentes
    GENERATE_PLACEHOLDERS: bool = True

    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

    LOG_LEVEL: str = "INFO"

    # Paramétrage pydantic-settings :
    # - lit le fichier .env (UTF-8) si présent
    # - ignore les clés supplémentaires pour éviter les erreurs
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


# Instance unique importable partout : `settings`
settings = Settings()
