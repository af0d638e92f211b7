"""
Service: clue_graph.py
Rôle:
- Charger la configuration de jeu (`game_config.json`) et exposer un snapshot
  immuable aux lecteurs (moteur de validation, routes publiques).
- Appliquer les mutations admin (CRUD indices, départ, image de référence, astuces).

Concurrence:
- Un seul écrivain à la fois (RLock). Chaque mutation construit une nouvelle
  `GameConfig`, la valide, l'écrit sur disque PUIS remplace la référence du
  snapshot : un lecteur voit l'ancienne ou la nouvelle config, jamais un mélange.

Stockage:
- `<DATA_DIR>/game_config.json`
- images de référence : `<DATA_DIR>/assets/clues/<clue_id>.<ext>` (chemins relatifs
  à `DATA_DIR` dans la config).
"""
from __future__ import annotations

import logging
import random
from pathlib import Path
from threading import RLock
from typing import Any, Dict, List, Optional

from PIL import Image
from pydantic import ValidationError

from geohunt.models.clue import Clue, ClueSummary, GameConfig
from .errors import ConfigError, InvalidClue, ReferenceImageMissing
from .io_utils import read_json, write_json
from .similarity import check_image

logger = logging.getLogger(__name__)

CLUE_ASSETS_DIR = "assets/clues"
PLACEHOLDER_SIZE = 512


def _default_reference(clue_id: str) -> str:
    return f"{CLUE_ASSETS_DIR}/{clue_id}.jpg"


class ClueGraph:
    def __init__(self, config_path: Path, assets_root: Optional[Path] = None) -> None:
        self.config_path = Path(config_path)
        self.assets_root = Path(assets_root) if assets_root else self.config_path.parent
        self._lock = RLock()
        self._config = GameConfig()

    # -----------------------------
    # Chargement / Sauvegarde
    # -----------------------------
    def load(self) -> GameConfig:
        """Charge la config depuis le disque (config vide si fichier absent)."""
        with self._lock:
            raw = read_json(self.config_path)
            try:
                config = GameConfig.model_validate(raw or {})
            except ValidationError as exc:
                raise ConfigError(f"invalid game config {self.config_path}: {exc}") from exc
            self._config = config
            logger.info(
                "Game config loaded",
                extra={"config_path": str(self.config_path), "clue_count": len(config.clues)},
            )
            return config

    def snapshot(self) -> GameConfig:
        """Config courante : à lire une fois par requête et ne jamais modifier."""
        return self._config

    def _commit(self, data: Dict[str, Any]) -> GameConfig:
        """Valide, persiste de façon synchrone, puis publie la nouvelle config."""
        try:
            config = GameConfig.model_validate(data)
        except ValidationError as exc:
            raise ConfigError(str(exc)) from exc
        write_json(self.config_path, config.to_dict())
        self._config = config
        return config

    # -----------------------------
    # Lecture
    # -----------------------------
    def get_clue(self, clue_id: str) -> Clue:
        clue = self._config.get(clue_id)
        if clue is None:
            raise InvalidClue(f"unknown clue {clue_id!r}")
        return clue

    def clue_summary(self, clue_id: str) -> ClueSummary:
        return self.get_clue(clue_id).summary()

    def reference_image_path(self, clue: Clue) -> Path:
        """Chemin absolu de l'image de référence (ReferenceImageMissing si absente)."""
        if not clue.reference_image:
            raise ReferenceImageMissing(f"clue {clue.id!r} has no reference image")
        path = (self.assets_root / clue.reference_image).resolve()
        if not path.is_file():
            raise ReferenceImageMissing(f"reference image missing on server for clue {clue.id!r}")
        return path

    # -----------------------------
    # Mutations admin
    # -----------------------------
    def set_start(self, clue_id: str) -> GameConfig:
        with self._lock:
            current = self._config
            if clue_id not in current:
                raise InvalidClue(f"unknown clue {clue_id!r}")
            data = current.to_dict()
            data["startClueId"] = clue_id
            config = self._commit(data)
            logger.info("Start clue set", extra={"clue_id": clue_id})
            return config

    def create_clue(self, payload: Dict[str, Any]) -> Clue:
        clue_id = str(payload.get("id") or "").strip()
        name = str(payload.get("name") or "").strip()
        if not clue_id or not name:
            raise ConfigError("id and name required")
        with self._lock:
            current = self._config
            if clue_id in current:
                raise ConfigError(f"clue id {clue_id!r} already exists")
            entry = dict(payload)
            entry["id"] = clue_id
            entry["name"] = name
            entry.setdefault("referenceImage", _default_reference(clue_id))
            data = current.to_dict()
            data.setdefault("clues", []).append(entry)
            if not data.get("startClueId"):
                data["startClueId"] = clue_id
            config = self._commit(data)
            logger.info("Clue created", extra={"clue_id": clue_id})
            return config.get(clue_id)

    def update_clue(self, clue_id: str, changes: Dict[str, Any]) -> Clue:
        """Fusion superficielle des champs fournis (l'id n'est pas modifiable)."""
        with self._lock:
            current = self._config
            existing = current.get(clue_id)
            if existing is None:
                raise InvalidClue(f"unknown clue {clue_id!r}")
            merged = existing.to_dict()
            merged.update(changes)
            merged["id"] = clue_id
            data = current.to_dict()
            data["clues"] = [merged if c["id"] == clue_id else c for c in data["clues"]]
            config = self._commit(data)
            logger.info("Clue updated", extra={"clue_id": clue_id, "fields": sorted(changes)})
            return config.get(clue_id)

    def delete_clue(self, clue_id: str) -> GameConfig:
        """Supprime un indice. Les `nextClueId` qui le visaient restent en place (tolérés)."""
        with self._lock:
            current = self._config
            if clue_id not in current:
                raise InvalidClue(f"unknown clue {clue_id!r}")
            data = current.to_dict()
            data["clues"] = [c for c in data["clues"] if c["id"] != clue_id]
            if data.get("startClueId") == clue_id:
                data["startClueId"] = data["clues"][0]["id"] if data["clues"] else None
            config = self._commit(data)
            logger.info("Clue deleted", extra={"clue_id": clue_id})
            return config

    def set_reference_image(self, clue_id: str, data: bytes, filename: str = "") -> str:
        """Enregistre l'image de référence d'un indice et renvoie son chemin relatif."""
        check_image(data)
        suffix = Path(filename or "").suffix.lower() or ".jpg"
        relative = f"{CLUE_ASSETS_DIR}/{clue_id}{suffix}"
        with self._lock:
            if clue_id not in self._config:
                raise InvalidClue(f"unknown clue {clue_id!r}")
            target = self.assets_root / relative
            target.parent.mkdir(parents=True, exist_ok=True)
            staged = target.with_name(target.name + ".upload")
            staged.write_bytes(data)
            try:
                self.update_clue(clue_id, {"referenceImage": relative})
            except Exception:
                staged.unlink(missing_ok=True)
                raise
            staged.replace(target)
        return relative

    def set_tips(
        self,
        wrong_image_tips: Optional[List[str]] = None,
        wrong_answer_tips: Optional[List[str]] = None,
    ) -> GameConfig:
        with self._lock:
            data = self._config.to_dict()
            if wrong_image_tips is not None:
                data["wrongImageTips"] = [t for t in wrong_image_tips if isinstance(t, str)]
            if wrong_answer_tips is not None:
                data["wrongAnswerTips"] = [t for t in wrong_answer_tips if isinstance(t, str)]
            config = self._commit(data)
            logger.info("Global tips updated")
            return config

    # -----------------------------
    # Images factices
    # -----------------------------
    def ensure_reference_images(self, seed: Optional[int] = None) -> List[str]:
        """Crée une image unie pour chaque indice dont la référence est absente du disque."""
        rng = random.Random(seed) if seed is not None else random
        created: List[str] = []
        for clue in self._config.clues:
            if not clue.reference_image:
                continue
            path = self.assets_root / clue.reference_image
            if path.exists():
                continue
            path.parent.mkdir(parents=True, exist_ok=True)
            color = tuple(rng.randrange(256) for _ in range(3))
            Image.new("RGB", (PLACEHOLDER_SIZE, PLACEHOLDER_SIZE), color).save(path)
            created.append(clue.id)
            logger.info(
                "Generated placeholder reference image",
                extra={"clue_id": clue.id, "path": str(path)},
            )
        return created
