"""
Models / progress.py
Rôle:
- État mutable par équipe (TeamProgress) et messages de chat (ChatMessage).
- État explicite d'une tentative sur l'indice courant :
  `Pending(photo, qa)` tant que l'équipe n'a pas avancé, `Advanced` une fois la
  transition effectuée.

Notes:
- `Pending` est immuable : accepter une preuve produit un nouvel état, jamais
  de retour arrière sur une preuve déjà acquise.
- Seul le store / moteur de validation modifie un TeamProgress.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from geohunt.services.geofence import GeoPoint


class HintKind(str, Enum):
    GENERIC = "generic"
    PHOTO = "photo"
    ANSWER = "answer"


class ProofKind(str, Enum):
    PHOTO = "photo"
    ANSWER = "answer"


@dataclass(frozen=True)
class Pending:
    photo: bool = False
    qa: bool = False

    def accept(self, proof: ProofKind) -> "Pending":
        if proof is ProofKind.PHOTO:
            return Pending(photo=True, qa=self.qa)
        return Pending(photo=self.photo, qa=True)


@dataclass(frozen=True)
class Advanced:
    pass


AttemptState = Union[Pending, Advanced]


def _zero_cursors() -> Dict[HintKind, int]:
    return {kind: 0 for kind in HintKind}


@dataclass
class TeamProgress:
    team_id: str
    current_clue_id: str
    history: List[str] = field(default_factory=list)
    satisfaction: Pending = field(default_factory=Pending)
    hint_cursor: Dict[HintKind, int] = field(default_factory=_zero_cursors)
    last_location: Optional[GeoPoint] = None
    finished: bool = False

    def reset_attempt(self) -> None:
        """Remise à zéro après avancée : preuves et curseurs d'indices."""
        self.satisfaction = Pending()
        self.hint_cursor = _zero_cursors()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "teamId": self.team_id,
            "currentClueId": self.current_clue_id,
            "history": list(self.history),
            "satisfaction": {"photo": self.satisfaction.photo, "qa": self.satisfaction.qa},
            "hintCursor": {kind.value: step for kind, step in self.hint_cursor.items()},
            "lastLocation": (
                {"lat": self.last_location.lat, "lng": self.last_location.lng}
                if self.last_location is not None
                else None
            ),
            "finished": self.finished,
        }


ChatRole = Literal["user", "bot", "system"]


def _now_ms() -> int:
    return int(time.time() * 1000)


class ChatMessage(BaseModel):
    """Entrée du fil de discussion d'une équipe (ts en millisecondes epoch)."""

    role: ChatRole
    text: str
    ts: int = Field(default_factory=_now_ms)
