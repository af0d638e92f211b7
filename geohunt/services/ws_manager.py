# geohunt/services/ws_manager.py
"""
Service: ws_manager.py
Registre des sockets joueurs, rangées par équipe.

- Une socket arrive "anonyme" (`connect`) puis s'abonne à une équipe (`join`).
  Un second `join` vers une autre équipe la déplace.
- `publish` implémente `NotificationChannel` : le moteur de validation pousse
  `progress` / `chat:message` à toutes les sockets de l'équipe.
- Livraison sans accusé : une socket qui échoue à l'envoi est oubliée.
- On itère toujours sur une copie de la liste des sockets (les abonnements
  peuvent changer pendant un envoi).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from threading import RLock
from typing import Any, Dict, List, Optional, Protocol, Set

import orjson
from starlette.websockets import WebSocket

logger = logging.getLogger(__name__)


class NotificationChannel(Protocol):
    async def publish(self, team_id: str, event_type: str, payload: Dict[str, Any]) -> int:
        """Diffuse un événement typé aux abonnés de l'équipe; renvoie le nb de livraisons."""
        ...


def _encode(message: Any) -> str:
    return orjson.dumps(message).decode("utf-8")


@dataclass
class WSManager:
    _lock: RLock = field(default_factory=RLock, init=False, repr=False)
    teams: Dict[str, Set[WebSocket]] = field(default_factory=dict)
    anonymous: Set[WebSocket] = field(default_factory=set)
    team_of: Dict[WebSocket, str] = field(default_factory=dict)

    # ---------- cycle de vie ----------
    async def connect(self, ws: WebSocket) -> None:
        await ws.accept()
        with self._lock:
            self.anonymous.add(ws)

    def _detach(self, ws: WebSocket) -> Optional[str]:
        """Retire la socket de son équipe éventuelle; renvoie l'équipe quittée."""
        team_id = self.team_of.pop(ws, None)
        if team_id is not None:
            members = self.teams.get(team_id, set())
            members.discard(ws)
            if not members:
                self.teams.pop(team_id, None)
        return team_id

    def forget(self, ws: WebSocket) -> None:
        with self._lock:
            self.anonymous.discard(ws)
            self._detach(ws)

    async def disconnect(self, ws: WebSocket) -> None:
        self.forget(ws)
        try:
            await ws.close()
        except Exception:
            # déjà fermée (par le client ou après un envoi raté)
            logger.debug("Socket already closed", exc_info=True)

    def join(self, ws: WebSocket, team_id: str) -> None:
        with self._lock:
            self.anonymous.discard(ws)
            if self.team_of.get(ws) == team_id:
                return
            self._detach(ws)
            self.teams.setdefault(team_id, set()).add(ws)
            self.team_of[ws] = team_id
        logger.debug("Socket joined team", extra={"team_id": team_id})

    # ---------- envois ----------
    async def _deliver(self, ws: WebSocket, message: Any) -> bool:
        try:
            await ws.send_text(_encode(message))
        except Exception:
            logger.debug("Dropping dead websocket", exc_info=True)
            self.forget(ws)
            return False
        return True

    async def send_json(self, ws: WebSocket, message: Any) -> bool:
        return await self._deliver(ws, message)

    async def send_type(self, ws: WebSocket, event_type: str, payload: Any) -> bool:
        return await self._deliver(ws, {"type": event_type, "payload": payload})

    def members(self, team_id: str) -> List[WebSocket]:
        with self._lock:
            return list(self.teams.get(team_id, ()))

    async def publish(self, team_id: str, event_type: str, payload: Dict[str, Any]) -> int:
        message = {"type": event_type, "payload": payload}
        sockets = self.members(team_id)
        delivered = 0
        for ws in sockets:
            delivered += await self._deliver(ws, message)
        logger.debug(
            "Event published",
            extra={"team_id": team_id, "event": event_type, "delivered": delivered, "sockets": len(sockets)},
        )
        return delivered

    # ---------- admin ----------
    def stats(self) -> dict:
        with self._lock:
            per_team = {team_id: len(sockets) for team_id, sockets in self.teams.items()}
            return {"teams": per_team, "joined": sum(per_team.values()), "anonymous": len(self.anonymous)}

    async def close_all(self) -> dict:
        with self._lock:
            sockets = list(self.anonymous) + [ws for members in self.teams.values() for ws in members]
        for ws in sockets:
            await self.disconnect(ws)
        return self.stats()


WS = WSManager()
