# geohunt/routes/websocket.py
"""
WebSocket endpoint.

- /ws : canal équipe (join, chat, ping/pong).

Messages client:
  {"type": "join", "teamId": "..."}
  {"type": "chat:send", "teamId": "...", "text": "...", "lat": 0.0, "lng": 0.0}
  {"type": "ping"}

Événements serveur: {"type": <event>, "payload": {...}}
  state, chat:history, chat:message, progress, error (+ pong / ack).
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from geohunt.services.errors import HuntError
from geohunt.services.geofence import GeoPoint
from geohunt.services.hunt_store import get_engine
from geohunt.services.validation_engine import ValidationEngine
from geohunt.services.ws_manager import WS

logger = logging.getLogger(__name__)

router = APIRouter()


def _team_id(msg: Dict[str, Any]) -> str:
    payload = msg.get("payload") or {}
    return str(msg.get("teamId") or payload.get("teamId") or "default").strip() or "default"


def _location(msg: Dict[str, Any]) -> Optional[GeoPoint]:
    lat, lng = msg.get("lat"), msg.get("lng")
    if isinstance(lat, (int, float)) and isinstance(lng, (int, float)):
        return GeoPoint(float(lat), float(lng))
    return None


async def _handle(ws: WebSocket, msg: Dict[str, Any], engine: ValidationEngine) -> None:
    mtype = msg.get("type")
    if mtype == "join":
        team_id = _team_id(msg)
        joined = await engine.join_team(team_id)
        WS.join(ws, team_id)
        await WS.send_type(ws, "state", joined["state"])
        if joined["history"]:
            await WS.send_type(ws, "chat:history", joined["history"])
    elif mtype == "chat:send":
        team_id = _team_id(msg)
        WS.join(ws, team_id)
        await engine.handle_chat(team_id, str(msg.get("text") or ""), _location(msg))
    elif mtype == "ping":
        await WS.send_json(ws, {"type": "pong"})
    else:
        await WS.send_json(ws, {"type": "ack", "received": msg})


@router.websocket("/ws")
async def websocket_endpoint(ws: WebSocket, engine: ValidationEngine = Depends(get_engine)):
    """
    Boucle d'écoute des clients équipe.
    - Les erreurs métier sont renvoyées au client (type=error) sans couper la socket.
    """
    await WS.connect(ws)
    try:
        while True:
            raw = await ws.receive_text()
            try:
                msg = json.loads(raw)
            except ValueError:
                # Message non JSON -> ignore
                continue
            if not isinstance(msg, dict):
                continue
            try:
                await _handle(ws, msg, engine)
            except HuntError as exc:
                await WS.send_type(ws, "error", {"error": exc.code, "message": exc.message})
            except WebSocketDisconnect:
                raise
            except Exception:
                logger.exception("WebSocket message handling failed")
                await WS.send_type(ws, "error", {"error": "internal_error"})
    except WebSocketDisconnect:
        pass
    finally:
        await WS.disconnect(ws)
