"""
Dépendance d'authentification admin
===================================

Objectif
--------
Fournir une *dependency* FastAPI `admin_required` pour les routes d'édition de
la chasse (CRUD indices, image de référence, astuces globales).

Comportement
------------
- `settings.ADMIN_TOKEN == "dev"` (ou vide) : pas de contrôle (dev local).
- Sinon le header `x-admin-token` doit correspondre au jeton configuré
  (un `Authorization: Bearer <token>` est aussi accepté pour les outils CLI).
- 401 si le jeton est absent ou invalide.

Notes
-----
- Les préflights CORS (OPTIONS) sont gérés par le middleware, avant la dépendance.
"""

from __future__ import annotations

import hmac
from typing import Optional

from fastapi import Depends, Header, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from geohunt.config.settings import settings

DEV_TOKEN = "dev"

# Schéma Bearer (désactive l'erreur auto pour qu'on rende nos 401)
bearer = HTTPBearer(auto_error=False)


def _matches(candidate: Optional[str]) -> bool:
    if not candidate:
        return False
    return hmac.compare_digest(candidate.encode("utf-8"), settings.ADMIN_TOKEN.encode("utf-8"))


def admin_required(
    x_admin_token: Optional[str] = Header(default=None, alias="x-admin-token"),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
):
    """Autorise l'accès admin (header `x-admin-token` ou Bearer)."""
    if not settings.ADMIN_TOKEN or settings.ADMIN_TOKEN == DEV_TOKEN:
        return True
    if _matches(x_admin_token):
        return True
    if credentials and (credentials.scheme or "").lower() == "bearer" and _matches(credentials.credentials):
        return True
    raise HTTPException(status_code=401, detail="Unauthorized")
