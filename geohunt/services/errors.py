"""
Taxonomie des erreurs du moteur de chasse.

Chaque erreur porte un `code` stable (renvoyé au client) et le statut HTTP que
les routers utilisent pour la traduire en `HTTPException`. Les échecs de
validation (hors zone, photo/réponse insuffisante) ne sont PAS des erreurs :
ils sortent en résultat structuré.
"""
from __future__ import annotations


class HuntError(Exception):
    """Base des erreurs métier (statut HTTP + code stable)."""

    status_code: int = 400
    code: str = "hunt_error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code


class NotJoined(HuntError):
    """L'équipe n'a pas encore rejoint la partie."""

    code = "team_not_joined"


class StaleSubmission(HuntError):
    """La soumission vise un indice qui n'est plus (ou pas encore) l'indice courant."""

    status_code = 409
    code = "wrong_clue"


class InvalidClue(HuntError):
    status_code = 404
    code = "invalid_clue"


class ReferenceImageMissing(HuntError):
    """Erreur de configuration serveur : pas d'image de référence exploitable."""

    status_code = 500
    code = "reference_image_missing"


class DecodeFailure(HuntError, OSError):
    """Image illisible (upload corrompu ou format inconnu)."""

    code = "image_decode_failed"


class ConfigError(HuntError):
    """Mutation admin refusée (id dupliqué, départ inconnu, etc.)."""

    code = "invalid_config"
