"""
Erreurs métier de l'API.

Chaque erreur porte son code HTTP. Les services lèvent ces exceptions,
le gestionnaire enregistré dans ``main.py`` les transforme en réponse JSON.
Une ``DependencyError`` signale un service externe indisponible quand
l'envoi est le but de la requête (formulaire de contact). Les envois annexes
(push, email, WhatsApp) sont seulement journalisés.
"""
from typing import Any, Dict, Optional


class EcopowerError(Exception):
    status_code = 500

    def __init__(self, detail: str, payload: Optional[Dict[str, Any]] = None):
        super().__init__(detail)
        self.detail = detail
        self.payload = payload or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.detail, **self.payload}


class ValidationError(EcopowerError):
    status_code = 400


class AuthenticationError(EcopowerError):
    status_code = 401


class AuthorizationError(EcopowerError):
    status_code = 403


class NotFoundError(EcopowerError):
    status_code = 404


class ConflictError(EcopowerError):
    status_code = 409


class DependencyError(EcopowerError):
    status_code = 502
