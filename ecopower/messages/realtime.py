import logging
from typing import Any, Dict, Iterable, Set

from fastapi import WebSocket
from fastapi.encoders import jsonable_encoder

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """
    Connexions WebSocket ouvertes, indexées par identifiant utilisateur.

    Créé dans le ``lifespan`` de l'application (``app.state.connections``)
    et vidé à l'arrêt. Un utilisateur peut avoir plusieurs appareils connectés.
    """

    def __init__(self):
        self._connections: Dict[str, Set[WebSocket]] = {}

    def connect(self, user_id: str, websocket: WebSocket) -> None:
        self._connections.setdefault(str(user_id), set()).add(websocket)
        logger.info(f"🔌 WebSocket connecté : user={user_id}")

    def disconnect(self, user_id: str, websocket: WebSocket) -> None:
        sockets = self._connections.get(str(user_id))
        if not sockets:
            return
        sockets.discard(websocket)
        if not sockets:
            del self._connections[str(user_id)]
        logger.info(f"🔌 WebSocket déconnecté : user={user_id}")

    def is_connected(self, user_id: str) -> bool:
        return str(user_id) in self._connections

    def __len__(self) -> int:
        return sum(len(sockets) for sockets in self._connections.values())

    async def send_to_user(self, user_id: str, payload: Dict[str, Any]) -> int:
        """Envoie ``payload`` à tous les appareils de l'utilisateur ; retourne le nombre d'envois réussis"""
        sockets = list(self._connections.get(str(user_id), ()))
        data = jsonable_encoder(payload)
        sent = 0
        for websocket in sockets:
            try:
                await websocket.send_json(data)
                sent += 1
            except Exception as e:
                logger.warning(f"WebSocket fermé pour {user_id}, retrait : {e}")
                self.disconnect(user_id, websocket)
        return sent

    async def broadcast(self, user_ids: Iterable[Any], payload: Dict[str, Any]) -> int:
        sent = 0
        for user_id in {str(uid) for uid in user_ids}:
            sent += await self.send_to_user(user_id, payload)
        return sent

    def clear(self) -> None:
        self._connections.clear()
