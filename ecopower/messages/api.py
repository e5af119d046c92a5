from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request, WebSocket, WebSocketDisconnect, status
from fastapi.encoders import jsonable_encoder
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import ValidationError
from typing import Optional
import logging

from ecopower.db.mongo import get_mongo_db
from ecopower.auth.dependencies import get_current_user, resolve_user_from_token
from ecopower.messages.models import MessageCreate, WebSocketMessage
from ecopower.messages.realtime import ConnectionRegistry
from ecopower.messages.services import MessageService
from ecopower.notifications.services import NotificationService, get_notification_service
from ecopower.users.models import UserInDB
from ecopower.utils.mongodb_utils import convert_mongodb_result
from ecopower import errors

logger = logging.getLogger(__name__)

router = APIRouter(tags=["messages"])


def get_message_service(
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    notifications: NotificationService = Depends(get_notification_service),
) -> MessageService:
    return MessageService(db, notifications)


def get_connections(request: Request) -> ConnectionRegistry:
    return request.app.state.connections


def new_message_event(message: dict) -> dict:
    return WebSocketMessage(type="new_message", data=convert_mongodb_result(message)).model_dump()

# ─────────────────────────────────────────────
# 1. Envoyer un message (privé ou maison)
# ─────────────────────────────────────────────
@router.post("/messages", status_code=status.HTTP_201_CREATED)
async def send_message(
    data: MessageCreate,
    background_tasks: BackgroundTasks,
    current_user: UserInDB = Depends(get_current_user),
    service: MessageService = Depends(get_message_service),
    connections: ConnectionRegistry = Depends(get_connections),
):
    created = await service.create(current_user, data)
    message = created["message"]
    await connections.broadcast(created["recipients"], new_message_event(message))
    background_tasks.add_task(service.push_to_residents, current_user, message, created["recipients"])
    return {"message": "Message envoyé", "data": convert_mongodb_result(message)}

# ─────────────────────────────────────────────
# 2. Historique privé entre deux utilisateurs
# ─────────────────────────────────────────────
@router.get("/messages/private/{user_id}")
async def private_messages(
    user_id: str,
    limit: int = Query(100, ge=1, le=500),
    current_user: UserInDB = Depends(get_current_user),
    service: MessageService = Depends(get_message_service),
):
    return {"messages": await service.private_history(current_user, user_id, limit)}

# ─────────────────────────────────────────────
# 3. Discussion de la maison
# ─────────────────────────────────────────────
@router.get("/messages/house/{house_id}")
async def house_messages(
    house_id: str,
    limit: int = Query(100, ge=1, le=500),
    current_user: UserInDB = Depends(get_current_user),
    service: MessageService = Depends(get_message_service),
):
    return {"messages": await service.house_history(current_user, house_id, limit)}

# ─────────────────────────────────────────────
# 4. Marquer un message comme lu
# ─────────────────────────────────────────────
@router.put("/messages/{message_id}/read")
async def read_message(
    message_id: str,
    current_user: UserInDB = Depends(get_current_user),
    service: MessageService = Depends(get_message_service),
    connections: ConnectionRegistry = Depends(get_connections),
):
    message = await service.mark_read(current_user, message_id)
    await connections.send_to_user(message["sender_id"], WebSocketMessage(
        type="message_read",
        data={"message_id": str(message["_id"]), "read_by": current_user.id, "read_at": message["read_at"]},
    ).model_dump())
    return {"message": "Message marqué comme lu"}

# ─────────────────────────────────────────────
# 5. Temps réel : /ws/messages?token=...
# ─────────────────────────────────────────────
@router.websocket("/ws/messages")
async def messages_socket(
    websocket: WebSocket,
    token: Optional[str] = Query(None),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
    service: MessageService = Depends(get_message_service),
):
    user = await resolve_user_from_token(db, token)
    if not user:
        logger.warning("⛔ WebSocket refusé : token invalide ou manquant")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    connections: ConnectionRegistry = websocket.app.state.connections
    await websocket.accept()
    connections.connect(user.id, websocket)
    await websocket.send_json(jsonable_encoder(WebSocketMessage(
        type="authenticated", data={"user_id": user.id, "role": user.role.value}
    ).model_dump()))

    try:
        while True:
            try:
                event = await websocket.receive_json()
            except ValueError:
                event = None
            if not isinstance(event, dict) or not isinstance(event.get("data", {}), dict):
                await websocket.send_json(jsonable_encoder(WebSocketMessage(
                    type="error", data={"detail": "Format d'événement invalide"}
                ).model_dump()))
                continue

            if event.get("type") != "send_message":
                await websocket.send_json(jsonable_encoder(WebSocketMessage(
                    type="error", data={"detail": "Type d'événement inconnu"}
                ).model_dump()))
                continue

            try:
                created = await service.create(user, MessageCreate(**event.get("data", {})))
            except errors.EcopowerError as e:
                await websocket.send_json(jsonable_encoder(WebSocketMessage(type="error", data=e.to_dict()).model_dump()))
                continue
            except ValidationError as e:
                await websocket.send_json(jsonable_encoder(WebSocketMessage(
                    type="error", data={"detail": "Message invalide", "errors": [err["msg"] for err in e.errors()]}
                ).model_dump()))
                continue

            message = created["message"]
            await connections.broadcast(created["recipients"], new_message_event(message))
            await websocket.send_json(jsonable_encoder(WebSocketMessage(
                type="message_sent", data={"message_id": str(message["_id"])}
            ).model_dump()))
            await service.push_to_residents(user, message, created["recipients"])
    except WebSocketDisconnect:
        logger.debug(f"WebSocket fermé par le client : user={user.id}")
    finally:
        connections.disconnect(user.id, websocket)
