from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class MessageCreate(BaseModel):
    house_id: str
    # Sans destinataire le message est adressé à toute la maison
    receiver_id: Optional[str] = None
    content: str = Field(..., min_length=1, max_length=2000)

# ===========================
# WEBSOCKETS
# ===========================
class WebSocketMessage(BaseModel):
    type: str
    data: dict
    timestamp: datetime = Field(default_factory=datetime.utcnow)
