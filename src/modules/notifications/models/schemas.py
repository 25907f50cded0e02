from typing import Optional
from pydantic import BaseModel
from datetime import datetime

from modules.notifications.models.notification import NotificationType

class NotificationResponse(BaseModel):
    id: int
    type: NotificationType
    title: str
    message: str
    loan_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    user_id: int
    read: bool = False

    model_config = {"from_attributes": True}
