# modules/notifications/services/notification_service.py
from typing import List, Optional

from modules.notifications.models.notification import Notification, NotificationType
from modules.notifications.repositories.notification_repository import NotificationRepository

class NotificationTemplate:
    type = NotificationType.LOAN_UPDATE

    def __init__(self, user_id: int, title: str, message: str, loan_id: Optional[int] = None):
        self.user_id = user_id
        self.title = title
        self.message = message
        self.loan_id = loan_id

    def to_model(self) -> Notification:
        return Notification(
            user_id=self.user_id,
            type=self.type,
            title=self.title,
            message=self.message,
            loan_id=self.loan_id
        )

class AgreementGeneratedNotification(NotificationTemplate):
    type = NotificationType.AGREEMENT_GENERATED

    def __init__(self, user_id: int, loan_id: int):
        title = "Loan agreement ready"
        message = f"The agreement for loan #{loan_id} is ready for your review and signature."
        super().__init__(user_id, title, message, loan_id)

class AgreementSignedNotification(NotificationTemplate):
    type = NotificationType.AGREEMENT_SIGNED

    def __init__(self, user_id: int, loan_id: int):
        title = "Loan agreement signed"
        message = f"The agreement for loan #{loan_id} has been signed. A signed copy is available for download."
        super().__init__(user_id, title, message, loan_id)

class NotificationService:
    def __init__(self, repository: NotificationRepository):
        self.notification_repository = repository

    def create_agreement_generated_notification(self, user_id: int, loan_id: int) -> Notification:
        template = AgreementGeneratedNotification(user_id, loan_id)
        return self.notification_repository.save(template.to_model())

    def create_agreement_signed_notification(self, user_id: int, loan_id: int) -> Notification:
        template = AgreementSignedNotification(user_id, loan_id)
        return self.notification_repository.save(template.to_model())

    def get_notifications(self, user_id: int, unread_only: bool = False) -> List[Notification]:
        return self.notification_repository.find_by_user_id(user_id, unread_only)

    def mark_as_read(self, notification_id: int, user_id: int) -> Optional[Notification]:
        notif = self.notification_repository.find_by_id(notification_id)
        # Other users' notifications look the same as missing ones
        if not notif or notif.user_id != user_id:
            return None
        return self.notification_repository.update(notification_id, {'read': True})

    def mark_all_as_read(self, user_id: int) -> int:
        return self.notification_repository.mark_all_read(user_id)
