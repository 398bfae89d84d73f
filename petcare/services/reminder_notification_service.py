"""
Reminder Notification Service
Builds the reminder push payload, fans it out to every device of the owner
and prunes tokens the push service reports as permanently invalid.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import List

from flask import current_app, has_app_context

from petcare.schemas.reminder import DeviceToken, Reminder, ReminderKey
from petcare.services.fcm_service import PushDeliveryService, PushNotification
from petcare.services.stores import DeviceTokenStore
from petcare.utils.dates import format_due_time

logger = logging.getLogger(__name__)

NOTIFICATION_KIND = 'reminder_due'
NOTIFICATION_SCREEN = 'petDetail'
DEFAULT_REMINDER_TITLE = 'Reminder'


@dataclass
class DeliveryOutcome:
    token_count: int
    success_count: int
    failure_count: int
    pruned_token_ids: List[str] = field(default_factory=list)


class ReminderNotificationService:

    def __init__(self, push_service: PushDeliveryService, token_store: DeviceTokenStore,
                 brand: str = 'PetCare', timezone_name: str = 'Europe/Istanbul',
                 cleanup_workers: int = 8):
        self.push_service = push_service
        self.token_store = token_store
        self.brand = brand
        self.timezone_name = timezone_name
        self.cleanup_workers = max(1, cleanup_workers)

    def build_notification(self, reminder: Reminder, key: ReminderKey) -> PushNotification:
        title = f"{self.brand} • {reminder.type_label}"

        body = f"{reminder.pet_name}: " if reminder.pet_name else ''
        body += reminder.title or DEFAULT_REMINDER_TITLE
        due_label = format_due_time(reminder.due_date, self.timezone_name)
        if due_label:
            body += f" ({due_label})"

        # FCM data values must be strings
        data = {
            'type': NOTIFICATION_KIND,
            'reminderId': str(key.reminder_id),
            'petId': str(key.pet_id),
            'reminderType': str(reminder.type or ''),
            'screen': NOTIFICATION_SCREEN,
        }
        return PushNotification(title=title, body=body, data=data)

    def send_reminder(self, reminder: Reminder, key: ReminderKey,
                      tokens: List[DeviceToken]) -> DeliveryOutcome:
        """Multicast the reminder to ``tokens`` and prune dead ones"""
        notification = self.build_notification(reminder, key)
        result = self.push_service.send_multicast([t.token for t in tokens], notification)

        token_ids = {t.token: t.id for t in tokens}
        dead_ids = [token_ids[token] for token in result.dead_tokens if token in token_ids]
        pruned = self.prune_tokens(key.owner_id, dead_ids) if dead_ids else []

        return DeliveryOutcome(
            token_count=len(tokens),
            success_count=result.success_count,
            failure_count=result.failure_count,
            pruned_token_ids=pruned,
        )

    def prune_tokens(self, owner_id: str, token_ids: List[str]) -> List[str]:
        """
        Delete dead tokens concurrently. Each deletion is isolated: a failure is
        logged and does not affect the others. Returns the ids actually deleted.
        """
        if len(token_ids) == 1:
            return [token_ids[0]] if self._delete_token(None, owner_id, token_ids[0]) else []

        app = current_app._get_current_object() if has_app_context() else None
        with ThreadPoolExecutor(max_workers=min(self.cleanup_workers, len(token_ids))) as pool:
            futures = {
                pool.submit(self._delete_token, app, owner_id, token_id): token_id
                for token_id in token_ids
            }
            wait(futures)

        return [token_id for future, token_id in futures.items() if future.result()]

    def _delete_token(self, app, owner_id: str, token_id: str) -> bool:
        try:
            if app is not None:
                with app.app_context():
                    self.token_store.delete_token(owner_id, token_id)
            else:
                self.token_store.delete_token(owner_id, token_id)
            logger.info(f"🧹 Removed dead device token {token_id[:12]}… for user {owner_id}")
            return True
        except Exception as e:
            logger.warning(f"Failed to remove device token {token_id[:12]}… for user {owner_id}: {e}")
            return False
