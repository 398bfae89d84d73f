"""
Record store interfaces used by the reminder scheduler and the AI assistant.

Concrete implementations live in ``firestore_store`` (production) and
``sql_store`` (local development and tests).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from petcare.schemas.reminder import (
    DeviceToken, DeviceTokenCreate, Reminder, ReminderKey, ReminderPatch,
)
from petcare.schemas.summary import PetContext


@dataclass
class ReminderRecord:
    """A raw reminder document plus the key resolved for it at query time"""
    path: str
    key: Optional[ReminderKey]
    data: Dict[str, Any]

    @property
    def reminder_id(self) -> str:
        return self.key.reminder_id if self.key else self.path.rsplit('/', 1)[-1]

    def to_reminder(self) -> Reminder:
        """Validate the raw document; raises pydantic.ValidationError"""
        return Reminder.model_validate({**self.data, 'id': self.reminder_id})


class ReminderStore(ABC):

    @abstractmethod
    def fetch_due(self, now: datetime, limit: int) -> List[ReminderRecord]:
        """Active reminders of every owner with dueDate <= now, oldest first"""

    @abstractmethod
    def apply_patch(self, key: ReminderKey, patch: ReminderPatch) -> None:
        """Merge ``patch`` into the reminder; other fields are left untouched"""

    @abstractmethod
    def count_due(self, now: datetime) -> int:
        """Number of active reminders with dueDate <= now"""


class DeviceTokenStore(ABC):

    @abstractmethod
    def list_tokens(self, owner_id: str) -> List[DeviceToken]:
        """Registered push destinations of one user"""

    @abstractmethod
    def delete_token(self, owner_id: str, token_id: str) -> None:
        """Delete one destination; deleting a missing token is a no-op"""

    @abstractmethod
    def save_token(self, owner_id: str, payload: DeviceTokenCreate) -> DeviceToken:
        """Create or refresh a destination keyed by its sanitized token"""


class PetContextStore(ABC):

    @abstractmethod
    def load_pet_context(self, owner_id: str, pet_id: str) -> Optional[PetContext]:
        """Pet profile with its logs, reminders, weights and expenses"""
