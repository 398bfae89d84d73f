"""
Typed reminder and device-token records.

Raw store documents are validated into these models at the store boundary;
the scheduler never touches untyped dictionaries.
"""

import enum
import logging
import math
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from petcare.utils.dates import to_datetime

logger = logging.getLogger(__name__)


class ReminderType(str, enum.Enum):
    VACCINE = "vaccine"
    MEDICATION = "medication"
    VET_VISIT = "vetVisit"


class RepeatType(str, enum.Enum):
    NONE = "none"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    CUSTOM_DAYS = "customDays"


class SendStatus(str, enum.Enum):
    SENT = "sent"
    NO_DEVICES = "no_devices"
    FAILED = "failed"
    GAVE_UP = "gave_up"


REMINDER_TYPE_LABELS = {
    ReminderType.VACCINE.value: "Vaccine",
    ReminderType.MEDICATION.value: "Medication",
    ReminderType.VET_VISIT.value: "Vet visit",
}
DEFAULT_REMINDER_LABEL = "Reminder"


def reminder_type_label(reminder_type: Optional[str]) -> str:
    return REMINDER_TYPE_LABELS.get(reminder_type or '', DEFAULT_REMINDER_LABEL)


class ReminderKey(NamedTuple):
    """Identity of a reminder: users/{owner_id}/pets/{pet_id}/reminders/{reminder_id}"""
    owner_id: str
    pet_id: str
    reminder_id: str

    @classmethod
    def from_path(cls, path: str) -> Optional['ReminderKey']:
        parts = (path or '').split('/')
        if (len(parts) != 6 or parts[0] != 'users' or parts[2] != 'pets'
                or parts[4] != 'reminders' or not all(parts)):
            return None
        return cls(owner_id=parts[1], pet_id=parts[3], reminder_id=parts[5])

    @property
    def path(self) -> str:
        return f"users/{self.owner_id}/pets/{self.pet_id}/reminders/{self.reminder_id}"


class Reminder(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    id: str = ''
    title: str = ''
    type: str = ''
    due_date: Optional[datetime] = Field(None, alias='dueDate')
    repeat_type: RepeatType = Field(RepeatType.NONE, alias='repeatType')
    custom_days_interval: Optional[int] = Field(None, alias='customDaysInterval')
    active: bool = True
    last_notified_at: Optional[datetime] = Field(None, alias='lastNotifiedAt')
    pet_name: str = Field('', alias='petName')
    failed_attempts: int = Field(0, alias='failedAttempts')

    @field_validator('due_date', 'last_notified_at', mode='before')
    @classmethod
    def _coerce_timestamp(cls, value):
        return to_datetime(value)

    @field_validator('title', 'type', 'pet_name', mode='before')
    @classmethod
    def _coerce_text(cls, value):
        return '' if value is None else str(value).strip()

    @field_validator('repeat_type', mode='before')
    @classmethod
    def _default_repeat(cls, value):
        if value in (None, ''):
            return RepeatType.NONE
        try:
            return RepeatType(value)
        except (TypeError, ValueError):
            # Unrecognized repeat settings notify once and then close
            logger.warning(f"Unknown repeatType {value!r}, treating reminder as one-shot")
            return RepeatType.NONE

    @field_validator('custom_days_interval', mode='before')
    @classmethod
    def _coerce_interval(cls, value):
        # Malformed intervals become None; the repeat rules deactivate those
        if value is None or isinstance(value, bool):
            return None
        try:
            number = float(value)
        except (TypeError, ValueError):
            return None
        if not math.isfinite(number) or number != int(number):
            return None
        return int(number)

    @field_validator('failed_attempts', mode='before')
    @classmethod
    def _coerce_attempts(cls, value):
        try:
            return max(0, int(value or 0))
        except (TypeError, ValueError):
            return 0

    @property
    def is_repeating(self) -> bool:
        return self.repeat_type != RepeatType.NONE

    @property
    def type_label(self) -> str:
        return reminder_type_label(self.type)


@dataclass
class ReminderPatch:
    """Fields the scheduler merge-writes back onto a reminder record"""
    last_notified_at: Optional[datetime] = None
    due_date: Optional[datetime] = None
    active: Optional[bool] = None
    failed_attempts: Optional[int] = None
    last_send_status: Optional[SendStatus] = None

    def to_fields(self) -> Dict[str, Any]:
        fields = {}
        if self.last_notified_at is not None:
            fields['lastNotifiedAt'] = self.last_notified_at
        if self.due_date is not None:
            fields['dueDate'] = self.due_date
        if self.active is not None:
            fields['active'] = self.active
        if self.failed_attempts is not None:
            fields['failedAttempts'] = self.failed_attempts
        if self.last_send_status is not None:
            fields['lastSendStatus'] = self.last_send_status.value
        return fields


_TOKEN_ID_UNSAFE = re.compile(r'[/.#\[\]\s]')


def sanitize_token_id(token: str) -> str:
    """Record id derived from a push token (path-unsafe characters replaced)"""
    return _TOKEN_ID_UNSAFE.sub('_', (token or '').strip())


class DeviceToken(BaseModel):
    model_config = ConfigDict(extra='ignore')

    id: str
    token: str
    platform: str = ''
    provider: str = ''

    @field_validator('token', mode='before')
    @classmethod
    def _require_token(cls, value):
        if not isinstance(value, str) or not value.strip():
            raise ValueError('token must be a non-empty string')
        return value.strip()

    @field_validator('platform', 'provider', mode='before')
    @classmethod
    def _coerce_text(cls, value):
        return '' if value is None else str(value)


class DeviceTokenCreate(BaseModel):
    """Payload for registering a push destination"""
    token: str = Field(..., min_length=1, max_length=4096)
    platform: str = Field('', max_length=20)
    provider: str = Field('fcm', max_length=20)
