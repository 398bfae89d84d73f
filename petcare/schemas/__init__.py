"""
Pydantic schemas for PetCare records and API payloads
"""
from .reminder import (
    DeviceToken,
    DeviceTokenCreate,
    Reminder,
    ReminderKey,
    ReminderPatch,
    ReminderType,
    RepeatType,
    SendStatus,
    sanitize_token_id,
)
from .summary import (
    AssistantSummary,
    PetContext,
    SummaryRequest,
    SummarySection,
    SummarySource,
    SummaryTask,
)

__all__ = [
    'DeviceToken', 'DeviceTokenCreate', 'Reminder', 'ReminderKey', 'ReminderPatch',
    'ReminderType', 'RepeatType', 'SendStatus', 'sanitize_token_id',
    'AssistantSummary', 'PetContext', 'SummaryRequest', 'SummarySection',
    'SummarySource', 'SummaryTask',
]
