"""
Reminder scheduling rules: eligibility and repeat advancement.

Pure functions of the reminder record and the scan clock; the scheduler
service owns all I/O.
"""

from datetime import datetime, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta

from petcare.schemas.reminder import Reminder, ReminderPatch, RepeatType, SendStatus

# Upper bound on catch-up steps when rolling an old repeating reminder forward
MAX_ROLL_FORWARD_STEPS = 5000

# Largest day count a timedelta can hold
MAX_CUSTOM_DAYS_INTERVAL = timedelta.max.days


def should_notify_reminder(reminder: Reminder, now: datetime, lookback: datetime) -> bool:
    """
    Decide whether a due reminder should get a push in this scan.

    Old one-shot reminders (due before ``lookback``) are treated as stale and
    skipped; repeating ones are exempt because their due date rolls forward.
    At most one notification is sent per distinct due date.
    """
    due_date = reminder.due_date
    if due_date is None:
        return False

    if due_date > now:
        return False

    if due_date < lookback and not reminder.is_repeating:
        return False

    if reminder.last_notified_at is None:
        return True

    return reminder.last_notified_at < due_date


def compute_next_due_date(reminder: Reminder, base_due_date: datetime) -> Optional[datetime]:
    """
    Next occurrence after ``base_due_date``, or None when the reminder does
    not repeat. A custom interval that is missing, not positive or past the
    date range also counts as not repeating.

    Months and years use calendar arithmetic, clamped to the last day of the
    target month: Jan 31 + 1 month is Feb 28 (Feb 29 in leap years).
    """
    repeat_type = reminder.repeat_type

    if repeat_type == RepeatType.WEEKLY:
        step = timedelta(days=7)
    elif repeat_type == RepeatType.MONTHLY:
        step = relativedelta(months=1)
    elif repeat_type == RepeatType.YEARLY:
        step = relativedelta(years=1)
    elif repeat_type == RepeatType.CUSTOM_DAYS:
        interval = reminder.custom_days_interval
        if interval is None or interval < 1 or interval > MAX_CUSTOM_DAYS_INTERVAL:
            return None
        step = timedelta(days=interval)
    else:
        return None

    try:
        return base_due_date + step
    except (OverflowError, ValueError):
        return None


def build_schedule_patch(reminder: Reminder, now: datetime, status: SendStatus) -> ReminderPatch:
    """
    Patch that closes the current occurrence: a repeating reminder moves to
    its next due date, anything else is deactivated with its due date kept.
    """
    patch = ReminderPatch(last_notified_at=now, failed_attempts=0, last_send_status=status)

    next_due_date = compute_next_due_date(reminder, reminder.due_date or now)
    if next_due_date is not None:
        patch.due_date = next_due_date
        patch.active = True
    else:
        patch.active = False

    return patch


def needs_roll_forward(reminder: Reminder, now: datetime) -> bool:
    """True for a repeating reminder whose current occurrence was already notified"""
    return (
        reminder.is_repeating
        and reminder.due_date is not None
        and reminder.due_date <= now
        and reminder.last_notified_at is not None
        and reminder.last_notified_at >= reminder.due_date
    )


def roll_forward_due_date(reminder: Reminder, now: datetime) -> Optional[datetime]:
    """First occurrence strictly after ``now``; None if the reminder cannot repeat"""
    due_date = reminder.due_date
    if due_date is None:
        return None

    for _ in range(MAX_ROLL_FORWARD_STEPS):
        next_due_date = compute_next_due_date(reminder, due_date)
        if next_due_date is None or next_due_date <= due_date:
            return None
        due_date = next_due_date
        if due_date > now:
            return due_date

    return due_date
