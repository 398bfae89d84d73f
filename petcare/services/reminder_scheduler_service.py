#!/usr/bin/env python3
"""
Reminder Scheduler Service
Periodically scans due reminders, pushes notifications to every device of
the owner, prunes dead tokens and advances or closes each reminder.

Re-running a scan is safe: a reminder is notified at most once per due date
(``lastNotifiedAt`` guard), so overlapping runs need no lock.
"""

import atexit
import enum
import logging
from contextlib import nullcontext
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

import pytz
from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from pydantic import ValidationError

from petcare.schemas.reminder import Reminder, ReminderKey, ReminderPatch, SendStatus
from petcare.services.reminder_notification_service import DeliveryOutcome, ReminderNotificationService
from petcare.services.reminder_rules import (
    build_schedule_patch, needs_roll_forward, roll_forward_due_date, should_notify_reminder,
)
from petcare.services.stores import DeviceTokenStore, ReminderRecord, ReminderStore
from petcare.utils.dates import utc_now

logger = logging.getLogger(__name__)

SCAN_JOB_ID = 'reminder_notifications_scan'


class ReminderOutcome(str, enum.Enum):
    SENT = "sent"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class ScanSummary:
    started_at: datetime
    processed: int = 0
    sent: int = 0
    skipped: int = 0
    failed: int = 0
    finished_at: Optional[datetime] = None

    def record(self, outcome: ReminderOutcome):
        self.processed += 1
        if outcome == ReminderOutcome.SENT:
            self.sent += 1
        elif outcome == ReminderOutcome.SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            'started_at': self.started_at.isoformat(),
            'finished_at': self.finished_at.isoformat() if self.finished_at else None,
            'processed': self.processed,
            'sent': self.sent,
            'skipped': self.skipped,
            'failed': self.failed,
        }


class ReminderSchedulerService:
    """
    Due-reminder scanner, run by APScheduler on a fixed interval
    """

    def __init__(self, reminder_store: ReminderStore, token_store: DeviceTokenStore,
                 notification_service: ReminderNotificationService,
                 batch_limit: int = 200, lookback_minutes: int = 10,
                 max_failed_attempts: int = 12, interval_minutes: int = 5, app=None):
        self.reminder_store = reminder_store
        self.token_store = token_store
        self.notification_service = notification_service
        self.batch_limit = batch_limit
        self.lookback = timedelta(minutes=lookback_minutes)
        self.max_failed_attempts = max_failed_attempts
        self.interval_minutes = interval_minutes
        self.app = app

        self.scheduler = None
        self.is_running = False
        self.last_check = None
        self.last_summary: Optional[ScanSummary] = None

    def set_app(self, app):
        """Set the Flask app instance for context management"""
        self.app = app

    # ==================== LIFECYCLE ====================

    def start(self):
        """Start the interval job"""
        if self.is_running:
            logger.warning("⚠️  Reminder scheduler is already running")
            return

        self.scheduler = BackgroundScheduler(
            jobstores={'default': MemoryJobStore()},
            executors={'default': ThreadPoolExecutor(1)},
            job_defaults={
                'coalesce': True,
                'max_instances': 1,
                'misfire_grace_time': 60,
            },
            timezone=pytz.UTC,
        )
        self.scheduler.add_listener(self._job_executed, EVENT_JOB_EXECUTED)
        self.scheduler.add_listener(self._job_error, EVENT_JOB_ERROR)
        self.scheduler.add_job(
            func=self._run_scan_job,
            trigger='interval',
            minutes=self.interval_minutes,
            id=SCAN_JOB_ID,
            replace_existing=True,
        )
        self.scheduler.start()
        self.is_running = True
        atexit.register(self.stop)

        logger.info(f"🚀 Reminder scheduler started (every {self.interval_minutes} minutes)")

    def stop(self):
        """Stop the interval job"""
        if not self.is_running:
            return

        try:
            self.scheduler.shutdown(wait=False)
            logger.info("🛑 Reminder scheduler stopped")
        except Exception as e:
            logger.error(f"❌ Error stopping reminder scheduler: {str(e)}")
        finally:
            self.is_running = False

    def _job_executed(self, event):
        logger.debug(f"✅ Job executed: {event.job_id}")

    def _job_error(self, event):
        logger.error(f"❌ Job error: {event.job_id} - {event.exception}")

    def _run_scan_job(self):
        context = self.app.app_context() if self.app is not None else nullcontext()
        with context:
            self.check_and_send_reminders()

    # ==================== SCAN LOOP ====================

    def check_and_send_reminders(self, now: Optional[datetime] = None) -> ScanSummary:
        """
        Scan the due set once. Every reminder is processed in isolation: an
        error on one is logged and counted, the rest of the batch continues.
        """
        now = now or utc_now()
        lookback = now - self.lookback
        summary = ScanSummary(started_at=now)

        logger.info(f"🔍 Checking for due reminders (now={now.isoformat()}, lookback={lookback.isoformat()})")

        records = self.reminder_store.fetch_due(now, self.batch_limit)
        if not records:
            logger.info("No due reminders found")
        else:
            for record in records:
                try:
                    outcome = self.process_reminder(record, now, lookback)
                except Exception as e:
                    outcome = ReminderOutcome.FAILED
                    logger.error(f"Reminder processing failed for {record.path}: {str(e)}", exc_info=True)
                summary.record(outcome)

            logger.info(
                f"Reminder processing completed: {summary.processed} processed, {summary.sent} sent, "
                f"{summary.skipped} skipped, {summary.failed} failed"
            )

        summary.finished_at = utc_now()
        self.last_check = now
        self.last_summary = summary
        return summary

    def process_reminder(self, record: ReminderRecord, now: datetime, lookback: datetime) -> ReminderOutcome:
        try:
            reminder = record.to_reminder()
        except ValidationError as e:
            logger.warning(f"Skipping malformed reminder {record.path}: {e.errors()}")
            return ReminderOutcome.SKIPPED

        if not should_notify_reminder(reminder, now, lookback):
            if record.key is not None and needs_roll_forward(reminder, now):
                self._roll_forward(record.key, reminder, now)
            return ReminderOutcome.SKIPPED

        key = record.key
        if key is None:
            logger.warning(f"Unexpected reminder path: {record.path}")
            return ReminderOutcome.SKIPPED

        # Computed before any push so nothing can fail between a send and its write
        schedule_patch = build_schedule_patch(reminder, now, SendStatus.SENT)

        tokens = self.token_store.list_tokens(key.owner_id)
        if not tokens:
            logger.info(f"No device tokens for user {key.owner_id}, closing reminder {key.reminder_id}")
            self.reminder_store.apply_patch(key, replace(schedule_patch, last_send_status=SendStatus.NO_DEVICES))
            return ReminderOutcome.SKIPPED

        delivery = self.notification_service.send_reminder(reminder, key, tokens)
        if delivery.success_count > 0:
            self.reminder_store.apply_patch(key, schedule_patch)
            logger.info(
                f"✅ Reminder {key.reminder_id} sent to {delivery.success_count}/{delivery.token_count} device(s)"
            )
            return ReminderOutcome.SENT

        return self._handle_failed_delivery(key, reminder, schedule_patch, delivery)

    def _handle_failed_delivery(self, key: ReminderKey, reminder: Reminder, schedule_patch: ReminderPatch,
                                delivery: DeliveryOutcome) -> ReminderOutcome:
        """Leave the reminder due for the next scan, unless it ran out of attempts"""
        attempts = reminder.failed_attempts + 1

        if self.max_failed_attempts and attempts >= self.max_failed_attempts:
            logger.warning(
                f"❌ Giving up on reminder {key.reminder_id} after {attempts} failed deliveries"
            )
            self.reminder_store.apply_patch(key, replace(schedule_patch, last_send_status=SendStatus.GAVE_UP))
        else:
            logger.warning(
                f"❌ Delivery failed on all {delivery.token_count} device(s) for reminder "
                f"{key.reminder_id} (attempt {attempts}), will retry"
            )
            self.reminder_store.apply_patch(
                key, ReminderPatch(failed_attempts=attempts, last_send_status=SendStatus.FAILED)
            )
        return ReminderOutcome.FAILED

    def _roll_forward(self, key: ReminderKey, reminder: Reminder, now: datetime):
        next_due_date = roll_forward_due_date(reminder, now)
        if next_due_date is None:
            return
        logger.info(f"🔄 Rolling reminder {key.reminder_id} forward to {next_due_date.isoformat()}")
        self.reminder_store.apply_patch(key, ReminderPatch(due_date=next_due_date))

    # ==================== MANUAL TRIGGER / STATUS ====================

    def trigger_immediate_check(self) -> Dict[str, Any]:
        """Manually trigger an immediate scan"""
        logger.info("🚀 Manual trigger: immediate reminder check")
        summary = self.check_and_send_reminders()
        return {
            'success': True,
            'message': 'Immediate reminder check completed',
            'summary': summary.to_dict(),
        }

    def get_scheduler_status(self) -> Dict[str, Any]:
        now = utc_now()
        status = {
            'scheduler_running': self.is_running,
            'interval_minutes': self.interval_minutes,
            'last_check': self.last_check.isoformat() if self.last_check else None,
            'last_summary': self.last_summary.to_dict() if self.last_summary else None,
            'next_run_time': None,
            'due_reminders': None,
            'timestamp': now.isoformat(),
        }

        if self.scheduler is not None:
            job = self.scheduler.get_job(SCAN_JOB_ID)
            if job is not None and job.next_run_time:
                status['next_run_time'] = job.next_run_time.isoformat()

        try:
            status['due_reminders'] = self.reminder_store.count_due(now)
        except Exception as e:
            logger.error(f"Error counting due reminders: {str(e)}")

        return status
