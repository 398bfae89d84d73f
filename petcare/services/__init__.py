"""
Service container

Every collaborator is built once here and handed to the components that need
it. Nothing reaches for a global client, so tests can swap any piece.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from petcare.services.fcm_service import FCMService, PushDeliveryService
from petcare.services.reminder_notification_service import ReminderNotificationService
from petcare.services.reminder_scheduler_service import ReminderSchedulerService
from petcare.services.stores import DeviceTokenStore, PetContextStore, ReminderStore

logger = logging.getLogger(__name__)


@dataclass
class PetCareServices:
    reminder_store: ReminderStore
    token_store: DeviceTokenStore
    context_store: PetContextStore
    push_service: PushDeliveryService
    notification_service: ReminderNotificationService
    scheduler: ReminderSchedulerService
    summary_service: Any
    firebase_app: Optional[Any] = None


def _build_stores(config, firebase_app):
    if config['STORE_BACKEND'] == 'sql':
        from petcare.services.sql_store import SqlDeviceTokenStore, SqlPetContextStore, SqlReminderStore
        return SqlReminderStore(), SqlDeviceTokenStore(), SqlPetContextStore()

    if config['STORE_BACKEND'] != 'firestore':
        raise ValueError(f"Unknown STORE_BACKEND: {config['STORE_BACKEND']}")

    from firebase_admin import firestore
    from petcare.services.firestore_store import (
        FirestoreDeviceTokenStore, FirestorePetContextStore, FirestoreReminderStore,
    )
    client = firestore.client(app=firebase_app)
    return FirestoreReminderStore(client), FirestoreDeviceTokenStore(client), FirestorePetContextStore(client)


def build_services(app, reminder_store=None, token_store=None, context_store=None,
                   push_service=None, summary_service=None) -> PetCareServices:
    config = app.config

    firebase_app = None
    if config['STORE_BACKEND'] == 'firestore' or push_service is None:
        from petcare.utils.firebase import init_firebase_app
        firebase_app = init_firebase_app(config)

    if reminder_store is None or token_store is None or context_store is None:
        default_reminders, default_tokens, default_contexts = _build_stores(config, firebase_app)
        reminder_store = reminder_store or default_reminders
        token_store = token_store or default_tokens
        context_store = context_store or default_contexts

    if push_service is None:
        push_service = FCMService(app=firebase_app, android_channel_id=config['ANDROID_CHANNEL_ID'])

    notification_service = ReminderNotificationService(
        push_service=push_service,
        token_store=token_store,
        brand=config['NOTIFICATION_BRAND'],
        timezone_name=config['NOTIFICATION_TIMEZONE'],
        cleanup_workers=config['TOKEN_CLEANUP_WORKERS'],
    )

    scheduler = ReminderSchedulerService(
        reminder_store=reminder_store,
        token_store=token_store,
        notification_service=notification_service,
        batch_limit=config['REMINDER_BATCH_LIMIT'],
        lookback_minutes=config['REMINDER_LOOKBACK_MINUTES'],
        max_failed_attempts=config['REMINDER_MAX_FAILED_ATTEMPTS'],
        interval_minutes=config['REMINDER_SCAN_INTERVAL_MINUTES'],
        app=app,
    )

    if summary_service is None:
        from petcare.services.ai_summary_service import AISummaryService
        summary_service = AISummaryService.from_config(config)

    logger.info(f"Services initialized (store backend: {config['STORE_BACKEND']})")

    return PetCareServices(
        reminder_store=reminder_store,
        token_store=token_store,
        context_store=context_store,
        push_service=push_service,
        notification_service=notification_service,
        scheduler=scheduler,
        summary_service=summary_service,
        firebase_app=firebase_app,
    )
