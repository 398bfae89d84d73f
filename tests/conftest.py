from datetime import datetime, timezone

import pytest

from petcare import create_app, db
from petcare.schemas.reminder import DeviceToken, ReminderKey, sanitize_token_id
from petcare.services.fcm_service import MulticastResult, PushDeliveryService, TokenSendResult
from petcare.services.reminder_notification_service import ReminderNotificationService
from petcare.services.reminder_scheduler_service import ReminderSchedulerService
from petcare.services.stores import DeviceTokenStore, ReminderRecord, ReminderStore
from petcare.utils.dates import to_datetime

# Tuesday 12:00 in Istanbul
NOW = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)


class FakePushService(PushDeliveryService):
    """Records every multicast; ``errors`` maps a token to the DeliveryError it fails with"""

    def __init__(self):
        self.sent = []
        self.errors = {}

    def send_multicast(self, tokens, notification):
        self.sent.append((list(tokens), notification))
        return MulticastResult(results=[
            TokenSendResult(token=token, success=token not in self.errors, error=self.errors.get(token))
            for token in tokens
        ])


class InMemoryReminderStore(ReminderStore):

    def __init__(self):
        self.docs = {}
        self.patches = []

    def add(self, path, **data):
        self.docs[path] = data
        return path

    def fetch_due(self, now, limit):
        due = [
            (path, data) for path, data in self.docs.items()
            if data.get('active') is True and to_datetime(data.get('dueDate')) is not None
            and to_datetime(data.get('dueDate')) <= now
        ]
        due.sort(key=lambda item: to_datetime(item[1]['dueDate']))
        return [
            ReminderRecord(path=path, key=ReminderKey.from_path(path), data=dict(data))
            for path, data in due[:limit]
        ]

    def apply_patch(self, key, patch):
        self.patches.append((key, patch))
        self.docs[key.path].update(patch.to_fields())

    def count_due(self, now):
        return len(self.fetch_due(now, len(self.docs)))


class InMemoryTokenStore(DeviceTokenStore):

    def __init__(self):
        self.tokens = {}
        self.deleted = []
        self.broken_owners = set()
        self.undeletable = set()

    def add(self, owner_id, token, platform='android'):
        token_id = sanitize_token_id(token)
        self.tokens.setdefault(owner_id, {})[token_id] = DeviceToken(
            id=token_id, token=token, platform=platform, provider='fcm'
        )
        return token_id

    def list_tokens(self, owner_id):
        if owner_id in self.broken_owners:
            raise RuntimeError(f"token lookup failed for {owner_id}")
        return list(self.tokens.get(owner_id, {}).values())

    def delete_token(self, owner_id, token_id):
        if token_id in self.undeletable:
            raise RuntimeError('permission denied')
        self.tokens.get(owner_id, {}).pop(token_id, None)
        self.deleted.append((owner_id, token_id))

    def save_token(self, owner_id, payload):
        token_id = self.add(owner_id, payload.token, payload.platform)
        return self.tokens[owner_id][token_id]


def reminder_path(owner_id='user-1', pet_id='pet-1', reminder_id='rem-1'):
    return f"users/{owner_id}/pets/{pet_id}/reminders/{reminder_id}"


@pytest.fixture
def push_service():
    return FakePushService()


@pytest.fixture
def reminder_store():
    return InMemoryReminderStore()


@pytest.fixture
def token_store():
    return InMemoryTokenStore()


@pytest.fixture
def notification_service(push_service, token_store):
    return ReminderNotificationService(push_service, token_store, brand='PetCare',
                                       timezone_name='Europe/Istanbul', cleanup_workers=4)


@pytest.fixture
def scheduler(reminder_store, token_store, notification_service):
    return ReminderSchedulerService(reminder_store, token_store, notification_service,
                                    batch_limit=200, lookback_minutes=10, max_failed_attempts=12)


@pytest.fixture
def app(push_service):
    app = create_app('petcare.config.TestingConfig', push_service=push_service)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()
