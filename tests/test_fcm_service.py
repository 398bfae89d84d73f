from types import SimpleNamespace

import pytest
from firebase_admin import exceptions, messaging

from petcare.services import fcm_service
from petcare.services.fcm_service import (
    DeliveryError, FCMService, PushNotification, classify_send_error,
)

NOTIFICATION = PushNotification(title='PetCare • Vaccine', body='Mavi: Rabies', data={'type': 'reminder_due'})


def ok(message_id='msg-1'):
    return SimpleNamespace(success=True, exception=None, message_id=message_id)


def failed(exception):
    return SimpleNamespace(success=False, exception=exception, message_id=None)


@pytest.fixture
def sent_messages(monkeypatch):
    """Captured MulticastMessages; set ``replies`` to control per-token responses"""
    calls = SimpleNamespace(messages=[], replies=None, error=None)

    def fake_send(message, app=None):
        calls.messages.append(message)
        if calls.error is not None:
            raise calls.error
        replies = calls.replies or [ok() for _ in message.tokens]
        return SimpleNamespace(responses=replies)

    monkeypatch.setattr(fcm_service.messaging, 'send_each_for_multicast', fake_send)
    return calls


class TestClassifySendError:

    @pytest.mark.parametrize('error, expected', [
        (messaging.UnregisteredError('Requested entity was not found.'), DeliveryError.NOT_REGISTERED),
        (exceptions.InvalidArgumentError('The registration token is not a valid FCM registration token'),
         DeliveryError.INVALID_TOKEN),
        (exceptions.InvalidArgumentError('Message payload too large'), DeliveryError.INVALID_ARGUMENT),
        (messaging.SenderIdMismatchError('sender mismatch'), DeliveryError.SENDER_MISMATCH),
        (exceptions.ResourceExhaustedError('quota'), DeliveryError.RATE_LIMITED),
        (exceptions.UnavailableError('try later'), DeliveryError.UNAVAILABLE),
        (exceptions.InternalError('oops'), DeliveryError.UNAVAILABLE),
        (RuntimeError('who knows'), DeliveryError.UNKNOWN),
        (None, DeliveryError.UNKNOWN),
    ])
    def test_mapping(self, error, expected):
        assert classify_send_error(error) == expected


class TestFCMService:

    def test_builds_high_priority_message(self, sent_messages):
        FCMService(android_channel_id='petcare-reminders').send_multicast(['tok-a'], NOTIFICATION)

        message = sent_messages.messages[0]
        assert message.tokens == ['tok-a']
        assert message.notification.title == 'PetCare • Vaccine'
        assert message.data == {'type': 'reminder_due'}
        assert message.android.priority == 'high'
        assert message.android.notification.channel_id == 'petcare-reminders'
        assert message.apns.headers == {'apns-priority': '10'}

    def test_per_token_results_keep_order(self, sent_messages):
        sent_messages.replies = [
            ok(),
            failed(messaging.UnregisteredError('gone')),
            failed(exceptions.UnavailableError('later')),
        ]

        result = FCMService().send_multicast(['a', 'b', 'c'], NOTIFICATION)

        assert result.success_count == 1
        assert result.failure_count == 2
        assert result.dead_tokens == ['b']
        assert [r.error for r in result.results] == [None, DeliveryError.NOT_REGISTERED, DeliveryError.UNAVAILABLE]

    def test_tokens_are_sent_in_chunks_of_500(self, sent_messages):
        tokens = [f"tok-{n}" for n in range(501)]

        result = FCMService().send_multicast(tokens, NOTIFICATION)

        assert [len(m.tokens) for m in sent_messages.messages] == [500, 1]
        assert result.success_count == 501

    def test_transport_failure_marks_every_token_retryable(self, sent_messages):
        sent_messages.error = exceptions.UnavailableError('FCM down')

        result = FCMService().send_multicast(['a', 'b'], NOTIFICATION)

        assert result.success_count == 0
        assert result.dead_tokens == []
        assert {r.error for r in result.results} == {DeliveryError.UNAVAILABLE}

    def test_no_tokens_sends_nothing(self, sent_messages):
        result = FCMService().send_multicast([], NOTIFICATION)

        assert result.results == []
        assert sent_messages.messages == []
