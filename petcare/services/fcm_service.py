"""
Firebase Cloud Messaging (FCM) Service
Multicast push delivery with per-token results and error classification
"""

import enum
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from firebase_admin import exceptions, messaging

logger = logging.getLogger(__name__)

# FCM accepts at most 500 tokens per multicast request
FCM_MULTICAST_LIMIT = 500


class DeliveryError(str, enum.Enum):
    NOT_REGISTERED = "not_registered"
    INVALID_TOKEN = "invalid_token"
    INVALID_ARGUMENT = "invalid_argument"
    SENDER_MISMATCH = "sender_mismatch"
    RATE_LIMITED = "rate_limited"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


# Only these mean the destination is gone for good
PERMANENT_TOKEN_ERRORS = frozenset({DeliveryError.NOT_REGISTERED, DeliveryError.INVALID_TOKEN})


@dataclass
class PushNotification:
    title: str
    body: str
    data: Dict[str, str] = field(default_factory=dict)


@dataclass
class TokenSendResult:
    token: str
    success: bool
    error: Optional[DeliveryError] = None
    error_message: Optional[str] = None
    message_id: Optional[str] = None

    @property
    def token_is_dead(self) -> bool:
        return not self.success and self.error in PERMANENT_TOKEN_ERRORS


@dataclass
class MulticastResult:
    results: List[TokenSendResult]

    @property
    def success_count(self) -> int:
        return sum(1 for result in self.results if result.success)

    @property
    def failure_count(self) -> int:
        return len(self.results) - self.success_count

    @property
    def dead_tokens(self) -> List[str]:
        return [result.token for result in self.results if result.token_is_dead]


class PushDeliveryService(ABC):

    @abstractmethod
    def send_multicast(self, tokens: List[str], notification: PushNotification) -> MulticastResult:
        """Send one notification to every token; one result per token, in order"""


def classify_send_error(error: Optional[Exception]) -> DeliveryError:
    """Map an FCM per-token exception onto a delivery error class"""
    if isinstance(error, messaging.UnregisteredError):
        return DeliveryError.NOT_REGISTERED
    if isinstance(error, messaging.SenderIdMismatchError):
        return DeliveryError.SENDER_MISMATCH
    if isinstance(error, exceptions.InvalidArgumentError):
        if 'registration token' in str(error).lower():
            return DeliveryError.INVALID_TOKEN
        return DeliveryError.INVALID_ARGUMENT
    if isinstance(error, exceptions.ResourceExhaustedError):
        return DeliveryError.RATE_LIMITED
    if isinstance(error, (exceptions.UnavailableError, exceptions.InternalError,
                          exceptions.DeadlineExceededError)):
        return DeliveryError.UNAVAILABLE
    return DeliveryError.UNKNOWN


class FCMService(PushDeliveryService):
    """Service for sending push notifications via Firebase Cloud Messaging"""

    def __init__(self, app=None, android_channel_id: str = 'petcare-reminders'):
        self.app = app
        self.android_channel_id = android_channel_id

    def _build_message(self, tokens: List[str], notification: PushNotification) -> messaging.MulticastMessage:
        return messaging.MulticastMessage(
            tokens=tokens,
            notification=messaging.Notification(
                title=notification.title,
                body=notification.body,
            ),
            data=notification.data,
            android=messaging.AndroidConfig(
                priority='high',
                notification=messaging.AndroidNotification(
                    channel_id=self.android_channel_id,
                    sound='default',
                ),
            ),
            apns=messaging.APNSConfig(
                headers={'apns-priority': '10'},
                payload=messaging.APNSPayload(aps=messaging.Aps(sound='default')),
            ),
        )

    def _send_chunk(self, tokens: List[str], notification: PushNotification) -> List[TokenSendResult]:
        try:
            response = messaging.send_each_for_multicast(
                self._build_message(tokens, notification), app=self.app
            )
        except exceptions.FirebaseError as e:
            logger.error(f"Failed to send FCM multicast notification: {e}")
            return [
                TokenSendResult(token=token, success=False,
                                error=DeliveryError.UNAVAILABLE, error_message=str(e))
                for token in tokens
            ]

        results = []
        for token, resp in zip(tokens, response.responses):
            if resp.success:
                results.append(TokenSendResult(token=token, success=True, message_id=resp.message_id))
                continue

            error = classify_send_error(resp.exception)
            logger.warning(f"Failed to send to token {token[:12]}…: {error.value} ({resp.exception})")
            results.append(TokenSendResult(
                token=token, success=False, error=error,
                error_message=str(resp.exception) if resp.exception else None,
            ))
        return results

    def send_multicast(self, tokens: List[str], notification: PushNotification) -> MulticastResult:
        if not tokens:
            return MulticastResult(results=[])

        results = []
        for start in range(0, len(tokens), FCM_MULTICAST_LIMIT):
            results.extend(self._send_chunk(tokens[start:start + FCM_MULTICAST_LIMIT], notification))

        outcome = MulticastResult(results=results)
        logger.info(f"FCM multicast sent - Success: {outcome.success_count}, Failed: {outcome.failure_count}")
        return outcome
