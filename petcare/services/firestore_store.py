"""
Firestore-backed record stores

Layout:
    users/{uid}/deviceTokens/{tokenId}
    users/{uid}/pets/{petId}
    users/{uid}/pets/{petId}/{reminders|logs|weights|expenses}/{id}

The due-reminder query runs on the ``reminders`` collection group and needs
a composite index on (active, dueDate).
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from firebase_admin import firestore
from google.cloud.firestore_v1.base_query import FieldFilter
from pydantic import ValidationError

from petcare.schemas.reminder import (
    DeviceToken, DeviceTokenCreate, ReminderKey, ReminderPatch, sanitize_token_id,
)
from petcare.schemas.summary import PetContext
from petcare.services.stores import (
    DeviceTokenStore, PetContextStore, ReminderRecord, ReminderStore,
)

logger = logging.getLogger(__name__)

# Records read per collection when assembling an assistant summary
CONTEXT_FETCH_LIMIT = 100


class FirestoreReminderStore(ReminderStore):

    def __init__(self, client):
        self.client = client

    def _due_query(self, now: datetime):
        return (
            self.client.collection_group('reminders')
            .where(filter=FieldFilter('active', '==', True))
            .where(filter=FieldFilter('dueDate', '<=', now))
        )

    def fetch_due(self, now: datetime, limit: int) -> List[ReminderRecord]:
        query = (
            self._due_query(now)
            .order_by('dueDate', direction=firestore.Query.ASCENDING)
            .limit(limit)
        )

        records = []
        for snapshot in query.stream():
            path = snapshot.reference.path
            records.append(ReminderRecord(
                path=path,
                key=ReminderKey.from_path(path),
                data=snapshot.to_dict() or {},
            ))
        return records

    def apply_patch(self, key: ReminderKey, patch: ReminderPatch) -> None:
        fields = patch.to_fields()
        fields['updatedAt'] = firestore.SERVER_TIMESTAMP
        self.client.document(key.path).set(fields, merge=True)

    def count_due(self, now: datetime) -> int:
        results = self._due_query(now).count(alias='due').get()
        return int(results[0][0].value) if results and results[0] else 0


class FirestoreDeviceTokenStore(DeviceTokenStore):

    def __init__(self, client):
        self.client = client

    def _tokens(self, owner_id: str):
        return self.client.collection('users').document(owner_id).collection('deviceTokens')

    def list_tokens(self, owner_id: str) -> List[DeviceToken]:
        tokens = []
        for snapshot in self._tokens(owner_id).stream():
            try:
                tokens.append(DeviceToken.model_validate({**(snapshot.to_dict() or {}), 'id': snapshot.id}))
            except ValidationError:
                logger.debug(f"Ignoring malformed device token {snapshot.id} for user {owner_id}")
        return tokens

    def delete_token(self, owner_id: str, token_id: str) -> None:
        self._tokens(owner_id).document(token_id).delete()

    def save_token(self, owner_id: str, payload: DeviceTokenCreate) -> DeviceToken:
        token = payload.token.strip()
        token_id = sanitize_token_id(token)
        if not token_id:
            raise ValueError('token must be a non-empty string')

        ref = self._tokens(owner_id).document(token_id)
        record = {
            'token': token,
            'platform': payload.platform,
            'provider': payload.provider,
            'updatedAt': firestore.SERVER_TIMESTAMP,
        }
        if not ref.get().exists:
            record['createdAt'] = firestore.SERVER_TIMESTAMP
        ref.set(record, merge=True)

        return DeviceToken(id=token_id, token=token, platform=payload.platform, provider=payload.provider)


class FirestorePetContextStore(PetContextStore):

    def __init__(self, client):
        self.client = client

    def _fetch(self, pet_ref, collection: str, order_field: str) -> List[Dict[str, Any]]:
        query = (
            pet_ref.collection(collection)
            .order_by(order_field, direction=firestore.Query.DESCENDING)
            .limit(CONTEXT_FETCH_LIMIT)
        )
        return [{**(doc.to_dict() or {}), 'id': doc.id} for doc in query.stream()]

    def load_pet_context(self, owner_id: str, pet_id: str) -> Optional[PetContext]:
        pet_ref = self.client.collection('users').document(owner_id).collection('pets').document(pet_id)
        pet_snapshot = pet_ref.get()
        if not pet_snapshot.exists:
            return None

        return PetContext(
            pet={**(pet_snapshot.to_dict() or {}), 'id': pet_snapshot.id},
            logs=self._fetch(pet_ref, 'logs', 'loggedAt'),
            reminders=self._fetch(pet_ref, 'reminders', 'dueDate'),
            weights=self._fetch(pet_ref, 'weights', 'measuredAt'),
            expenses=self._fetch(pet_ref, 'expenses', 'expenseDate'),
        )
