"""
SQLAlchemy-backed record stores for local development and tests.

Rows are exposed in the same camelCase document shape as Firestore so the
scheduler validates both through the same schemas.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import ValidationError

from petcare import db
from petcare.models import DeviceToken as DeviceTokenRow
from petcare.models import Expense, HealthLog, Pet, PetReminder, WeightEntry
from petcare.schemas.reminder import (
    DeviceToken, DeviceTokenCreate, ReminderKey, ReminderPatch, sanitize_token_id,
)
from petcare.schemas.summary import PetContext
from petcare.services.stores import (
    DeviceTokenStore, PetContextStore, ReminderRecord, ReminderStore,
)

logger = logging.getLogger(__name__)

CONTEXT_FETCH_LIMIT = 100


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


class SqlReminderStore(ReminderStore):

    def _due_query(self, now: datetime):
        return PetReminder.query.filter(
            PetReminder.active.is_(True),
            PetReminder.due_date <= _as_utc(now),
        )

    def fetch_due(self, now: datetime, limit: int) -> List[ReminderRecord]:
        rows = self._due_query(now).order_by(PetReminder.due_date.asc()).limit(limit).all()
        return [
            ReminderRecord(path=row.key.path, key=row.key, data=row.to_document())
            for row in rows
        ]

    def apply_patch(self, key: ReminderKey, patch: ReminderPatch) -> None:
        row = PetReminder.query.filter_by(
            id=key.reminder_id, owner_id=key.owner_id, pet_id=key.pet_id
        ).first()
        if row is None:
            logger.warning(f"Reminder {key.path} vanished before its patch was written")
            return

        try:
            if patch.last_notified_at is not None:
                row.last_notified_at = _as_utc(patch.last_notified_at)
            if patch.due_date is not None:
                row.due_date = _as_utc(patch.due_date)
            if patch.active is not None:
                row.active = patch.active
            if patch.failed_attempts is not None:
                row.failed_attempts = patch.failed_attempts
            if patch.last_send_status is not None:
                row.last_send_status = patch.last_send_status.value
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

    def count_due(self, now: datetime) -> int:
        return self._due_query(now).count()


class SqlDeviceTokenStore(DeviceTokenStore):

    def list_tokens(self, owner_id: str) -> List[DeviceToken]:
        rows = (DeviceTokenRow.query
                .filter_by(owner_id=owner_id)
                .order_by(DeviceTokenRow.updated_at.desc())
                .all())

        tokens = []
        for row in rows:
            try:
                tokens.append(DeviceToken(
                    id=row.token_id, token=row.token,
                    platform=row.platform, provider=row.provider,
                ))
            except ValidationError:
                logger.debug(f"Ignoring malformed device token {row.token_id} for user {owner_id}")
        return tokens

    def delete_token(self, owner_id: str, token_id: str) -> None:
        try:
            DeviceTokenRow.query.filter_by(owner_id=owner_id, token_id=token_id).delete()
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

    def save_token(self, owner_id: str, payload: DeviceTokenCreate) -> DeviceToken:
        token = payload.token.strip()
        token_id = sanitize_token_id(token)
        if not token_id:
            raise ValueError('token must be a non-empty string')

        try:
            row = DeviceTokenRow.query.filter_by(owner_id=owner_id, token_id=token_id).first()
            if row is None:
                row = DeviceTokenRow(owner_id=owner_id, token_id=token_id)
                db.session.add(row)
            row.token = token
            row.platform = payload.platform
            row.provider = payload.provider
            row.updated_at = datetime.now(timezone.utc)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        return DeviceToken(id=token_id, token=token, platform=payload.platform, provider=payload.provider)


class SqlPetContextStore(PetContextStore):

    def load_pet_context(self, owner_id: str, pet_id: str) -> Optional[PetContext]:
        pet = Pet.query.filter_by(id=pet_id, owner_id=owner_id).first()
        if pet is None:
            return None

        logs = (HealthLog.query.filter_by(pet_id=pet.id)
                .order_by(HealthLog.logged_at.desc()).limit(CONTEXT_FETCH_LIMIT).all())
        reminders = (PetReminder.query.filter_by(pet_id=pet.id)
                     .order_by(PetReminder.due_date.desc()).limit(CONTEXT_FETCH_LIMIT).all())
        weights = (WeightEntry.query.filter_by(pet_id=pet.id)
                   .order_by(WeightEntry.measured_at.desc()).limit(CONTEXT_FETCH_LIMIT).all())
        expenses = (Expense.query.filter_by(pet_id=pet.id)
                    .order_by(Expense.expense_date.desc()).limit(CONTEXT_FETCH_LIMIT).all())

        return PetContext(
            pet=pet.to_document(),
            logs=[row.to_document() for row in logs],
            reminders=[{**row.to_document(), 'id': row.id} for row in reminders],
            weights=[row.to_document() for row in weights],
            expenses=[row.to_document() for row in expenses],
        )
