import uuid
from datetime import datetime, timezone

from petcare import db
from petcare.schemas.reminder import ReminderKey, RepeatType


def _new_id():
    return uuid.uuid4().hex


def _utcnow():
    return datetime.now(timezone.utc)


class PetReminder(db.Model):
    """
    Reminder for one pet (vaccine, medication or vet visit)
    """
    __tablename__ = 'pet_reminders'
    __table_args__ = (
        db.Index('ix_pet_reminders_active_due', 'active', 'due_date'),
    )

    id = db.Column(db.String(64), primary_key=True, default=_new_id)
    owner_id = db.Column(db.String(128), nullable=False, index=True)
    pet_id = db.Column(db.String(64), db.ForeignKey('pets.id', ondelete='CASCADE'), nullable=False, index=True)
    pet_name = db.Column(db.String(100), nullable=True)

    title = db.Column(db.String(255), nullable=False, default='')
    reminder_type = db.Column(db.String(30), nullable=False)
    due_date = db.Column(db.DateTime(timezone=True), nullable=False)
    repeat_type = db.Column(db.String(20), nullable=False, default=RepeatType.NONE.value)
    custom_days_interval = db.Column(db.Integer, nullable=True)
    active = db.Column(db.Boolean, nullable=False, default=True)

    # Scheduler bookkeeping
    last_notified_at = db.Column(db.DateTime(timezone=True), nullable=True)
    failed_attempts = db.Column(db.Integer, nullable=False, default=0)
    last_send_status = db.Column(db.String(20), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def __repr__(self):
        return f"<PetReminder(id={self.id}, type={self.reminder_type}, due={self.due_date})>"

    @property
    def key(self) -> ReminderKey:
        return ReminderKey(owner_id=self.owner_id, pet_id=self.pet_id, reminder_id=self.id)

    def to_document(self):
        """Row in the same camelCase shape the Firestore documents use"""
        return {
            'title': self.title,
            'type': self.reminder_type,
            'petName': self.pet_name,
            'dueDate': self.due_date,
            'repeatType': self.repeat_type,
            'customDaysInterval': self.custom_days_interval,
            'active': self.active,
            'lastNotifiedAt': self.last_notified_at,
            'failedAttempts': self.failed_attempts,
            'lastSendStatus': self.last_send_status,
        }


class DeviceToken(db.Model):
    """
    Registered push destination of one user
    """
    __tablename__ = 'device_tokens'
    __table_args__ = (
        db.UniqueConstraint('owner_id', 'token_id', name='uq_device_tokens_owner_token'),
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.String(128), nullable=False, index=True)
    token_id = db.Column(db.String(4096), nullable=False)
    token = db.Column(db.Text, nullable=False)
    platform = db.Column(db.String(20), nullable=True)
    provider = db.Column(db.String(20), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def __repr__(self):
        return f"<DeviceToken(owner={self.owner_id}, platform={self.platform})>"
