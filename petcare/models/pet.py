import uuid
from datetime import datetime, timezone

from petcare import db


def _new_id():
    return uuid.uuid4().hex


def _utcnow():
    return datetime.now(timezone.utc)


class Pet(db.Model):
    __tablename__ = 'pets'

    id = db.Column(db.String(64), primary_key=True, default=_new_id)
    owner_id = db.Column(db.String(128), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False)
    species = db.Column(db.String(50), nullable=True)
    breed = db.Column(db.String(100), nullable=True)
    birth_date = db.Column(db.Date, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    reminders = db.relationship('PetReminder', backref='pet', lazy=True, cascade='all, delete-orphan')
    logs = db.relationship('HealthLog', backref='pet', lazy=True, cascade='all, delete-orphan')
    weights = db.relationship('WeightEntry', backref='pet', lazy=True, cascade='all, delete-orphan')
    expenses = db.relationship('Expense', backref='pet', lazy=True, cascade='all, delete-orphan')

    def __repr__(self):
        return f"<Pet {self.name}>"

    def to_document(self):
        return {'id': self.id, 'name': self.name, 'species': self.species, 'breed': self.breed}


class HealthLog(db.Model):
    __tablename__ = 'health_logs'

    id = db.Column(db.String(64), primary_key=True, default=_new_id)
    pet_id = db.Column(db.String(64), db.ForeignKey('pets.id', ondelete='CASCADE'), nullable=False, index=True)
    note = db.Column(db.Text, nullable=True)
    tags = db.Column(db.JSON, default=list)
    logged_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_document(self):
        return {'id': self.id, 'note': self.note, 'tags': self.tags or [], 'loggedAt': self.logged_at}


class WeightEntry(db.Model):
    __tablename__ = 'weight_entries'

    id = db.Column(db.String(64), primary_key=True, default=_new_id)
    pet_id = db.Column(db.String(64), db.ForeignKey('pets.id', ondelete='CASCADE'), nullable=False, index=True)
    value_kg = db.Column(db.Float, nullable=False)
    measured_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_document(self):
        return {'id': self.id, 'valueKg': self.value_kg, 'measuredAt': self.measured_at}


class Expense(db.Model):
    __tablename__ = 'expenses'

    id = db.Column(db.String(64), primary_key=True, default=_new_id)
    pet_id = db.Column(db.String(64), db.ForeignKey('pets.id', ondelete='CASCADE'), nullable=False, index=True)
    amount = db.Column(db.Float, nullable=False)
    currency = db.Column(db.String(3), default='TRY')
    category = db.Column(db.String(30), nullable=True)
    title = db.Column(db.String(255), nullable=True)
    expense_date = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_document(self):
        return {
            'id': self.id,
            'amount': self.amount,
            'currency': self.currency,
            'category': self.category,
            'title': self.title,
            'expenseDate': self.expense_date,
        }
