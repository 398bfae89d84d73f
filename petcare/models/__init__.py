from .pet import Pet, HealthLog, WeightEntry, Expense
from .reminder import PetReminder, DeviceToken

__all__ = ['Pet', 'HealthLog', 'WeightEntry', 'Expense', 'PetReminder', 'DeviceToken']
