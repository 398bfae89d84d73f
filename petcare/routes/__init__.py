from .reminders import reminders_bp
from .devices import devices_bp
from .assistant import assistant_bp

__all__ = ['reminders_bp', 'devices_bp', 'assistant_bp']
