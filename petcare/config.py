import os
from dotenv import load_dotenv


load_dotenv()


def _env_flag(name, default='False'):
    return os.getenv(name, default).lower() in ('true', '1', 'yes')


class Config:
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key')

    # Storage backend: "firestore" in production, "sql" for local development
    STORE_BACKEND = os.getenv('STORE_BACKEND', 'firestore')
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', 'sqlite:///petcare.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True,
        'pool_recycle': 300,  # Recycle connections every 5 minutes
    }

    # Firebase Configuration
    FIREBASE_PROJECT_ID = os.getenv('FIREBASE_PROJECT_ID')
    FIREBASE_SERVICE_ACCOUNT_PATH = os.getenv('FIREBASE_SERVICE_ACCOUNT_PATH')
    FIREBASE_SERVICE_ACCOUNT_KEY = os.getenv('FIREBASE_SERVICE_ACCOUNT_KEY')

    # Reminder Scheduler
    START_SCHEDULER = _env_flag('START_SCHEDULER', 'True')
    REMINDER_SCAN_INTERVAL_MINUTES = int(os.getenv('REMINDER_SCAN_INTERVAL_MINUTES', '5'))
    REMINDER_BATCH_LIMIT = int(os.getenv('REMINDER_BATCH_LIMIT', '200'))
    REMINDER_LOOKBACK_MINUTES = int(os.getenv('REMINDER_LOOKBACK_MINUTES', '10'))
    REMINDER_MAX_FAILED_ATTEMPTS = int(os.getenv('REMINDER_MAX_FAILED_ATTEMPTS', '12'))  # 0 disables
    TOKEN_CLEANUP_WORKERS = int(os.getenv('TOKEN_CLEANUP_WORKERS', '8'))
    SCHEDULER_TRIGGER_KEY = os.getenv('SCHEDULER_TRIGGER_KEY')

    # Push payload
    NOTIFICATION_TIMEZONE = os.getenv('NOTIFICATION_TIMEZONE', 'Europe/Istanbul')
    NOTIFICATION_BRAND = os.getenv('NOTIFICATION_BRAND', 'PetCare')
    ANDROID_CHANNEL_ID = os.getenv('ANDROID_CHANNEL_ID', 'petcare-reminders')

    # OpenAI Configuration
    OPENAI_API_KEY = os.getenv('OPENAI_API_KEY')
    OPENAI_CHAT_MODEL = os.getenv('OPENAI_CHAT_MODEL', 'gpt-4o-mini')
    OPENAI_TEMPERATURE = float(os.getenv('OPENAI_TEMPERATURE', '0.3'))
    OPENAI_MAX_TOKENS = int(os.getenv('OPENAI_MAX_TOKENS', '900'))
    OPENAI_TIMEOUT_SECONDS = float(os.getenv('OPENAI_TIMEOUT_SECONDS', '20'))

    # Server Configuration
    FLASK_DEBUG = _env_flag('FLASK_DEBUG')
    FLASK_HOST = os.getenv('FLASK_HOST', '0.0.0.0')
    FLASK_PORT = int(os.getenv('FLASK_PORT', '5001'))


class TestingConfig(Config):
    TESTING = True
    STORE_BACKEND = 'sql'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_ENGINE_OPTIONS = {}
    START_SCHEDULER = False
    OPENAI_API_KEY = None
    SCHEDULER_TRIGGER_KEY = None
