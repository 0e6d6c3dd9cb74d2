import os


def _database_url(default: str) -> str:
    url = os.environ.get('DATABASE_URL') or default
    if url.startswith('postgres://'):
        url = url.replace('postgres://', 'postgresql://', 1)
    return url


def _flag(name: str, default: str = '0') -> bool:
    return os.environ.get(name, default).lower() in ('1', 'true', 'yes')


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'
    SQLALCHEMY_DATABASE_URI = _database_url('sqlite:///clinic_crm.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*')

    # Outbound collaborators (auto messages + calendar bridge)
    NOTIFICATIONS_ENABLED = _flag('NOTIFICATIONS_ENABLED', '1')
    NOTIFICATION_TIMEOUT_SECONDS = int(os.environ.get('NOTIFICATION_TIMEOUT_SECONDS', '10'))
    WHATSAPP_GATEWAY_URL = os.environ.get('WHATSAPP_GATEWAY_URL')
    WHATSAPP_GATEWAY_TOKEN = os.environ.get('WHATSAPP_GATEWAY_TOKEN')
    CALENDAR_SYNC_URL = os.environ.get('CALENDAR_SYNC_URL')
    CALENDAR_SYNC_TOKEN = os.environ.get('CALENDAR_SYNC_TOKEN')

    ATTACHMENT_STORAGE_ROOT = os.environ.get('ATTACHMENT_STORAGE_ROOT') or os.path.join(
        os.getcwd(), 'storage', 'attachments'
    )
    ATTACHMENT_PUBLIC_PREFIX = os.environ.get('ATTACHMENT_PUBLIC_PREFIX', '/files')


class DevConfig(Config):
    DEBUG = True
    FLASK_ENV = 'development'


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    NOTIFICATIONS_ENABLED = False
    WHATSAPP_GATEWAY_URL = None
    CALENDAR_SYNC_URL = None


class ProdConfig(Config):
    DEBUG = False
    FLASK_ENV = 'production'


CONFIGS = {
    'development': DevConfig,
    'testing': TestConfig,
    'production': ProdConfig,
}


def get_config():
    """Pick the config class from APP_ENV (default: development)"""
    return CONFIGS.get(os.environ.get('APP_ENV', 'development').lower(), DevConfig)
