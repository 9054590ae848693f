"""
Centralized Configuration for the Property Billing Service
Manages environment-specific settings and billing behaviour switches.
"""
import os


def _env_bool(name, default='false'):
    return os.environ.get(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    """Base configuration with defaults"""

    # Flask Settings
    SECRET_KEY = os.environ.get('SECRET_KEY') or os.urandom(32).hex()
    MAX_CONTENT_LENGTH = 2 * 1024 * 1024  # 2MB, billing payloads are small JSON

    # CORS Settings
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*').split(',')
    CORS_METHODS = ['GET', 'POST', 'PUT', 'DELETE', 'OPTIONS']
    CORS_ALLOW_HEADERS = ['Content-Type', 'Authorization', 'X-Requested-With']

    # Database Settings
    DATABASE_URL = os.environ.get('DATABASE_URL')
    SQLALCHEMY_ECHO = _env_bool('SQLALCHEMY_ECHO')
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True,
        'pool_recycle': 300,
    }
    AUTO_CREATE_TABLES = _env_bool('AUTO_CREATE_TABLES')
    SEED_DATABASE = _env_bool('SEED_DATABASE', 'true')

    # Billing Settings
    # Provision the legacy "Extra Charges" category (and its hourly rate) for every property
    ENABLE_LEGACY_EXTRA_CHARGES_DEFAULTS = _env_bool('ENABLE_LEGACY_EXTRA_CHARGES_DEFAULTS')
    # auto | true | false - whether billing_details has a sort_order column
    BILLING_DETAILS_SORT_ORDER = os.environ.get('BILLING_DETAILS_SORT_ORDER', 'auto')
    BILLING_AUTOSAVE_DELAY_SECONDS = float(os.environ.get('BILLING_AUTOSAVE_DELAY_SECONDS', '2.0'))
    # Reject duplicate (category, unit size) line items instead of keeping the later one
    BILLING_STRICT_NATURAL_KEYS = _env_bool('BILLING_STRICT_NATURAL_KEYS')
    # Seconds to wait for in-flight saves on flush; unset means wait indefinitely
    BILLING_SAVE_FLUSH_TIMEOUT = (
        float(os.environ['BILLING_SAVE_FLUSH_TIMEOUT'])
        if os.environ.get('BILLING_SAVE_FLUSH_TIMEOUT') else None
    )

    # Logging Configuration
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    LOG_FILE = os.environ.get('LOG_FILE', 'billing.log')
    LOG_DIR = os.environ.get('LOG_DIR', 'logs')


class DevelopmentConfig(Config):
    """Development-specific configuration"""
    DEBUG = True
    TESTING = False
    LOG_LEVEL = 'DEBUG'
    AUTO_CREATE_TABLES = True
    # Allow all CORS in development
    CORS_ORIGINS = ['*']


class ProductionConfig(Config):
    """Production-specific configuration"""
    DEBUG = False
    TESTING = False
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', 'https://localhost').split(',')
    PREFERRED_URL_SCHEME = 'https'
    SESSION_COOKIE_SECURE = True
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'


class TestingConfig(Config):
    """Testing-specific configuration"""
    DEBUG = True
    TESTING = True
    DATABASE_URL = 'sqlite://'
    AUTO_CREATE_TABLES = True
    SEED_DATABASE = True
    LOG_FILE = None
    ENABLE_LEGACY_EXTRA_CHARGES_DEFAULTS = False
    BILLING_DETAILS_SORT_ORDER = 'auto'
    BILLING_AUTOSAVE_DELAY_SECONDS = 0.05
    BILLING_STRICT_NATURAL_KEYS = False
    BILLING_SAVE_FLUSH_TIMEOUT = 5.0


# Configuration selector
config_by_name = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig,
}


def get_app_env():
    """Current environment name from FLASK_ENV"""
    return os.environ.get('FLASK_ENV', 'development').lower()


def is_production():
    return get_app_env() == 'production'


def has_database():
    """Check if DATABASE_URL is configured"""
    return bool(os.environ.get('DATABASE_URL'))


def get_config():
    """Get configuration based on FLASK_ENV environment variable"""
    return config_by_name.get(get_app_env(), DevelopmentConfig)
