"""
Application configuration classes.
Provides configuration for development, production, and testing environments.
"""

import os

from dotenv import load_dotenv

load_dotenv()


class Config:
    """Base configuration class with common settings."""

    # Signing key for bearer tokens
    SECRET_KEY = os.environ.get('JWT_SECRET') or os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'
    JWT_ALGORITHM = 'HS256'
    JWT_EXPIRES_DAYS = int(os.environ.get('JWT_EXPIRES_DAYS', 7))

    # Directory holding the YAML datastore
    DATA_DIR = os.environ.get('DATA_DIR') or 'data'

    CORS_ORIGIN = os.environ.get('FRONTEND_URL') or '*'
    LOG_LEVEL = os.environ.get('LOG_LEVEL') or 'INFO'

    # Public holidays shown on the calendar
    HOLIDAY_COUNTRY = os.environ.get('HOLIDAY_COUNTRY') or 'PA'

    # Longest calendar window a single request may ask for
    CALENDAR_MAX_DAYS = int(os.environ.get('CALENDAR_MAX_DAYS', 366))

    APP_NAME = 'ReservePTY'


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    TESTING = False
    LOG_LEVEL = os.environ.get('LOG_LEVEL') or 'DEBUG'


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    TESTING = False

    @classmethod
    def validate(cls) -> None:
        """Validate that required production environment variables are set."""
        secret_key = os.environ.get('JWT_SECRET') or os.environ.get('SECRET_KEY')
        if not secret_key:
            raise ValueError("JWT_SECRET environment variable must be set in production")
        if len(secret_key) < 32:
            raise ValueError("JWT_SECRET must be at least 32 characters in production")
        if not os.environ.get('DATA_DIR'):
            raise ValueError("DATA_DIR environment variable must be set in production")


class TestConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    DEBUG = True
    SECRET_KEY = 'test-secret-key-with-at-least-32-characters'
    LOG_LEVEL = 'WARNING'


config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'test': TestConfig,
    'default': DevelopmentConfig
}


def get_config(config_name=None):
    """Return the configuration class for ``config_name`` or ``RESERVEPTY_ENV``."""
    if config_name is None:
        config_name = os.environ.get('RESERVEPTY_ENV', 'default')
    return config.get(config_name, config['default'])
