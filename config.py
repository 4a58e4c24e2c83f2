"""Configuration module for the PharmaPOS Flask application."""
import os
from datetime import timedelta

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name, default='false'):
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes')


def _database_url():
    """DATABASE_URL wins; otherwise assemble it from DB_* (or POSTGRES_*) parts."""
    url = os.getenv('DATABASE_URL')
    if url:
        return url

    def part(name, fallback):
        return os.getenv(f'DB_{name}') or os.getenv(f'POSTGRES_{name}', fallback)

    return 'postgresql://{user}:{password}@{host}:{port}/{db}'.format(
        user=part('USER', 'pharmapos'),
        password=part('PASSWORD', 'pharmapos'),
        host=part('HOST', 'localhost'),
        port=part('PORT', '5432'),
        db=os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'pharmapos'),
    )


class Config:
    """Settings read once from the environment (and .env) at import time."""

    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    ENV = os.getenv('FLASK_ENV', 'development')
    DEBUG = _env_flag('FLASK_DEBUG', '1')

    # Cookies are only marked Secure behind HTTPS
    SESSION_COOKIE_SECURE = _env_flag('SESSION_COOKIE_SECURE')
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = os.getenv('SESSION_COOKIE_SAMESITE', 'Lax')
    PERMANENT_SESSION_LIFETIME = timedelta(hours=int(os.getenv('SESSION_LIFETIME_HOURS', '24')))

    SQLALCHEMY_DATABASE_URI = _database_url()
    SQLALCHEMY_ECHO = _env_flag('SQLALCHEMY_ECHO', '0')
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True,
        'pool_size': int(os.getenv('DB_POOL_SIZE', '10')),
        'max_overflow': int(os.getenv('DB_MAX_OVERFLOW', '20')),
    }
    SQLALCHEMY_SESSION_OPTIONS = {}

    # Inventory
    LOW_STOCK_THRESHOLD = int(os.getenv('LOW_STOCK_THRESHOLD', '10'))
    EXPIRY_WARNING_DAYS = int(os.getenv('EXPIRY_WARNING_DAYS', '30'))

    # Cost estimate used when a medicine has no recorded cost price
    COST_PRICE_FALLBACK_RATIO = os.getenv('COST_PRICE_FALLBACK_RATIO', '0.7')

    # Printed on receipts
    BUSINESS_NAME = os.getenv('BUSINESS_NAME', 'PharmaPOS')
    BUSINESS_ADDRESS = os.getenv('BUSINESS_ADDRESS', '')
    BUSINESS_PHONE = os.getenv('BUSINESS_PHONE', '')
    BUSINESS_EMAIL = os.getenv('BUSINESS_EMAIL', '')
    CURRENCY_SYMBOL = os.getenv('CURRENCY_SYMBOL', '₹')

    # Redis; dashboard aggregates are cached per organization
    REDIS_URL = os.getenv('REDIS_URL', 'redis://redis:6379/0')
    CACHE_ENABLED = _env_flag('CACHE_ENABLED', 'true')
    CACHE_DEFAULT_TTL = int(os.getenv('CACHE_DEFAULT_TTL', '60'))
    CACHE_DASHBOARD_TTL = int(os.getenv('CACHE_DASHBOARD_TTL', '120'))
    CACHE_KEY_PREFIX = os.getenv('CACHE_KEY_PREFIX', 'pharmapos')
