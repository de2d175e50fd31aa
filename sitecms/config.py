import os
from datetime import timedelta
from urllib.parse import urlparse

basedir = os.path.abspath(os.path.dirname(__file__))


def _is_managed_runtime():
    return bool(
        os.environ.get('RAILWAY_ENVIRONMENT')
        or os.environ.get('RAILWAY_PROJECT_ID')
        or os.environ.get('RENDER')
        or os.environ.get('RENDER_SERVICE_ID')
    )


def _as_bool(value, default=False):
    if value is None:
        return default
    return str(value).strip().lower() in {'1', 'true', 'yes', 'on'}


def _as_int(value, default):
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_float(value, default):
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_list(value):
    return tuple(item.strip() for item in (value or '').split(',') if item.strip())


def _database_url():
    raw = (os.environ.get('DATABASE_URL') or '').strip()
    if raw.startswith('postgres://'):
        raw = raw.replace('postgres://', 'postgresql://', 1)
    if raw:
        return raw
    return 'sqlite:///' + os.path.join(basedir, 'site.db')


def _database_engine_options(database_url):
    if not database_url.startswith('sqlite'):
        options = {
            'pool_pre_ping': True,
            'pool_recycle': 300,
        }
        parsed = urlparse(database_url)
        if parsed.scheme.startswith('postgresql'):
            connect_timeout_seconds = max(1, _as_int(os.environ.get('DB_CONNECT_TIMEOUT_SECONDS'), 5))
            statement_timeout_ms = max(1000, _as_int(os.environ.get('DB_STATEMENT_TIMEOUT_MS'), 8000))
            options['connect_args'] = {
                'connect_timeout': connect_timeout_seconds,
                'options': f'-c statement_timeout={statement_timeout_ms}',
            }
        return options
    return {}


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or ''
    SQLALCHEMY_DATABASE_URI = _database_url()
    SQLALCHEMY_ENGINE_OPTIONS = _database_engine_options(SQLALCHEMY_DATABASE_URI)
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    DEFAULT_LANGUAGE = (os.environ.get('DEFAULT_LANGUAGE') or 'en').strip().lower()
    SUPPORTED_LANGUAGES = _as_list(os.environ.get('SUPPORTED_LANGUAGES')) or ('en', 'he')

    UPLOAD_FOLDER = (os.environ.get('UPLOAD_DIR') or '').strip() or os.path.join(basedir, 'uploads')
    UPLOAD_URL_PREFIX = '/uploads'
    MAX_UPLOAD_BYTES = max(1, _as_int(os.environ.get('MAX_FILE_SIZE'), 5 * 1024 * 1024))  # 5MB per file
    MAX_CONTENT_LENGTH = 50 * 1024 * 1024  # 50MB request body
    MAX_UPLOAD_IMAGE_PIXELS = _as_int(os.environ.get('MAX_UPLOAD_IMAGE_PIXELS'), 40_000_000)
    ALLOWED_EXTENSIONS = {'png', 'jpg', 'jpeg', 'gif', 'webp', 'pdf'}
    ALLOWED_UPLOAD_MIME_TYPES = {
        'image/png',
        'image/jpeg',
        'image/gif',
        'image/webp',
        'application/pdf',
    }

    JWT_SECRET_KEY = os.environ.get('JWT_SECRET') or ''
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(seconds=max(60, _as_int(os.environ.get('JWT_ACCESS_TOKEN_SECONDS'), 3600)))
    JWT_REFRESH_TOKEN_EXPIRES = timedelta(days=max(1, _as_int(os.environ.get('JWT_REFRESH_TOKEN_DAYS'), 30)))
    JWT_TOKEN_LOCATION = ['headers']
    ACCESS_TOKEN_COOKIE_NAME = 'accessToken'
    ADMIN_UI_PREFIX = '/admin'
    ADMIN_LOGIN_PATH = '/admin/login'

    TRUST_PROXY_HEADERS = _as_bool(os.environ.get('TRUST_PROXY_HEADERS'), _is_managed_runtime())
    CORS_ALLOWED_ORIGINS = _as_list(os.environ.get('CORS_ALLOWED_ORIGINS'))
    SESSION_COOKIE_SECURE = _as_bool(os.environ.get('SESSION_COOKIE_SECURE'), False)

    SMTP_HOST = (os.environ.get('EMAIL_HOST') or '').strip()
    SMTP_PORT = _as_int(os.environ.get('EMAIL_PORT'), 587)
    SMTP_USERNAME = (os.environ.get('EMAIL_USER') or '').strip()
    SMTP_PASSWORD = os.environ.get('EMAIL_PASS') or ''
    SMTP_USE_TLS = _as_bool(os.environ.get('EMAIL_USE_TLS'), True)
    SMTP_USE_SSL = _as_bool(os.environ.get('EMAIL_USE_SSL'), SMTP_PORT == 465)
    MAIL_FROM = (os.environ.get('EMAIL_FROM') or SMTP_USERNAME).strip()

    MAILGUN_API_KEY = (os.environ.get('MAILGUN_API_KEY') or '').strip()
    MAILGUN_DOMAIN = (os.environ.get('MAILGUN_DOMAIN') or '').strip()

    SENTRY_DSN = (os.environ.get('SENTRY_DSN') or '').strip()
    SENTRY_ENVIRONMENT = (os.environ.get('SENTRY_ENVIRONMENT') or '').strip()
    SENTRY_TRACES_SAMPLE_RATE = _as_float(os.environ.get('SENTRY_TRACES_SAMPLE_RATE'), 0.0)
    LOG_JSON = _as_bool(os.environ.get('LOG_JSON'), True)
    LOG_LEVEL = (os.environ.get('LOG_LEVEL') or 'INFO').strip().upper()

    ADMIN_EMAIL = (os.environ.get('ADMIN_EMAIL') or 'admin@example.com').strip().lower()
    ADMIN_PASSWORD = os.environ.get('ADMIN_PASSWORD') or ''
    SEED_DEFAULT_CONTACT_INFO = _as_bool(os.environ.get('SEED_DEFAULT_CONTACT_INFO'), True)
