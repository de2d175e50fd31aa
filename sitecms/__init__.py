import os
import re
import secrets
import json
import logging
from urllib.parse import urlencode

import sentry_sdk
from flask import Flask, g, has_request_context, jsonify, redirect, request
from sentry_sdk.integrations.flask import FlaskIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from sqlalchemy import text
from werkzeug.middleware.proxy_fix import ProxyFix

from .auth import jwt, login_manager
from .config import Config
from .errors import register_error_handlers
from .models import db
from .seed import seed_database

_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._:-]{8,80}$")
_sentry_initialized = False


class JsonLogFormatter(logging.Formatter):
    def format(self, record):
        payload = {
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'time': self.formatTime(record, self.datefmt),
        }
        if has_request_context():
            payload.update(
                {
                    'request_id': getattr(g, 'request_id', ''),
                    'method': request.method,
                    'path': request.path,
                    'remote_ip': request.remote_addr,
                }
            )
        if record.exc_info:
            payload['exc_info'] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def configure_logging(app):
    app.logger.setLevel(getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO))
    if not app.config.get('LOG_JSON', True):
        return
    formatter = JsonLogFormatter()
    for handler in app.logger.handlers:
        handler.setFormatter(formatter)
    logging.getLogger('sitecms').setLevel(app.logger.level)


def init_sentry(app):
    global _sentry_initialized
    if _sentry_initialized:
        return

    dsn = (app.config.get('SENTRY_DSN') or '').strip()
    if not dsn:
        return

    try:
        traces_sample_rate = float(app.config.get('SENTRY_TRACES_SAMPLE_RATE') or 0.0)
        sentry_sdk.init(
            dsn=dsn,
            integrations=[FlaskIntegration(), SqlalchemyIntegration()],
            traces_sample_rate=traces_sample_rate,
            environment=(app.config.get('SENTRY_ENVIRONMENT') or None),
        )
        _sentry_initialized = True
        app.logger.info('Sentry monitoring enabled.')
    except Exception:
        app.logger.exception('Failed to initialize Sentry monitoring.')


def _is_admin_page(app, path):
    prefix = app.config['ADMIN_UI_PREFIX'].rstrip('/')
    return path == prefix or path.startswith(prefix + '/')


def create_app(config_overrides=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)
    configure_logging(app)

    if not app.config.get('SECRET_KEY'):
        import warnings
        app.config['SECRET_KEY'] = secrets.token_urlsafe(32)
        warnings.warn(
            'SECRET_KEY is not set, using a random key. '
            'Issued tokens will not survive restarts. '
            'Set the SECRET_KEY environment variable for production.',
            stacklevel=2,
        )
    if not app.config.get('JWT_SECRET_KEY'):
        app.config['JWT_SECRET_KEY'] = app.config['SECRET_KEY']

    if app.config.get('TRUST_PROXY_HEADERS'):
        # Only trust one proxy hop (the platform edge) when explicitly enabled.
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)

    init_sentry(app)
    os.makedirs(app.config['UPLOAD_FOLDER'], exist_ok=True)

    db.init_app(app)
    login_manager.init_app(app)
    jwt.init_app(app)
    register_error_handlers(app)

    @app.before_request
    def assign_request_id():
        incoming = (request.headers.get('X-Request-ID') or '').strip()
        if _REQUEST_ID_RE.match(incoming):
            g.request_id = incoming
        else:
            g.request_id = secrets.token_hex(16)

    @app.before_request
    def guard_admin_pages():
        if not _is_admin_page(app, request.path):
            return None
        login_path = app.config['ADMIN_LOGIN_PATH']
        if request.path.rstrip('/') == login_path.rstrip('/'):
            return None
        if request.cookies.get(app.config['ACCESS_TOKEN_COOKIE_NAME']):
            return None
        return redirect(f"{login_path}?{urlencode({'redirect': request.path})}")

    @app.after_request
    def add_security_headers(response):
        response.headers['X-Request-ID'] = getattr(g, 'request_id', '')
        response.headers.setdefault('X-Content-Type-Options', 'nosniff')
        response.headers.setdefault('X-Frame-Options', 'DENY')
        response.headers.setdefault('Referrer-Policy', 'strict-origin-when-cross-origin')
        response.headers.setdefault('Cross-Origin-Resource-Policy', 'same-site')
        if request.path.startswith('/api/') or _is_admin_page(app, request.path):
            response.headers.setdefault('Cache-Control', 'no-store')
            response.headers.setdefault('X-Robots-Tag', 'noindex, nofollow, noarchive')
        elif request.path.startswith(app.config['UPLOAD_URL_PREFIX'] + '/') and response.status_code in (200, 304):
            response.headers['Cache-Control'] = 'public, max-age=604800'

        origin = (request.headers.get('Origin') or '').strip()
        if origin and origin in app.config.get('CORS_ALLOWED_ORIGINS', ()):
            response.headers['Access-Control-Allow-Origin'] = origin
            response.headers['Access-Control-Allow-Headers'] = 'Authorization, Content-Type, X-Request-ID'
            response.headers['Access-Control-Allow-Methods'] = 'GET, POST, PUT, DELETE, OPTIONS'
            response.headers['Access-Control-Allow-Credentials'] = 'true'
            response.headers.add('Vary', 'Origin')
        return response

    @app.get('/healthz')
    def healthz():
        try:
            db.session.execute(text('SELECT 1'))
            return {'status': 'ok'}, 200
        except Exception:
            db.session.rollback()
            app.logger.exception('Health check DB probe failed.')
            return {'status': 'degraded'}, 503

    @app.get('/api/health')
    def api_health():
        return jsonify({'status': 'ok'})

    from .routes.auth import auth_bp
    from .routes.sections import sections_bp
    from .routes.articles import articles_bp
    from .routes.contact import contact_bp
    from .routes.uploads import uploads_bp
    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(sections_bp, url_prefix='/api/sections')
    app.register_blueprint(articles_bp, url_prefix='/api/articles')
    app.register_blueprint(contact_bp, url_prefix='/api/contact')
    app.register_blueprint(uploads_bp, url_prefix=app.config['UPLOAD_URL_PREFIX'])

    with app.app_context():
        db.create_all()
        try:
            seed_database()
        except Exception:
            db.session.rollback()
            app.logger.exception('seed_database() failed, seeding skipped.')

    return app
