import uuid

import pytest

from sitecms import create_app

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "admin-test-password"


def build_test_app(tmp_path, overrides=None):
    db_path = tmp_path / f"site_test_{uuid.uuid4().hex[:8]}.db"
    upload_path = tmp_path / f"uploads_{uuid.uuid4().hex[:8]}"

    config = {
        "TESTING": True,
        "SECRET_KEY": "test-secret-key",
        "JWT_SECRET_KEY": "test-jwt-secret-key-0123456789abcdef",
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
        "SQLALCHEMY_ENGINE_OPTIONS": {},
        "UPLOAD_FOLDER": str(upload_path),
        "ADMIN_EMAIL": ADMIN_EMAIL,
        "ADMIN_PASSWORD": ADMIN_PASSWORD,
        "SEED_DEFAULT_CONTACT_INFO": False,
        "LOG_JSON": False,
        "SENTRY_DSN": "",
        "SMTP_HOST": "",
        "MAILGUN_API_KEY": "",
        "MAILGUN_DOMAIN": "",
        "MAIL_FROM": "",
        "CORS_ALLOWED_ORIGINS": ("https://admin.example.com",),
    }
    if overrides:
        config.update(overrides)
    return create_app(config)


@pytest.fixture()
def make_app(tmp_path):
    def factory(overrides=None):
        return build_test_app(tmp_path, overrides)

    return factory


@pytest.fixture()
def app(make_app):
    return make_app()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def tokens(client):
    response = client.post("/api/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert response.status_code == 200
    return response.get_json()


@pytest.fixture()
def auth_headers(tokens):
    return {"Authorization": f"Bearer {tokens['accessToken']}"}
