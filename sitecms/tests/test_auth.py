from datetime import timedelta

from flask_jwt_extended import create_access_token

from sitecms.models import User
from sitecms.seed import seed_admin_user

ADMIN_CREDENTIALS = {"email": "admin@example.com", "password": "admin-test-password"}


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


def test_login_returns_tokens_and_sets_cookie(client):
    response = client.post("/api/auth/login", json={"email": " Admin@Example.com ", "password": "admin-test-password"})
    assert response.status_code == 200
    body = response.get_json()
    assert set(body) == {"user", "accessToken", "refreshToken"}
    assert body["user"]["email"] == "admin@example.com"
    assert body["user"]["role"] == "admin"
    assert "passwordHash" not in body["user"]

    cookie = next(value for value in response.headers.getlist("Set-Cookie") if value.startswith("accessToken="))
    assert "HttpOnly" in cookie
    assert "SameSite=Lax" in cookie


def test_login_failures_do_not_reveal_which_part_was_wrong(client):
    wrong_password = client.post("/api/auth/login", json={"email": "admin@example.com", "password": "nope-nope"})
    unknown_email = client.post("/api/auth/login", json={"email": "ghost@example.com", "password": "nope-nope"})

    assert wrong_password.status_code == 401
    assert unknown_email.status_code == 401
    assert wrong_password.get_json() == unknown_email.get_json()
    assert wrong_password.get_json()["message"] == "Invalid credentials"


def test_login_requires_email_and_password(client):
    assert client.post("/api/auth/login", json={"email": "admin@example.com"}).status_code == 400
    assert client.post("/api/auth/login", data="not json").status_code == 400


def test_refresh_token_issues_a_working_access_token(client, tokens):
    response = client.post("/api/auth/refresh-token", json={"refreshToken": tokens["refreshToken"]})
    assert response.status_code == 200
    access_token = response.get_json()["accessToken"]

    assert client.get("/api/sections?admin=true", headers=bearer(access_token)).status_code == 200


def test_refresh_rejects_access_tokens_and_garbage(client, tokens):
    response = client.post("/api/auth/refresh-token", json={"refreshToken": tokens["accessToken"]})
    assert response.status_code == 401
    assert response.get_json()["message"] == "Invalid or expired token"

    assert client.post("/api/auth/refresh-token", json={"refreshToken": "garbage"}).status_code == 401
    assert client.post("/api/auth/refresh-token", json={}).status_code == 400


def test_refresh_token_is_not_accepted_as_bearer(client, tokens):
    assert client.get("/api/sections?admin=true", headers=bearer(tokens["refreshToken"])).status_code == 401


def test_expired_access_token_is_rejected(client, app):
    with app.app_context():
        admin = User.query.filter_by(email="admin@example.com").one()
        expired = create_access_token(identity=str(admin.id), expires_delta=timedelta(seconds=-60))

    assert client.get("/api/sections?admin=true", headers=bearer(expired)).status_code == 401


def test_register_requires_auth_and_unique_email(client, auth_headers):
    new_user = {"email": "editor@example.com", "password": "editor-password", "name": "Editor"}

    assert client.post("/api/auth/register", json=new_user).status_code == 401

    response = client.post("/api/auth/register", json=new_user, headers=auth_headers)
    assert response.status_code == 201
    assert response.get_json()["email"] == "editor@example.com"

    duplicate = client.post("/api/auth/register", json=new_user, headers=auth_headers)
    assert duplicate.status_code == 409
    assert duplicate.get_json()["message"] == "User with this email already exists"

    short = client.post(
        "/api/auth/register",
        json={"email": "short@example.com", "password": "short", "name": "Short"},
        headers=auth_headers,
    )
    assert short.status_code == 400

    login = client.post("/api/auth/login", json={"email": "editor@example.com", "password": "editor-password"})
    assert login.status_code == 200


def test_admin_pages_redirect_to_login_without_cookie(client):
    response = client.get("/admin/sections")
    assert response.status_code == 302
    assert response.headers["Location"].endswith("/admin/login?redirect=%2Fadmin%2Fsections")

    assert client.get("/admin/login").status_code == 404

    client.set_cookie("accessToken", "cookie-value")
    assert client.get("/admin/sections").status_code == 404


def test_admin_password_is_synced_from_config(make_app):
    app = make_app()
    app.config["ADMIN_PASSWORD"] = "rotated-password"
    with app.app_context():
        seed_admin_user()

    client = app.test_client()
    assert client.post("/api/auth/login", json=ADMIN_CREDENTIALS).status_code == 401
    response = client.post("/api/auth/login", json={"email": "admin@example.com", "password": "rotated-password"})
    assert response.status_code == 200


def test_health_and_security_headers(client):
    response = client.get("/api/health", headers={"X-Request-ID": "req-12345678"})
    assert response.status_code == 200
    assert response.get_json() == {"status": "ok"}
    assert response.headers["X-Request-ID"] == "req-12345678"
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"
    assert response.headers["Cache-Control"] == "no-store"

    generated = client.get("/api/health", headers={"X-Request-ID": "bad id!"})
    assert generated.headers["X-Request-ID"] != "bad id!"
    assert len(generated.headers["X-Request-ID"]) == 32

    healthz = client.get("/healthz")
    assert healthz.status_code == 200
    assert healthz.get_json() == {"status": "ok"}


def test_cors_headers_only_for_configured_origins(client):
    allowed = client.get("/api/health", headers={"Origin": "https://admin.example.com"})
    assert allowed.headers["Access-Control-Allow-Origin"] == "https://admin.example.com"

    denied = client.get("/api/health", headers={"Origin": "https://evil.example.com"})
    assert "Access-Control-Allow-Origin" not in denied.headers


def test_unknown_api_route_returns_json_error(client):
    response = client.get("/api/nothing-here")
    assert response.status_code == 404
    assert response.get_json()["error"] == "NotFound"
