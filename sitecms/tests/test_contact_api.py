import smtplib

import pytest

from sitecms.models import ContactInfo

MAIL_SETTINGS = {
    "SMTP_HOST": "smtp.example.com",
    "SMTP_PORT": 587,
    "SMTP_USE_TLS": False,
    "SMTP_USE_SSL": False,
    "MAIL_FROM": "site@example.com",
}


class FakeSMTP:
    sent = []
    fail = False

    def __init__(self, host=None, port=None, timeout=None):
        self.host = host
        self.port = port

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, traceback):
        return False

    def starttls(self):
        pass

    def login(self, username, password):
        pass

    def send_message(self, message):
        if FakeSMTP.fail:
            raise smtplib.SMTPException("relay refused")
        FakeSMTP.sent.append(message)


@pytest.fixture()
def fake_smtp(monkeypatch):
    FakeSMTP.sent = []
    FakeSMTP.fail = False
    monkeypatch.setattr("sitecms.notifications.smtplib.SMTP", FakeSMTP)
    return FakeSMTP


def admin_headers(client):
    response = client.post(
        "/api/auth/login",
        json={"email": "admin@example.com", "password": "admin-test-password"},
    )
    return {"Authorization": f"Bearer {response.get_json()['accessToken']}"}


def test_contact_info_is_missing_until_saved(client):
    response = client.get("/api/contact/info")
    assert response.status_code == 404
    assert response.get_json()["message"] == "Contact information not found"


def test_update_contact_info_creates_then_updates_one_row(client, auth_headers, app):
    response = client.put(
        "/api/contact/info",
        json={"language": "en", "phone": "+1 555", "email": "owner@example.com"},
        headers=auth_headers,
    )
    assert response.status_code == 200
    created = response.get_json()
    assert created["phone"] == "+1 555"

    response = client.put(
        "/api/contact/info",
        json={"language": "en", "address": "1 Main St", "mapUrl": "https://maps.example.com/x"},
        headers=auth_headers,
    )
    assert response.status_code == 200
    updated = response.get_json()
    assert updated["id"] == created["id"]
    assert updated["phone"] == "+1 555"
    assert updated["address"] == "1 Main St"
    assert updated["mapUrl"] == "https://maps.example.com/x"

    assert client.get("/api/contact/info").get_json()["email"] == "owner@example.com"
    assert client.get("/api/contact/info?language=he").status_code == 404
    with app.app_context():
        assert ContactInfo.query.count() == 1


def test_update_contact_info_validation_and_auth(client, auth_headers):
    response = client.put("/api/contact/info", json={"phone": "1"}, headers=auth_headers)
    assert response.status_code == 400
    assert response.get_json()["message"] == "Language is required"

    assert client.put("/api/contact/info", json={"language": "he", "phone": "1"}).status_code == 401


def test_default_contact_info_is_seeded_when_enabled(make_app):
    client = make_app({"SEED_DEFAULT_CONTACT_INFO": True}).test_client()

    hebrew = client.get("/api/contact/info?language=he").get_json()
    assert hebrew["address"] == "רחוב ראשי 123, עיר, מדינה"
    assert client.get("/api/contact/info?language=en").get_json()["email"] == "contact@example.com"


def test_send_requires_name_email_and_message(client):
    response = client.post("/api/contact/send", json={"name": "Dana", "email": "dana@example.com"})
    assert response.status_code == 400
    assert response.get_json()["message"] == "Name, email, and message are required"


def test_send_without_mail_transport_reports_server_error(client):
    response = client.post(
        "/api/contact/send",
        json={"name": "Dana", "email": "dana@example.com", "message": "Hello"},
    )
    assert response.status_code == 500
    assert response.get_json()["message"] == "Email service not configured"


def test_send_forwards_message_to_contact_email(make_app, fake_smtp):
    client = make_app(MAIL_SETTINGS).test_client()
    client.put(
        "/api/contact/info",
        json={"language": "en", "email": "owner@example.com"},
        headers=admin_headers(client),
    )

    response = client.post(
        "/api/contact/send",
        json={
            "name": "Dana",
            "email": "dana@example.com",
            "subject": "Appointment",
            "message": "Line one\nLine two",
        },
    )
    assert response.status_code == 200
    assert response.get_json()["message"] == "Message sent successfully"

    assert len(fake_smtp.sent) == 1
    message = fake_smtp.sent[0]
    assert message["To"] == "owner@example.com"
    assert message["Reply-To"] == "dana@example.com"
    assert "site@example.com" in message["From"]
    assert message["Subject"] == "Appointment"
    assert "Line one<br>Line two" in message.get_body(("html",)).get_content()


def test_send_failure_is_reported(make_app, fake_smtp):
    fake_smtp.fail = True
    client = make_app(MAIL_SETTINGS).test_client()

    response = client.post(
        "/api/contact/send",
        json={"name": "Dana", "email": "dana@example.com", "message": "Hello"},
    )
    assert response.status_code == 500
    assert response.get_json()["message"] == "Failed to send message"
