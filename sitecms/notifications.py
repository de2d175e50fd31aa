import base64
import smtplib
import urllib.error
import urllib.parse
import urllib.request
from email.message import EmailMessage
from email.utils import formataddr
from html import escape

from flask import current_app

from .errors import Internal, ValidationError
from .models import ContactInfo, LANGUAGE_EN
from .utils import clean_text, is_valid_email


def _safe_header_value(value, max_length=240):
    # Prevent header injection by stripping CR/LF and collapsing whitespace.
    cleaned = ' '.join((value or '').replace('\r', ' ').replace('\n', ' ').split())
    return cleaned[:max_length]


def _mailgun_configured():
    return bool(
        (current_app.config.get('MAILGUN_API_KEY') or '').strip()
        and (current_app.config.get('MAILGUN_DOMAIN') or '').strip()
    )


def email_configured():
    smtp_ready = bool((current_app.config.get('SMTP_HOST') or '').strip())
    return bool(current_app.config.get('MAIL_FROM')) and (smtp_ready or _mailgun_configured())


def _send_via_mailgun(message):
    """Send email via Mailgun HTTP API (no SMTP needed)."""
    if not _mailgun_configured():
        return None  # Not configured, fall through to SMTP
    api_key = current_app.config['MAILGUN_API_KEY'].strip()
    domain = current_app.config['MAILGUN_DOMAIN'].strip()

    url = f"https://api.mailgun.net/v3/{domain}/messages"
    fields = {
        'from': message['From'],
        'to': message['To'],
        'subject': message['Subject'],
        'text': message.get_body(('plain',)).get_content(),
    }
    html_part = message.get_body(('html',))
    if html_part is not None:
        fields['html'] = html_part.get_content()
    if message['Reply-To']:
        fields['h:Reply-To'] = message['Reply-To']
    data = urllib.parse.urlencode(fields).encode('utf-8')

    auth = base64.b64encode(f"api:{api_key}".encode()).decode()
    req = urllib.request.Request(url, data=data, method='POST')
    req.add_header('Authorization', f'Basic {auth}')

    try:
        with urllib.request.urlopen(req, timeout=15):  # nosec B310
            current_app.logger.info('Mailgun email sent successfully.')
            return True
    except urllib.error.HTTPError as e:
        error_body = e.read().decode('utf-8', errors='replace')
        current_app.logger.error('Mailgun API error %s: %s', e.code, error_body)
        return False
    except (urllib.error.URLError, OSError):
        current_app.logger.exception('Mailgun email delivery failed.')
        return False


def _send_via_smtp(message):
    """Send email via SMTP (traditional method)."""
    host = (current_app.config.get('SMTP_HOST') or '').strip()
    if not host:
        current_app.logger.info('SMTP_HOST is not configured; skipping SMTP.')
        return None  # Not configured

    port = int(current_app.config.get('SMTP_PORT') or 587)
    username = current_app.config.get('SMTP_USERNAME') or ''
    password = current_app.config.get('SMTP_PASSWORD') or ''
    use_ssl = bool(current_app.config.get('SMTP_USE_SSL'))
    use_tls = bool(current_app.config.get('SMTP_USE_TLS'))

    try:
        if use_ssl:
            smtp = smtplib.SMTP_SSL(host=host, port=port, timeout=12)
        else:
            smtp = smtplib.SMTP(host=host, port=port, timeout=12)

        with smtp:
            if use_tls and not use_ssl:
                smtp.starttls()
            if username and password:
                smtp.login(username, password)
            smtp.send_message(message)
        return True
    except (smtplib.SMTPException, OSError):
        current_app.logger.exception('SMTP email delivery failed.')
        return False


def _send_email(message):
    # Try Mailgun first, fall back to SMTP
    result = _send_via_mailgun(message)
    if result is not None:
        return result

    result = _send_via_smtp(message)
    if result is not None:
        return result

    current_app.logger.info('No email provider configured (set MAILGUN_API_KEY+MAILGUN_DOMAIN or EMAIL_HOST).')
    return False


def _contact_recipient():
    info = ContactInfo.query.filter_by(language=LANGUAGE_EN).first()
    recipient = _safe_header_value(info.email if info else '', max_length=320)
    if recipient and is_valid_email(recipient):
        return recipient
    return _safe_header_value(current_app.config.get('MAIL_FROM'), max_length=320)


def build_contact_message(name, email, subject, body, recipient):
    mail_from = _safe_header_value(current_app.config.get('MAIL_FROM'), max_length=254)
    message = EmailMessage()
    message['Subject'] = _safe_header_value(subject or f'New contact message from {name}')
    message['From'] = formataddr((_safe_header_value(name, max_length=120), mail_from))
    message['To'] = recipient
    message['Reply-To'] = email
    message.set_content(body)
    html_body = escape(body).replace('\n', '<br>')
    message.add_alternative(
        '<div>'
        '<h2>New Contact Message</h2>'
        f'<p><strong>From:</strong> {escape(name)}</p>'
        f'<p><strong>Email:</strong> {escape(email)}</p>'
        '<p><strong>Message:</strong></p>'
        f'<p>{html_body}</p>'
        '</div>',
        subtype='html',
    )
    return message


def send_contact_message(payload):
    """Forward a visitor's contact-form message to the site's contact address."""
    if not isinstance(payload, dict):
        raise ValidationError('Request body must be a JSON object')
    name = clean_text(payload.get('name'), 120)
    email = _safe_header_value(clean_text(payload.get('email'), 320), max_length=320)
    subject = clean_text(payload.get('subject'), 200)
    body = clean_text(payload.get('message'), 10000)
    if not name or not email or not body:
        raise ValidationError('Name, email, and message are required', fields=['name', 'email', 'message'])
    if not is_valid_email(email):
        raise ValidationError('Email address is not valid', fields=['email'])

    if not email_configured():
        current_app.logger.error('Email configuration missing.')
        raise Internal('Email service not configured')

    message = build_contact_message(name, email, subject, body, _contact_recipient())
    if not _send_email(message):
        raise Internal('Failed to send message')
    current_app.logger.info('Contact message forwarded to %s.', message['To'])
