import secrets

from flask import current_app

from .content import migrate_services_sections
from .models import db, ContactInfo, User, LANGUAGE_EN, LANGUAGE_HE, ROLE_ADMIN

DEFAULT_MAP_URL = (
    'https://www.google.com/maps/embed?pb=!1m18!1m12!1m3!1d3381.7772705714377!2d34.7805092'
    '!3d32.0852999!2m3!1f0!2f0!3f0!3m2!1i1024!2i768!4f13.1!3m3!1m2!1s0x151d4b70e095df95'
    '%3A0xfc0b9982ce0f0a4!2sTel%20Aviv-Yafo%2C%20Israel!5e0!3m2!1sen!2sus!4v1625123456789!5m2!1sen!2sus'
)
DEFAULT_CONTACT_INFO = {
    LANGUAGE_EN: {
        'phone': '+1 (555) 123-4567',
        'email': 'contact@example.com',
        'whatsapp': '+1 (555) 123-4567',
        'address': '123 Main Street, City, Country',
        'map_url': DEFAULT_MAP_URL,
    },
    LANGUAGE_HE: {
        'phone': '+1 (555) 123-4567',
        'email': 'contact@example.com',
        'whatsapp': '+1 (555) 123-4567',
        'address': 'רחוב ראשי 123, עיר, מדינה',
        'map_url': DEFAULT_MAP_URL,
    },
}


def seed_admin_user():
    email = (current_app.config.get('ADMIN_EMAIL') or 'admin@example.com').strip().lower()
    env_password = current_app.config.get('ADMIN_PASSWORD') or ''

    existing_admin = User.query.filter_by(email=email).first()
    if existing_admin:
        # Always sync admin password with env var on startup
        if env_password and not existing_admin.check_password(env_password):
            existing_admin.set_password(env_password)
            db.session.commit()
        return existing_admin
    if User.query.first() is not None:
        return None

    if not env_password:
        env_password = secrets.token_urlsafe(16)
        print(
            '[seed] ADMIN_PASSWORD not set. Seeded admin with a random password. '
            'Set ADMIN_PASSWORD and restart to rotate it to a known value.'
        )
    admin = User(email=email, name='Administrator', role=ROLE_ADMIN)
    admin.set_password(env_password)
    db.session.add(admin)
    db.session.commit()
    current_app.logger.info('Seeded admin user %s.', admin.id)
    return admin


def seed_contact_info():
    created = 0
    for language, defaults in DEFAULT_CONTACT_INFO.items():
        if ContactInfo.query.filter_by(language=language).first() is None:
            db.session.add(ContactInfo(language=language, **defaults))
            created += 1
    if created:
        db.session.commit()
        current_app.logger.info('Created default contact information for %s language(s).', created)


def seed_database():
    seed_admin_user()
    if current_app.config.get('SEED_DEFAULT_CONTACT_INFO', True):
        seed_contact_info()
    migrated = migrate_services_sections()
    if migrated:
        current_app.logger.info('Migrated %s services content row(s) to the canonical format.', migrated)
