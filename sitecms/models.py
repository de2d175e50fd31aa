from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

from .utils import isoformat, utc_now_naive

db = SQLAlchemy()

LANGUAGE_EN = 'en'
LANGUAGE_HE = 'he'

SECTION_TYPE_HERO = 'hero'
SECTION_TYPE_ABOUT = 'about'
SECTION_TYPE_SERVICES = 'services'
SECTION_TYPE_HEADER = 'header'
HTML_SECTION_TYPES = {SECTION_TYPE_ABOUT}

MEDIA_TYPE_IMAGE = 'image'
MEDIA_TYPE_PDF = 'pdf'

ROLE_ADMIN = 'admin'
ROLE_EDITOR = 'editor'
USER_ROLE_CHOICES = (ROLE_ADMIN, ROLE_EDITOR)


def normalize_user_role(value, default=ROLE_ADMIN):
    candidate = (value or '').strip().lower()
    if candidate in USER_ROLE_CHOICES:
        return candidate
    return default


class User(UserMixin, db.Model):
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    name = db.Column(db.String(200), nullable=False, default='')
    role = db.Column(db.String(30), nullable=False, default=ROLE_ADMIN, index=True)
    created_at = db.Column(db.DateTime, default=utc_now_naive)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'name': self.name,
            'role': normalize_user_role(self.role),
            'createdAt': isoformat(self.created_at),
            'updatedAt': isoformat(self.updated_at),
        }


class Section(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    type = db.Column(db.String(50), nullable=False, index=True)
    order_index = db.Column(db.Integer, nullable=False, default=0)
    is_published = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at = db.Column(db.DateTime, default=utc_now_naive)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)
    contents = db.relationship(
        'SectionContent',
        backref='section',
        lazy=True,
        cascade='all, delete-orphan',
        order_by='SectionContent.id',
    )

    __table_args__ = (
        db.Index('ix_section_published_order', 'is_published', 'order_index'),
    )

    def to_dict(self, contents):
        return {
            'id': self.id,
            'name': self.name,
            'type': self.type,
            'orderIndex': self.order_index,
            'isPublished': bool(self.is_published),
            'createdAt': isoformat(self.created_at),
            'updatedAt': isoformat(self.updated_at),
            'contents': contents,
        }


class SectionContent(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    section_id = db.Column(db.Integer, db.ForeignKey('section.id', ondelete='CASCADE'), nullable=False, index=True)
    language = db.Column(db.String(10), nullable=False)
    title = db.Column(db.String(500), nullable=False, default='')
    subtitle = db.Column(db.String(1000), nullable=False, default='')
    bottom_subtitle = db.Column(db.String(1000))
    content = db.Column(db.Text, nullable=False, default='')
    image_url = db.Column(db.String(500))
    created_at = db.Column(db.DateTime, default=utc_now_naive)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)

    __table_args__ = (
        db.UniqueConstraint('section_id', 'language', name='uq_section_content_section_language'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'sectionId': self.section_id,
            'language': self.language,
            'title': self.title,
            'subtitle': self.subtitle,
            'bottomSubtitle': self.bottom_subtitle,
            'content': self.content,
            'imageUrl': self.image_url,
            'createdAt': isoformat(self.created_at),
            'updatedAt': isoformat(self.updated_at),
        }


class Article(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    slug = db.Column(db.String(300), unique=True, nullable=False)
    is_published = db.Column(db.Boolean, nullable=False, default=False, index=True)
    publish_date = db.Column(db.DateTime, default=utc_now_naive, index=True)
    created_at = db.Column(db.DateTime, default=utc_now_naive)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)
    contents = db.relationship(
        'ArticleContent',
        backref='article',
        lazy=True,
        cascade='all, delete-orphan',
        order_by='ArticleContent.id',
    )

    def to_dict(self, contents):
        return {
            'id': self.id,
            'slug': self.slug,
            'isPublished': bool(self.is_published),
            'publishDate': isoformat(self.publish_date),
            'createdAt': isoformat(self.created_at),
            'updatedAt': isoformat(self.updated_at),
            'contents': contents,
        }


class ArticleContent(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    article_id = db.Column(db.Integer, db.ForeignKey('article.id', ondelete='CASCADE'), nullable=False, index=True)
    language = db.Column(db.String(10), nullable=False)
    title = db.Column(db.String(500), nullable=False, default='')
    excerpt = db.Column(db.Text, nullable=False, default='')
    content = db.Column(db.Text, nullable=False, default='')
    image_url = db.Column(db.String(500))
    pdf_url = db.Column(db.String(500))
    created_at = db.Column(db.DateTime, default=utc_now_naive)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)

    __table_args__ = (
        db.UniqueConstraint('article_id', 'language', name='uq_article_content_article_language'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'articleId': self.article_id,
            'language': self.language,
            'title': self.title,
            'excerpt': self.excerpt,
            'content': self.content,
            'imageUrl': self.image_url,
            'pdfUrl': self.pdf_url,
            'createdAt': isoformat(self.created_at),
            'updatedAt': isoformat(self.updated_at),
        }


class ContactInfo(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    language = db.Column(db.String(10), unique=True, nullable=False)
    phone = db.Column(db.String(50))
    email = db.Column(db.String(200))
    whatsapp = db.Column(db.String(50))
    address = db.Column(db.String(500))
    map_url = db.Column(db.String(2000))
    created_at = db.Column(db.DateTime, default=utc_now_naive)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)

    def to_dict(self):
        return {
            'id': self.id,
            'language': self.language,
            'phone': self.phone,
            'email': self.email,
            'whatsapp': self.whatsapp,
            'address': self.address,
            'mapUrl': self.map_url,
            'createdAt': isoformat(self.created_at),
            'updatedAt': isoformat(self.updated_at),
        }


class Media(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    filename = db.Column(db.String(300), nullable=False)
    file_path = db.Column(db.String(500), nullable=False)
    type = db.Column(db.String(20), nullable=False, default=MEDIA_TYPE_IMAGE)
    file_size = db.Column(db.Integer)
    mime_type = db.Column(db.String(100))
    created_at = db.Column(db.DateTime, default=utc_now_naive)

    def to_dict(self):
        return {
            'id': self.id,
            'filename': self.filename,
            'path': self.file_path,
            'type': self.type,
            'size': self.file_size,
            'mimeType': self.mime_type,
            'createdAt': isoformat(self.created_at),
        }
