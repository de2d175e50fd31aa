"""Section, article and contact-info operations over the content store.

Every operation commits once at the end. Any failure rolls the session back
and surfaces as an ``ApiError`` subclass.
"""
from contextlib import contextmanager

from flask import current_app
from slugify import slugify
from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError

from .errors import Conflict, NotFound, ValidationError, conflict_from_integrity_error
from .models import (
    db,
    Article,
    ArticleContent,
    ContactInfo,
    Section,
    SectionContent,
    HTML_SECTION_TYPES,
    SECTION_TYPE_SERVICES,
)
from .services_codec import (
    KNOWN_SHAPES,
    SHAPE_UNKNOWN,
    canonicalize_services_content,
    decode_document,
    parse_services_content,
)
from .utils import clean_text, parse_bool, parse_datetime, parse_int, sanitize_html, utc_now_naive

UPSERT_INSERTS = {
    'sqlite': sqlite_insert,
    'postgresql': postgresql_insert,
}
CONTACT_FIELDS = {
    'phone': ('phone', 50),
    'email': ('email', 200),
    'whatsapp': ('whatsapp', 50),
    'address': ('address', 500),
    'mapUrl': ('map_url', 2000),
}


# -- store helpers ---------------------------------------------------------


@contextmanager
def _writing(details):
    try:
        yield
        db.session.commit()
    except IntegrityError as error:
        db.session.rollback()
        raise conflict_from_integrity_error(error, details) from error
    except Exception:
        db.session.rollback()
        raise


def upsert(model, keys, values):
    """Insert the row identified by ``keys`` or update it with ``values``.

    Uses ``INSERT ... ON CONFLICT DO UPDATE`` where the dialect has it and a
    read-then-write with one retry elsewhere. Only the keys present in
    ``values`` change on an existing row. Returns the refreshed ORM row.
    """
    db.session.flush()
    table = model.__table__
    insert_factory = UPSERT_INSERTS.get(db.engine.dialect.name)
    if insert_factory is not None:
        statement = insert_factory(table).values(**keys, **values)
        if values:
            updates = dict(values)
            if 'updated_at' in table.c:
                updates['updated_at'] = utc_now_naive()
            statement = statement.on_conflict_do_update(index_elements=list(keys), set_=updates)
        else:
            statement = statement.on_conflict_do_nothing(index_elements=list(keys))
        db.session.execute(statement)
        return db.session.execute(
            select(model).filter_by(**keys).execution_options(populate_existing=True)
        ).scalar_one()

    row = model.query.filter_by(**keys).first()
    if row is None:
        try:
            with db.session.begin_nested():
                row = model(**keys, **values)
                db.session.add(row)
            return row
        except IntegrityError:
            row = model.query.filter_by(**keys).one()
    for name, value in values.items():
        setattr(row, name, value)
    db.session.flush()
    return row


def _get_or_404(model, object_id, message):
    identifier = parse_int(object_id)
    row = db.session.get(model, identifier) if identifier is not None else None
    if row is None:
        raise NotFound(message)
    return row


def _require_object(payload, message='Request body must be a JSON object'):
    if not isinstance(payload, dict):
        raise ValidationError(message)
    return payload


def _require_language(value):
    language = clean_text(value, 10).lower()
    if not language:
        raise ValidationError('Each content entry requires a language', fields=['language'])
    if language not in current_app.config['SUPPORTED_LANGUAGES']:
        raise ValidationError(f'Unsupported language: {language}', fields=['language'])
    return language


def _require_contents(payload, message):
    contents = payload.get('contents')
    if not isinstance(contents, list):
        raise ValidationError(message, fields=['contents'])
    return [_require_object(entry, 'Each content entry must be an object') for entry in contents]


def _distinct_languages(entries):
    seen = set()
    for entry in entries:
        language = _require_language(entry.get('language'))
        if language in seen:
            raise Conflict('Duplicate content language', fields=['language'])
        seen.add(language)
        yield language, entry


def _optional_text(value, max_length):
    if value is None:
        return None
    return clean_text(value, max_length) or None


def _publish_flag(value, field='isPublished'):
    flag = parse_bool(value)
    if flag is None:
        raise ValidationError(f'{field} must be a boolean', fields=[field])
    return flag


def _select_contents(contents, language=None, include_all_languages=False):
    if include_all_languages:
        return list(contents)
    if language:
        return [row for row in contents if row.language == language]
    default_language = current_app.config['DEFAULT_LANGUAGE']
    for row in contents:
        if row.language == default_language:
            return [row]
    return list(contents[:1])


def _apply_content_entry(parent, model, parent_key, entry, build_values):
    """Patch a child row by id, or upsert it by (parent, language)."""
    if entry.get('id') not in (None, ''):
        row = _get_or_404(model, entry['id'], 'Content not found')
        if getattr(row, parent_key) != parent.id:
            raise NotFound('Content not found')
        values = build_values(entry, row)
        if 'language' in entry:
            values['language'] = _require_language(entry['language'])
        for name, value in values.items():
            setattr(row, name, value)
        return row
    language = _require_language(entry.get('language'))
    existing = model.query.filter_by(**{parent_key: parent.id, 'language': language}).first()
    return upsert(model, {parent_key: parent.id, 'language': language}, build_values(entry, existing))


# -- sections --------------------------------------------------------------


def _services_body(raw, section_id, title, description):
    if raw is None:
        return ''
    if isinstance(raw, str):
        raw = raw.strip()
    shape, _ = parse_services_content(raw)
    if shape == SHAPE_UNKNOWN:
        # Unrecognized text is stored as sanitized HTML and decodes to no services.
        if not isinstance(raw, str):
            raise ValidationError('Services content is not in a recognized format', fields=['content'])
        return sanitize_html(raw)
    return canonicalize_services_content(
        raw,
        section_id,
        title=title,
        description=description,
        clean_html=sanitize_html,
    )


def _section_content_values(section, entry, existing=None):
    values = {}
    if 'title' in entry:
        values['title'] = clean_text(entry['title'], 500)
    if 'subtitle' in entry:
        values['subtitle'] = clean_text(entry['subtitle'], 1000)
    if 'bottomSubtitle' in entry:
        values['bottom_subtitle'] = _optional_text(entry['bottomSubtitle'], 1000)
    if 'imageUrl' in entry:
        values['image_url'] = _optional_text(entry['imageUrl'], 500)
    if 'content' in entry:
        raw = entry['content']
        if section.type == SECTION_TYPE_SERVICES:
            title = values.get('title', getattr(existing, 'title', ''))
            description = values.get('subtitle', getattr(existing, 'subtitle', ''))
            values['content'] = _services_body(raw, section.id, title, description)
        elif section.type in HTML_SECTION_TYPES:
            values['content'] = sanitize_html(raw if isinstance(raw, str) else '')
        else:
            values['content'] = clean_text(raw, 100000)
    return values


def _decoded_services(row):
    document = decode_document(row.content, row.section_id)
    if document['shape'] == SHAPE_UNKNOWN and (row.content or '').strip():
        current_app.logger.warning(
            'Unreadable services content for section %s (%s).', row.section_id, row.language
        )
    return document['services']


def serialize_section(section, language=None, include_all_languages=False):
    contents = []
    for row in _select_contents(section.contents, language, include_all_languages):
        payload = row.to_dict()
        if section.type == SECTION_TYPE_SERVICES:
            payload['services'] = _decoded_services(row)
        contents.append(payload)
    return section.to_dict(contents)


def list_sections(language=None, section_type=None, include_unpublished=False, include_all_languages=False):
    query = Section.query
    if section_type:
        query = query.filter(Section.type == section_type)
    if not include_unpublished:
        query = query.filter(Section.is_published.is_(True))
    sections = query.order_by(Section.order_index.asc(), Section.id.asc()).all()
    return [serialize_section(section, language, include_all_languages) for section in sections]


def get_section(section_id, language=None, include_all_languages=False):
    section = _get_or_404(Section, section_id, 'Section not found')
    return serialize_section(section, language, include_all_languages)


def get_section_by_type(section_type, language=None):
    section = (
        Section.query
        .filter(Section.type == section_type, Section.is_published.is_(True))
        .order_by(Section.order_index.asc(), Section.id.asc())
        .first()
    )
    if section is None:
        raise NotFound('Section not found')
    return serialize_section(section, language)


def _section_scalars(payload, creating):
    values = {}
    if 'name' in payload or creating:
        values['name'] = clean_text(payload.get('name'), 200)
        if not values['name']:
            raise ValidationError('Name is required', fields=['name'])
    if 'type' in payload or creating:
        values['type'] = clean_text(payload.get('type'), 50).lower()
        if not values['type']:
            raise ValidationError('Type is required', fields=['type'])
    if 'orderIndex' in payload or creating:
        values['order_index'] = parse_int(payload.get('orderIndex'))
        if values['order_index'] is None:
            raise ValidationError('orderIndex must be an integer', fields=['orderIndex'])
    if 'isPublished' in payload:
        values['is_published'] = _publish_flag(payload['isPublished'])
    return values


def create_section(payload):
    payload = _require_object(payload)
    contents = _require_contents(payload, 'Name, type, orderIndex, and contents array are required')
    values = _section_scalars(payload, creating=True)
    entries = list(_distinct_languages(contents))

    with _writing('Section could not be saved'):
        section = Section(**values)
        db.session.add(section)
        db.session.flush()
        for language, entry in entries:
            section.contents.append(
                SectionContent(language=language, **_section_content_values(section, entry))
            )
    current_app.logger.info('Section %s (%s) created.', section.id, section.type)
    return serialize_section(section, include_all_languages=True)


def update_section(section_id, patch):
    section = _get_or_404(Section, section_id, 'Section not found')
    patch = _require_object(patch)
    contents = _require_contents(patch, 'contents must be an array') if 'contents' in patch else []

    with _writing('Section could not be saved'):
        for name, value in _section_scalars(patch, creating=False).items():
            setattr(section, name, value)
        for entry in contents:
            _apply_content_entry(
                section,
                SectionContent,
                'section_id',
                entry,
                lambda data, row: _section_content_values(section, data, row),
            )
    return serialize_section(section, include_all_languages=True)


def delete_section(section_id):
    section = _get_or_404(Section, section_id, 'Section not found')
    with _writing('Section could not be deleted'):
        db.session.delete(section)
    current_app.logger.info('Section %s deleted.', section_id)


def migrate_services_sections():
    """Rewrite every readable legacy services document in canonical form."""
    migrated = 0
    rows = (
        SectionContent.query
        .join(Section)
        .filter(Section.type == SECTION_TYPE_SERVICES)
        .all()
    )
    with _writing('Services content could not be migrated'):
        for row in rows:
            if decode_document(row.content, row.section_id)['shape'] not in KNOWN_SHAPES:
                continue
            canonical = _services_body(row.content, row.section_id, row.title, row.subtitle)
            if canonical != row.content:
                row.content = canonical
                migrated += 1
    return migrated


# -- articles --------------------------------------------------------------


def _article_slug(value):
    slug = slugify(clean_text(value, 300), allow_unicode=True)
    if not slug:
        raise ValidationError('Slug is required', fields=['slug'])
    return slug


def _publish_date(value):
    try:
        return parse_datetime(value)
    except (TypeError, ValueError) as error:
        raise ValidationError('publishDate must be an ISO-8601 date', fields=['publishDate']) from error


def _ensure_unique_slug(slug, article_id=None):
    clash = Article.query.filter(Article.slug == slug).first()
    if clash is not None and clash.id != article_id:
        raise Conflict('Article with this slug already exists', fields=['slug'])


def _article_content_values(entry, existing=None):
    values = {}
    if 'title' in entry:
        values['title'] = clean_text(entry['title'], 500)
    if 'excerpt' in entry:
        values['excerpt'] = clean_text(entry['excerpt'], 5000)
    if 'content' in entry:
        values['content'] = sanitize_html(entry['content'] if isinstance(entry['content'], str) else '')
    if 'imageUrl' in entry:
        values['image_url'] = _optional_text(entry['imageUrl'], 500)
    if 'pdfUrl' in entry:
        values['pdf_url'] = _optional_text(entry['pdfUrl'], 500)
    return values


def serialize_article(article, language=None, include_all_languages=False):
    contents = [row.to_dict() for row in _select_contents(article.contents, language, include_all_languages)]
    return article.to_dict(contents)


def list_articles(language=None, published=None, include_all_languages=False):
    """Articles newest first; without a language every translation is attached."""
    query = Article.query
    if published is not None:
        query = query.filter(Article.is_published.is_(bool(published)))
    articles = query.order_by(Article.publish_date.desc(), Article.id.desc()).all()
    include_all_languages = include_all_languages or not language
    return [serialize_article(article, language, include_all_languages) for article in articles]


def get_article(article_id, language=None, include_all_languages=False):
    article = _get_or_404(Article, article_id, 'Article not found')
    return serialize_article(article, language, include_all_languages)


def create_article(payload):
    payload = _require_object(payload)
    if not payload.get('slug'):
        raise ValidationError('Slug and contents array are required', fields=['slug'])
    contents = _require_contents(payload, 'Slug and contents array are required')
    slug = _article_slug(payload['slug'])
    entries = list(_distinct_languages(contents))
    is_published = _publish_flag(payload['isPublished']) if 'isPublished' in payload else False
    publish_date = _publish_date(payload.get('publishDate')) or utc_now_naive()
    _ensure_unique_slug(slug)

    with _writing('Article could not be saved'):
        article = Article(slug=slug, is_published=is_published, publish_date=publish_date)
        db.session.add(article)
        for language, entry in entries:
            article.contents.append(ArticleContent(language=language, **_article_content_values(entry)))
    current_app.logger.info('Article %s (%s) created.', article.id, article.slug)
    return serialize_article(article, include_all_languages=True)


def update_article(article_id, patch):
    article = _get_or_404(Article, article_id, 'Article not found')
    patch = _require_object(patch)
    contents = _require_contents(patch, 'contents must be an array') if 'contents' in patch else []
    values = {}
    if 'slug' in patch:
        values['slug'] = _article_slug(patch['slug'])
        _ensure_unique_slug(values['slug'], article.id)
    if 'isPublished' in patch:
        values['is_published'] = _publish_flag(patch['isPublished'])
    if 'publishDate' in patch:
        values['publish_date'] = _publish_date(patch['publishDate']) or article.publish_date

    with _writing('Article could not be saved'):
        for name, value in values.items():
            setattr(article, name, value)
        for entry in contents:
            _apply_content_entry(article, ArticleContent, 'article_id', entry, _article_content_values)
    return serialize_article(article, include_all_languages=True)


def delete_article(article_id):
    article = _get_or_404(Article, article_id, 'Article not found')
    with _writing('Article could not be deleted'):
        db.session.delete(article)
    current_app.logger.info('Article %s deleted.', article_id)


# -- contact info ----------------------------------------------------------


def get_contact_info(language=None):
    language = (language or current_app.config['DEFAULT_LANGUAGE']).strip().lower()
    info = ContactInfo.query.filter_by(language=language).first()
    if info is None:
        raise NotFound('Contact information not found')
    return info.to_dict()


def update_contact_info(payload):
    payload = _require_object(payload)
    if not payload.get('language'):
        raise ValidationError('Language is required', fields=['language'])
    language = _require_language(payload['language'])
    values = {
        column: _optional_text(payload[key], max_length)
        for key, (column, max_length) in CONTACT_FIELDS.items()
        if key in payload
    }
    with _writing('Contact information could not be saved'):
        info = upsert(ContactInfo, {'language': language}, values)
    return info.to_dict()
