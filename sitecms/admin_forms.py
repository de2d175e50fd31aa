"""Admin editing forms for each section type and for articles.

Each form maps an API record to a flat form state (``from_section`` /
``from_article``) and back to the payload accepted by the section and article
write operations (``to_payload``). Hebrew text is required; English text left
empty falls back to the Hebrew value when the payload is built.
"""
from wtforms import BooleanField, FieldList, Form, FormField, StringField, TextAreaField
from wtforms.validators import DataRequired, Length, Optional
from wtforms.validators import ValidationError as FieldValidationError

from .errors import ValidationError
from .models import (
    LANGUAGE_EN,
    LANGUAGE_HE,
    SECTION_TYPE_ABOUT,
    SECTION_TYPE_HEADER,
    SECTION_TYPE_HERO,
    SECTION_TYPE_SERVICES,
)
from .services_codec import decode_services, encode_services
from .utils import parse_datetime

FORM_LANGUAGES = (LANGUAGE_EN, LANGUAGE_HE)
SERVICES_DOCUMENT_TITLES = {
    LANGUAGE_EN: ('Services', 'Our Services'),
    LANGUAGE_HE: ('שירותים', 'השירותים שלנו'),
}


def _strip(value):
    return value.strip() if isinstance(value, str) else value


def _text(value):
    return value if isinstance(value, str) else ''


def _rows_by_language(record):
    rows = {}
    for row in (record or {}).get('contents') or []:
        if isinstance(row, dict) and row.get('language') not in rows:
            rows[row.get('language')] = row
    return rows


def _shared_value(rows, key):
    """Hebrew wins, then English, for fields kept identical across languages."""
    for language in (LANGUAGE_HE, LANGUAGE_EN):
        value = _text((rows.get(language) or {}).get(key))
        if value:
            return value
    return ''


class PayloadForm(Form):
    error_message = 'Please provide all required Hebrew content'

    def ensure_valid(self):
        if not self.validate():
            raise ValidationError(self.error_message, details=self.errors, fields=sorted(self.errors))


class BilingualSectionForm(PayloadForm):
    """Section form whose text fields come in ``<stem>_en`` / ``<stem>_he`` pairs."""

    text_fields = {}

    is_published = BooleanField('Published', default=True)
    image_url = StringField('Image', filters=[_strip], validators=[Optional(), Length(max=500)])

    @classmethod
    def from_section(cls, section):
        rows = _rows_by_language(section)
        state = {
            'is_published': bool((section or {}).get('isPublished', True)),
            'image_url': _shared_value(rows, 'imageUrl'),
        }
        for stem, key in cls.text_fields.items():
            for language in FORM_LANGUAGES:
                state[f'{stem}_{language}'] = _text((rows.get(language) or {}).get(key))
        return state

    def _text_value(self, stem, language):
        value = _text(self[f'{stem}_{language}'].data)
        if language == LANGUAGE_EN and not value.strip():
            value = _text(self[f'{stem}_{LANGUAGE_HE}'].data)
        return value

    def to_payload(self):
        self.ensure_valid()
        contents = []
        for language in FORM_LANGUAGES:
            entry = {'language': language}
            for stem, key in self.text_fields.items():
                entry[key] = self._text_value(stem, language)
            entry['imageUrl'] = self.image_url.data or ''
            contents.append(entry)
        return {'isPublished': bool(self.is_published.data), 'contents': contents}


class HeroForm(BilingualSectionForm):
    # Button text is stored in the content column.
    text_fields = {
        'title': 'title',
        'subtitle': 'subtitle',
        'bottom_subtitle': 'bottomSubtitle',
        'button_text': 'content',
    }

    title_en = StringField('Title (English)', filters=[_strip], validators=[Length(max=500)])
    title_he = StringField('Title (Hebrew)', filters=[_strip], validators=[DataRequired(), Length(max=500)])
    subtitle_en = StringField('Subtitle (English)', filters=[_strip], validators=[Length(max=1000)])
    subtitle_he = StringField('Subtitle (Hebrew)', filters=[_strip], validators=[Length(max=1000)])
    bottom_subtitle_en = StringField('Bottom subtitle (English)', filters=[_strip], validators=[Length(max=1000)])
    bottom_subtitle_he = StringField('Bottom subtitle (Hebrew)', filters=[_strip], validators=[Length(max=1000)])
    button_text_en = StringField('Button text (English)', filters=[_strip], validators=[Length(max=200)])
    button_text_he = StringField('Button text (Hebrew)', filters=[_strip], validators=[Length(max=200)])


class HeaderForm(BilingualSectionForm):
    text_fields = {
        'title': 'title',
        'subtitle': 'subtitle',
    }

    title_en = StringField('Title (English)', filters=[_strip], validators=[Length(max=500)])
    title_he = StringField('Title (Hebrew)', filters=[_strip], validators=[DataRequired(), Length(max=500)])
    subtitle_en = StringField('Subtitle (English)', filters=[_strip], validators=[Length(max=1000)])
    subtitle_he = StringField('Subtitle (Hebrew)', filters=[_strip], validators=[Length(max=1000)])


class AboutForm(BilingualSectionForm):
    text_fields = {
        'content': 'content',
    }

    content_en = TextAreaField('Content (English)')
    content_he = TextAreaField('Content (Hebrew)', validators=[DataRequired()])


class ServiceCardForm(Form):
    id = StringField(filters=[_strip])
    title = StringField('Card title', filters=[_strip], validators=[Length(max=500)])
    content = TextAreaField('Card content')
    image_url = StringField('Card image', filters=[_strip], validators=[Optional(), Length(max=500)])


class ServiceSectionForm(Form):
    id = StringField(filters=[_strip])
    title = StringField('Service title', filters=[_strip], validators=[Length(max=500)])
    description = TextAreaField('Service description')
    cards = FieldList(FormField(ServiceCardForm))


def _form_sections(sections):
    """Convert codec sections to the nested form data layout."""
    return [
        {
            'id': section.get('id', ''),
            'title': section.get('title', ''),
            'description': section.get('description', ''),
            'cards': [
                {
                    'id': card.get('id', ''),
                    'title': card.get('title', ''),
                    'content': card.get('content', ''),
                    'image_url': card.get('imageUrl', ''),
                }
                for card in section.get('cards') or []
            ],
        }
        for section in sections
    ]


def _codec_sections(form_sections):
    return [
        {
            'id': section.get('id') or '',
            'title': _text(section.get('title')),
            'description': _text(section.get('description')),
            'cards': [
                {
                    'id': card.get('id') or '',
                    'title': _text(card.get('title')),
                    'content': _text(card.get('content')),
                    'imageUrl': _text(card.get('image_url')),
                }
                for card in section.get('cards') or []
            ],
        }
        for section in form_sections
    ]


class ServicesForm(PayloadForm):
    is_published = BooleanField('Published', default=True)
    services_en = FieldList(FormField(ServiceSectionForm))
    services_he = FieldList(FormField(ServiceSectionForm))

    @classmethod
    def from_section(cls, section):
        rows = _rows_by_language(section)
        state = {'is_published': bool((section or {}).get('isPublished', True))}
        for language in FORM_LANGUAGES:
            row = rows.get(language) or {}
            sections = row.get('services')
            if not isinstance(sections, list):
                sections = decode_services(row.get('content'), (section or {}).get('id'))
            state[f'services_{language}'] = _form_sections(sections)
        return state

    def validate_services_he(self, field):
        if not field.entries:
            raise FieldValidationError('At least one Hebrew service is required.')
        for entry in field.entries:
            if not _text(entry.form.title.data).strip():
                raise FieldValidationError('Every Hebrew service needs a title.')

    def _aligned_sections(self):
        hebrew = _codec_sections(self.services_he.data)
        english = _codec_sections(self.services_en.data)
        if not english:
            english = [dict(section, cards=[dict(card) for card in section['cards']]) for section in hebrew]

        for index, en_section in enumerate(english):
            he_section = hebrew[index] if index < len(hebrew) else None
            if he_section is None:
                continue
            for key in ('title', 'description'):
                if not en_section[key].strip():
                    en_section[key] = he_section[key]
            for position, en_card in enumerate(en_section['cards']):
                he_card = he_section['cards'][position] if position < len(he_section['cards']) else None
                if he_card is None:
                    continue
                for key in ('title', 'content'):
                    if not en_card[key].strip():
                        en_card[key] = he_card[key]
                image = he_card['imageUrl'] or en_card['imageUrl']
                he_card['imageUrl'] = en_card['imageUrl'] = image
        return {LANGUAGE_EN: english, LANGUAGE_HE: hebrew}

    def to_payload(self):
        self.ensure_valid()
        sections = self._aligned_sections()
        contents = []
        for language in FORM_LANGUAGES:
            title, description = SERVICES_DOCUMENT_TITLES[language]
            contents.append({
                'language': language,
                'title': title,
                'subtitle': description,
                'content': encode_services(sections[language], title, description),
            })
        return {'isPublished': bool(self.is_published.data), 'contents': contents}


SECTION_FORMS = {
    SECTION_TYPE_HERO: HeroForm,
    SECTION_TYPE_HEADER: HeaderForm,
    SECTION_TYPE_ABOUT: AboutForm,
    SECTION_TYPE_SERVICES: ServicesForm,
}


def form_for_section(section_type, state=None):
    """Build the editing form registered for ``section_type`` from a flat state."""
    form_class = SECTION_FORMS.get((section_type or '').strip().lower())
    if form_class is None:
        raise ValidationError(f'No editing form for section type: {section_type}', fields=['type'])
    return form_class(data=state or {})


class ArticleForm(PayloadForm):
    text_fields = ('title', 'excerpt', 'content')

    slug = StringField('Slug', filters=[_strip], validators=[DataRequired(), Length(max=300)])
    is_published = BooleanField('Published', default=False)
    publish_date = StringField('Publish date', filters=[_strip])
    image_url = StringField('Image', filters=[_strip], validators=[Optional(), Length(max=500)])
    pdf_url = StringField('PDF', filters=[_strip], validators=[Optional(), Length(max=500)])
    title_en = StringField('Title (English)', filters=[_strip], validators=[Length(max=500)])
    title_he = StringField('Title (Hebrew)', filters=[_strip], validators=[DataRequired(), Length(max=500)])
    excerpt_en = TextAreaField('Excerpt (English)', filters=[_strip])
    excerpt_he = TextAreaField('Excerpt (Hebrew)', filters=[_strip], validators=[DataRequired()])
    content_en = TextAreaField('Content (English)')
    content_he = TextAreaField('Content (Hebrew)', validators=[DataRequired()])

    @classmethod
    def from_article(cls, article):
        article = article or {}
        rows = _rows_by_language(article)
        publish_date = _text(article.get('publishDate'))
        state = {
            'slug': _text(article.get('slug')),
            'is_published': bool(article.get('isPublished', False)),
            'publish_date': publish_date[:10],
            'image_url': _shared_value(rows, 'imageUrl'),
            'pdf_url': _shared_value(rows, 'pdfUrl'),
        }
        for stem in cls.text_fields:
            for language in FORM_LANGUAGES:
                state[f'{stem}_{language}'] = _text((rows.get(language) or {}).get(stem))
        return state

    def validate_publish_date(self, field):
        if not field.data:
            return
        try:
            parse_datetime(field.data)
        except ValueError as error:
            raise FieldValidationError('Publish date must be in YYYY-MM-DD format.') from error

    def to_payload(self):
        self.ensure_valid()
        contents = []
        for language in FORM_LANGUAGES:
            entry = {'language': language}
            for stem in self.text_fields:
                value = _text(self[f'{stem}_{language}'].data)
                if language == LANGUAGE_EN and not value.strip():
                    value = _text(self[f'{stem}_{LANGUAGE_HE}'].data)
                entry[stem] = value
            entry['imageUrl'] = self.image_url.data or ''
            entry['pdfUrl'] = self.pdf_url.data or ''
            contents.append(entry)
        payload = {
            'slug': self.slug.data,
            'isPublished': bool(self.is_published.data),
            'contents': contents,
        }
        if self.publish_date.data:
            payload['publishDate'] = self.publish_date.data
        return payload
