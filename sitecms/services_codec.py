"""Codec for the JSON document stored in a ``services`` section's content.

The stored string has gone through several formats over time. Decoding
recognizes each of them and returns one normalized structure::

    ServiceSection = {'id', 'title', 'description', 'cards': [ServiceCard]}
    ServiceCard = {'id', 'title', 'content', 'imageUrl'}

Encoding always writes the canonical multi-service document, so every save
upgrades older data. Decoding never raises: anything unrecognized comes back
as an empty list.
"""
import json
from html import escape
from html.parser import HTMLParser

SHAPE_MULTI_SERVICE = 'multi_service'    # {"title", "description", "services": [...]}
SHAPE_SINGLE_SERVICE = 'single_service'  # {"title", "description", "cards": [...]}
SHAPE_CARD_LIST = 'card_list'            # [{"id", "title", "description", "cards"}, ...]
SHAPE_HTML_LIST = 'html_list'            # [{"id", "title", "content": "<h4>..."}, ...]
SHAPE_UNKNOWN = 'unknown'
KNOWN_SHAPES = (SHAPE_MULTI_SERVICE, SHAPE_SINGLE_SERVICE, SHAPE_CARD_LIST, SHAPE_HTML_LIST)

CARD_HEADING_TAG = 'h4'
VOID_TAGS = {
    'area', 'base', 'br', 'col', 'embed', 'hr', 'img', 'input',
    'link', 'meta', 'param', 'source', 'track', 'wbr',
}
HEADING_TAGS = {'h1', 'h2', 'h3', 'h4', 'h5', 'h6'}
CLOSES_PARAGRAPH_TAGS = HEADING_TAGS | {
    'address', 'article', 'aside', 'blockquote', 'div', 'dl', 'fieldset', 'footer', 'form',
    'header', 'hr', 'main', 'nav', 'ol', 'p', 'pre', 'section', 'table', 'ul',
}


def _text(value):
    if value is None:
        return ''
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return ''


def _opaque_id(value):
    if isinstance(value, bool):
        return ''
    if isinstance(value, (str, int)):
        return str(value).strip()
    return ''


def _is_card_entry(entry):
    return isinstance(entry, dict) and isinstance(entry.get('cards'), list)


def _is_html_entry(entry):
    return isinstance(entry, dict) and 'cards' not in entry and isinstance(entry.get('content'), str)


def detect_shape(parsed):
    """Classify an already-parsed JSON value into one of the known shapes."""
    if isinstance(parsed, dict):
        if isinstance(parsed.get('services'), list):
            return SHAPE_MULTI_SERVICE
        if isinstance(parsed.get('cards'), list) and 'title' in parsed:
            return SHAPE_SINGLE_SERVICE
        return SHAPE_UNKNOWN
    if isinstance(parsed, list) and parsed:
        if all(_is_card_entry(entry) for entry in parsed):
            return SHAPE_CARD_LIST
        if all(_is_card_entry(entry) or _is_html_entry(entry) for entry in parsed):
            return SHAPE_HTML_LIST
    return SHAPE_UNKNOWN


def parse_services_content(raw):
    """Return ``(shape, parsed)`` for a stored content value."""
    if isinstance(raw, (dict, list)):
        parsed = raw
    else:
        if not isinstance(raw, str) or not raw.strip():
            return SHAPE_UNKNOWN, None
        try:
            parsed = json.loads(raw)
        except (TypeError, ValueError):
            return SHAPE_UNKNOWN, None
    return detect_shape(parsed), parsed


def _service_id(section_id, index):
    return f'service-{section_id}-{index}'


def _normalize_card(card, service_id, position):
    return {
        'id': _opaque_id(card.get('id')) or f'{service_id}-item-{position}',
        'title': _text(card.get('title')),
        'content': _text(card.get('content')),
        'imageUrl': _text(card.get('imageUrl')),
    }


def _normalize_service(entry, service_id):
    cards = entry.get('cards') if isinstance(entry.get('cards'), list) else []
    return {
        'id': service_id,
        'title': _text(entry.get('title')),
        'description': _text(entry.get('description')),
        'cards': [
            _normalize_card(card, service_id, position)
            for position, card in enumerate((c for c in cards if isinstance(c, dict)), 1)
        ],
    }


# -- legacy HTML splitting -------------------------------------------------


class HtmlNode:
    """Element (``tag`` set) or text node (``tag`` is None) of a parsed fragment."""

    __slots__ = ('tag', 'attrs', 'children', 'text')

    def __init__(self, tag=None, attrs=None, text=''):
        self.tag = tag
        self.attrs = list(attrs or [])
        self.children = []
        self.text = text

    def text_content(self):
        if self.tag is None:
            return self.text
        return ''.join(child.text_content() for child in self.children)

    def inner_html(self):
        return ''.join(child.outer_html() for child in self.children)

    def outer_html(self):
        if self.tag is None:
            return escape(self.text, quote=False)
        attrs = ''.join(
            f' {name}' if value is None else f' {name}="{escape(value, quote=True)}"'
            for name, value in self.attrs
        )
        if self.tag in VOID_TAGS:
            return f'<{self.tag}{attrs}>'
        return f'<{self.tag}{attrs}>{self.inner_html()}</{self.tag}>'

    def find(self, tag):
        for child in self.children:
            if child.tag == tag:
                return child
            found = child.find(tag) if child.tag is not None else None
            if found is not None:
                return found
        return None


class _FragmentBuilder(HTMLParser):
    """Builds an HtmlNode tree, tolerating unclosed and stray tags."""

    def __init__(self):
        super().__init__(convert_charrefs=True)
        self.root = HtmlNode(tag='#fragment')
        self._stack = [self.root]

    def handle_starttag(self, tag, attrs):
        # An unclosed <p> ends at the next block, an unclosed heading at the next heading.
        if tag in CLOSES_PARAGRAPH_TAGS and self._stack[-1].tag == 'p':
            self._stack.pop()
        if tag in HEADING_TAGS and self._stack[-1].tag in HEADING_TAGS:
            self._stack.pop()
        node = HtmlNode(tag=tag, attrs=attrs)
        self._stack[-1].children.append(node)
        if tag not in VOID_TAGS:
            self._stack.append(node)

    def handle_startendtag(self, tag, attrs):
        self._stack[-1].children.append(HtmlNode(tag=tag, attrs=attrs))

    def handle_endtag(self, tag):
        for depth in range(len(self._stack) - 1, 0, -1):
            if self._stack[depth].tag == tag:
                del self._stack[depth:]
                return

    def handle_data(self, data):
        if data:
            self._stack[-1].children.append(HtmlNode(text=data))


def parse_html_fragment(html):
    builder = _FragmentBuilder()
    builder.feed(html or '')
    builder.close()
    return builder.root


def _split_level(root):
    """Flatten every wrapper holding a card heading so all headings share one level."""
    nodes = list(root.children)
    while True:
        wrapper = next(
            (
                index for index, node in enumerate(nodes)
                if node.tag not in (None, CARD_HEADING_TAG) and node.find(CARD_HEADING_TAG) is not None
            ),
            None,
        )
        if wrapper is None:
            break
        nodes[wrapper:wrapper + 1] = nodes[wrapper].children
    return nodes


def _describe(leading_nodes):
    for node in leading_nodes:
        if node.tag == 'p':
            return node.inner_html().strip()
        if node.tag is not None:
            paragraph = node.find('p')
            if paragraph is not None:
                return paragraph.inner_html().strip()
    return ' '.join(''.join(node.text_content() for node in leading_nodes).split())


def split_legacy_html(html, service_id, title=''):
    """Recover a ServiceSection from one legacy HTML blob.

    Every ``<h4>`` starts a card whose body runs to the next ``<h4>`` or the
    end. With no headings the whole blob is a single card.
    """
    html = html or ''
    nodes = _split_level(parse_html_fragment(html))
    headings = [index for index, node in enumerate(nodes) if node.tag == CARD_HEADING_TAG]
    leading = nodes[:headings[0]] if headings else nodes

    cards = []
    if not headings:
        cards.append({
            'id': f'{service_id}-item-1',
            'title': _text(title),
            'content': html.strip(),
            'imageUrl': '',
        })
    for position, start in enumerate(headings, 1):
        end = headings[position] if position < len(headings) else len(nodes)
        card_title = ' '.join(nodes[start].text_content().split()) or f'Item {position}'
        cards.append({
            'id': f'{service_id}-item-{position}',
            'title': card_title,
            'content': ''.join(node.outer_html() for node in nodes[start + 1:end]).strip(),
            'imageUrl': '',
        })

    return {
        'id': service_id,
        'title': _text(title),
        'description': _describe(leading),
        'cards': cards,
    }


# -- decode / encode -------------------------------------------------------


def _decode_list(entries, section_id):
    sections = []
    for index, entry in enumerate(entries):
        service_id = _opaque_id(entry.get('id')) or _service_id(section_id, index)
        if _is_card_entry(entry):
            sections.append(_normalize_service(entry, service_id))
        else:
            sections.append(split_legacy_html(entry.get('content'), service_id, entry.get('title')))
    return sections


def decode_document(raw, section_id=None):
    """Decode stored content into ``{'shape', 'title', 'description', 'services'}``."""
    shape, parsed = parse_services_content(raw)
    document = {'shape': shape, 'title': '', 'description': '', 'services': []}
    if shape == SHAPE_MULTI_SERVICE:
        document['title'] = _text(parsed.get('title'))
        document['description'] = _text(parsed.get('description'))
        entries = [entry for entry in parsed['services'] if isinstance(entry, dict)]
        document['services'] = [
            _normalize_service(entry, _service_id(section_id, index))
            for index, entry in enumerate(entries)
        ]
    elif shape == SHAPE_SINGLE_SERVICE:
        service_id = _opaque_id(section_id) or _service_id(section_id, 0)
        document['services'] = [_normalize_service(parsed, service_id)]
    elif shape in (SHAPE_CARD_LIST, SHAPE_HTML_LIST):
        document['services'] = _decode_list(parsed, section_id)
    return document


def decode_services(raw, section_id=None):
    """Return the list of ServiceSections held in ``raw`` (empty when unreadable)."""
    return decode_document(raw, section_id)['services']


def encode_services(sections, title='', description='', section_id=None):
    """Serialize sections as the canonical multi-service JSON document.

    Card ids missing from a service without an id derive from ``section_id``.
    """
    services = []
    for index, section in enumerate(sections or []):
        if not isinstance(section, dict):
            continue
        service_id = _opaque_id(section.get('id'))
        if not service_id:
            service_id = _service_id(section_id, index) if section_id is not None else f'service-{index}'
        cards = section.get('cards') if isinstance(section.get('cards'), list) else []
        services.append({
            'title': _text(section.get('title')),
            'description': _text(section.get('description')),
            'cards': [
                _normalize_card(card, service_id, position)
                for position, card in enumerate((c for c in cards if isinstance(c, dict)), 1)
            ],
        })
    document = {
        'title': _text(title),
        'description': _text(description),
        'services': services,
    }
    return json.dumps(document, ensure_ascii=False, separators=(',', ':'))


def canonicalize_services_content(raw, section_id=None, title='', description='', clean_html=None):
    """Migrate any recognized stored shape to the canonical document.

    Unrecognized content is returned untouched so a write never destroys data
    the codec cannot read. ``clean_html`` is applied to every HTML field.
    """
    document = decode_document(raw, section_id)
    if document['shape'] not in KNOWN_SHAPES:
        return raw
    sections = document['services']
    if clean_html is not None:
        for section in sections:
            section['description'] = clean_html(section['description'])
            for card in section['cards']:
                card['content'] = clean_html(card['content'])
    return encode_services(
        sections,
        document['title'] or title,
        document['description'] or description,
        section_id=section_id,
    )
