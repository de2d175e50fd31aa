import pytest

from sitecms.admin_forms import ArticleForm, HeroForm, ServicesForm, form_for_section
from sitecms.errors import ValidationError
from sitecms.services_codec import decode_services


def hero_section():
    return {
        "id": 1,
        "type": "hero",
        "isPublished": False,
        "contents": [
            {
                "language": "en",
                "title": "Hi",
                "subtitle": "Welcome",
                "bottomSubtitle": None,
                "content": "Go",
                "imageUrl": None,
            },
            {
                "language": "he",
                "title": "שלום",
                "subtitle": "ברוכים הבאים",
                "bottomSubtitle": "תחתית",
                "content": "קדימה",
                "imageUrl": "/uploads/hero.png",
            },
        ],
    }


def services_state(english=None):
    return {
        "is_published": True,
        "services_en": english or [],
        "services_he": [
            {
                "title": "טיפול",
                "description": "תיאור",
                "cards": [{"title": "כרטיס", "content": "<p>תוכן</p>", "image_url": ""}],
            }
        ],
    }


def test_hero_form_round_trip_fills_english_from_hebrew():
    state = HeroForm.from_section(hero_section())
    assert state["image_url"] == "/uploads/hero.png"
    assert state["bottom_subtitle_en"] == ""
    assert state["is_published"] is False

    payload = form_for_section("hero", state).to_payload()
    english, hebrew = payload["contents"]

    assert payload["isPublished"] is False
    assert english == {
        "language": "en",
        "title": "Hi",
        "subtitle": "Welcome",
        "bottomSubtitle": "תחתית",
        "content": "Go",
        "imageUrl": "/uploads/hero.png",
    }
    assert hebrew["title"] == "שלום"
    assert hebrew["imageUrl"] == "/uploads/hero.png"


def test_hero_form_requires_hebrew_title():
    form = form_for_section("hero", {"title_en": "Only English"})

    with pytest.raises(ValidationError) as excinfo:
        form.to_payload()

    assert excinfo.value.message == "Please provide all required Hebrew content"
    assert excinfo.value.fields == ["title_he"]


def test_about_form_keeps_html_content():
    payload = form_for_section("about", {"content_he": "<p>עלינו</p>"}).to_payload()
    assert [entry["content"] for entry in payload["contents"]] == ["<p>עלינו</p>", "<p>עלינו</p>"]


def test_unknown_section_type_has_no_form():
    with pytest.raises(ValidationError):
        form_for_section("gallery", {})


def test_services_form_copies_hebrew_when_english_is_empty():
    payload = ServicesForm(data=services_state()).to_payload()
    english, hebrew = payload["contents"]

    assert english["title"] == "Services"
    assert hebrew["title"] == "שירותים"
    assert hebrew["subtitle"] == "השירותים שלנו"

    services = decode_services(english["content"], 3)
    assert len(services) == 1
    assert services[0]["title"] == "טיפול"
    assert services[0]["cards"][0]["content"] == "<p>תוכן</p>"
    assert decode_services(hebrew["content"], 3)[0]["cards"] == services[0]["cards"]


def test_services_form_keeps_card_images_in_parity():
    english = [
        {
            "title": "Therapy",
            "description": "",
            "cards": [{"title": "Card", "content": "", "image_url": "/uploads/card.png"}],
        }
    ]
    payload = ServicesForm(data=services_state(english)).to_payload()
    english_content, hebrew_content = (entry["content"] for entry in payload["contents"])

    english_service = decode_services(english_content, 1)[0]
    hebrew_service = decode_services(hebrew_content, 1)[0]
    assert english_service["title"] == "Therapy"
    assert english_service["description"] == "תיאור"
    assert english_service["cards"][0]["content"] == "<p>תוכן</p>"
    assert english_service["cards"][0]["imageUrl"] == "/uploads/card.png"
    assert hebrew_service["cards"][0]["imageUrl"] == "/uploads/card.png"


def test_services_form_requires_titled_hebrew_services():
    with pytest.raises(ValidationError) as excinfo:
        ServicesForm(data={"services_he": []}).to_payload()
    assert "services_he" in excinfo.value.fields

    untitled = services_state()
    untitled["services_he"][0]["title"] = " "
    with pytest.raises(ValidationError):
        ServicesForm(data=untitled).to_payload()


def test_services_form_reads_decoded_section():
    section = {
        "id": 4,
        "contents": [
            {
                "language": "he",
                "services": [
                    {
                        "id": "service-4-0",
                        "title": "טיפול",
                        "description": "",
                        "cards": [{"id": "c1", "title": "כרטיס", "content": "x", "imageUrl": "/uploads/i.png"}],
                    }
                ],
            }
        ],
    }
    state = ServicesForm.from_section(section)

    assert state["services_en"] == []
    assert state["services_he"][0]["cards"][0] == {
        "id": "c1",
        "title": "כרטיס",
        "content": "x",
        "image_url": "/uploads/i.png",
    }


def test_article_form_builds_bilingual_payload():
    article = {
        "slug": "first",
        "isPublished": True,
        "publishDate": "2024-05-01T00:00:00Z",
        "contents": [
            {"language": "he", "title": "כותרת", "excerpt": "תקציר", "content": "<p>גוף</p>", "pdfUrl": "/uploads/a.pdf"},
        ],
    }
    state = ArticleForm.from_article(article)
    assert state["publish_date"] == "2024-05-01"
    assert state["title_en"] == ""

    payload = ArticleForm(data=state).to_payload()
    english, hebrew = payload["contents"]
    assert payload["slug"] == "first"
    assert payload["isPublished"] is True
    assert payload["publishDate"] == "2024-05-01"
    assert english["title"] == "כותרת"
    assert english["pdfUrl"] == hebrew["pdfUrl"] == "/uploads/a.pdf"
    assert english["imageUrl"] == ""


def test_article_form_rejects_bad_publish_date():
    state = {
        "slug": "first",
        "publish_date": "05/01/2024",
        "title_he": "כותרת",
        "excerpt_he": "תקציר",
        "content_he": "<p>גוף</p>",
    }
    with pytest.raises(ValidationError) as excinfo:
        ArticleForm(data=state).to_payload()
    assert excinfo.value.fields == ["publish_date"]


def test_services_form_payload_is_accepted_by_the_api(client, auth_headers):
    payload = ServicesForm(data=services_state()).to_payload()
    payload.update({"name": "Services", "type": "services", "orderIndex": 3})

    response = client.post("/api/sections", json=payload, headers=auth_headers)
    assert response.status_code == 201

    section = client.get("/api/sections/type/services?language=he").get_json()
    row = section["contents"][0]
    assert row["title"] == "שירותים"
    assert row["services"][0]["cards"][0]["title"] == "כרטיס"
