from sitecms.models import Article, ArticleContent


def article_payload(slug="first-post", **overrides):
    payload = {
        "slug": slug,
        "isPublished": True,
        "contents": [
            {"language": "en", "title": "First post", "excerpt": "Short", "content": "<p>Body</p>"},
            {"language": "he", "title": "פוסט ראשון", "excerpt": "קצר", "content": "<p>גוף</p>"},
        ],
    }
    payload.update(overrides)
    return payload


def create_article(client, auth_headers, payload):
    response = client.post("/api/articles", json=payload, headers=auth_headers)
    assert response.status_code == 201, response.get_json()
    return response.get_json()


def test_create_article_normalizes_slug_and_defaults(client, auth_headers):
    article = create_article(
        client,
        auth_headers,
        {"slug": "  My First Post ", "contents": [{"language": "en", "title": "Hello"}]},
    )

    assert article["slug"] == "my-first-post"
    assert article["isPublished"] is False
    assert article["publishDate"].endswith("Z")
    assert article["contents"][0]["title"] == "Hello"

    hebrew = create_article(client, auth_headers, article_payload(slug="מאמר ראשון"))
    assert hebrew["slug"] == "מאמר-ראשון"


def test_duplicate_slug_is_a_conflict_and_nothing_is_written(client, auth_headers, app):
    create_article(client, auth_headers, article_payload())

    response = client.post("/api/articles", json=article_payload(slug="First Post"), headers=auth_headers)
    assert response.status_code == 409
    body = response.get_json()
    assert body["message"] == "Article with this slug already exists"
    assert body["fields"] == ["slug"]

    with app.app_context():
        assert Article.query.count() == 1
        assert ArticleContent.query.count() == 2


def test_create_article_requires_slug_and_contents(client, auth_headers):
    response = client.post("/api/articles", json={"contents": []}, headers=auth_headers)
    assert response.status_code == 400
    response = client.post("/api/articles", json={"slug": "x"}, headers=auth_headers)
    assert response.status_code == 400
    assert client.post("/api/articles", json=article_payload()).status_code == 401


def test_articles_are_listed_newest_first(client, auth_headers):
    create_article(client, auth_headers, article_payload(slug="january", publishDate="2024-01-01"))
    create_article(client, auth_headers, article_payload(slug="march", publishDate="2024-03-01T09:30:00Z"))
    create_article(
        client,
        auth_headers,
        article_payload(slug="february", publishDate="2024-02-01", isPublished=False),
    )

    articles = client.get("/api/articles").get_json()
    assert [article["slug"] for article in articles] == ["march", "february", "january"]
    assert articles[0]["publishDate"] == "2024-03-01T09:30:00Z"
    assert all(len(article["contents"]) == 2 for article in articles)

    published = client.get("/api/articles?published=true&language=he").get_json()
    assert [article["slug"] for article in published] == ["march", "january"]
    assert [row["language"] for row in published[0]["contents"]] == ["he"]

    drafts = client.get("/api/articles?published=false").get_json()
    assert [article["slug"] for article in drafts] == ["february"]


def test_get_article_by_id_and_language(client, auth_headers):
    article = create_article(client, auth_headers, article_payload())

    response = client.get(f"/api/articles/{article['id']}?language=he")
    assert response.status_code == 200
    body = response.get_json()
    assert [row["title"] for row in body["contents"]] == ["פוסט ראשון"]

    assert client.get("/api/articles/9999").status_code == 404


def test_update_article_fields_and_translation(client, auth_headers):
    article = create_article(client, auth_headers, article_payload())

    response = client.put(
        f"/api/articles/{article['id']}",
        json={
            "slug": "Renamed Post",
            "isPublished": False,
            "publishDate": "2023-12-31",
            "contents": [{"language": "en", "excerpt": "Updated"}],
        },
        headers=auth_headers,
    )
    assert response.status_code == 200
    body = response.get_json()
    assert body["slug"] == "renamed-post"
    assert body["isPublished"] is False
    assert body["publishDate"] == "2023-12-31T00:00:00Z"
    rows = {row["language"]: row for row in body["contents"]}
    assert rows["en"]["excerpt"] == "Updated"
    assert rows["en"]["title"] == "First post"
    assert rows["he"]["excerpt"] == "קצר"


def test_update_article_slug_clash_is_a_conflict(client, auth_headers):
    create_article(client, auth_headers, article_payload(slug="taken"))
    other = create_article(client, auth_headers, article_payload(slug="other"))

    response = client.put(f"/api/articles/{other['id']}", json={"slug": "taken"}, headers=auth_headers)
    assert response.status_code == 409

    same = client.put(f"/api/articles/{other['id']}", json={"slug": "other"}, headers=auth_headers)
    assert same.status_code == 200


def test_invalid_publish_date_is_rejected(client, auth_headers):
    response = client.post(
        "/api/articles",
        json=article_payload(publishDate="next tuesday"),
        headers=auth_headers,
    )
    assert response.status_code == 400
    assert response.get_json()["fields"] == ["publishDate"]


def test_delete_article_cascades(client, auth_headers, app):
    article = create_article(client, auth_headers, article_payload())

    response = client.delete(f"/api/articles/{article['id']}", headers=auth_headers)
    assert response.status_code == 200
    assert response.get_json()["message"] == "Article deleted successfully"
    assert client.get(f"/api/articles/{article['id']}").status_code == 404

    with app.app_context():
        assert ArticleContent.query.count() == 0


def test_update_of_unknown_article_is_not_found_whatever_the_body(client, auth_headers):
    for body in ([1, 2], {"slug": "anything"}):
        response = client.put("/api/articles/999", json=body, headers=auth_headers)
        assert response.status_code == 404
        assert response.get_json()["message"] == "Article not found"
