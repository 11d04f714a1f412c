from tests.fakes import analysis_reply

HEADERS = {"X-User-Id": "learner-1"}


def _create(client, **fields):
    body = {"englishPhrase": "I am learning English.", "userTranslation": "ฉันกำลังเรียนภาษาอังกฤษ"}
    body.update(fields)
    resp = client.post("/api/phrases", json=body, headers=HEADERS)
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_user_header_is_required(client):
    resp = client.get("/api/phrases")
    assert resp.status_code == 401


def test_create_get_update_delete(client):
    created = _create(client, tags=["daily"], analysis=analysis_reply())
    assert created["correctness"] == "correct"
    assert created["userId"] == "learner-1"

    fetched = client.get(f"/api/phrases/{created['id']}", headers=HEADERS)
    assert fetched.status_code == 200
    assert fetched.json()["tags"] == ["daily"]

    patched = client.patch(f"/api/phrases/{created['id']}", json={"isBookmarked": True}, headers=HEADERS)
    assert patched.status_code == 200
    assert patched.json()["isBookmarked"] is True

    deleted = client.delete(f"/api/phrases/{created['id']}", headers=HEADERS)
    assert deleted.json() == {"status": "deleted"}
    assert client.get(f"/api/phrases/{created['id']}", headers=HEADERS).status_code == 404


def test_other_users_cannot_see_phrase(client):
    created = _create(client)
    resp = client.get(f"/api/phrases/{created['id']}", headers={"X-User-Id": "intruder"})
    assert resp.status_code == 404


def test_invalid_payload_is_422(client):
    resp = client.post("/api/phrases", json={"englishPhrase": ""}, headers=HEADERS)
    assert resp.status_code == 422


def test_list_search_stats_tags(client):
    _create(client, englishPhrase="It rains.", tags=["weather"], isBookmarked=True)
    _create(client, englishPhrase="I like tea.", tags=["food"], difficulty="advanced")

    listing = client.get("/api/phrases", params={"tag": "weather"}, headers=HEADERS).json()
    assert listing["total"] == 1
    assert listing["items"][0]["englishPhrase"] == "It rains."

    found = client.get("/api/phrases/search", params={"q": "tea"}, headers=HEADERS).json()
    assert [p["englishPhrase"] for p in found] == ["I like tea."]

    stats = client.get("/api/phrases/stats", headers=HEADERS).json()
    assert stats["total"] == 2
    assert stats["bookmarked"] == 1
    assert stats["byDifficulty"] == {"beginner": 1, "advanced": 1}

    tags = client.get("/api/phrases/tags", headers=HEADERS).json()
    assert tags == ["food", "weather"]


def test_review_flow(client):
    created = _create(client)
    assert created["reviewCount"] == 0
    assert created["lastReviewedAt"] is None

    due = client.get("/api/phrases/review", headers=HEADERS).json()
    assert [p["id"] for p in due] == [created["id"]]

    reviewed = client.post(f"/api/phrases/{created['id']}/review", json={"isCorrect": True}, headers=HEADERS)
    assert reviewed.status_code == 200
    assert reviewed.json()["reviewCount"] == 1
    assert reviewed.json()["lastReviewedAt"]

    missing = client.post("/api/phrases/nope/review", json={"isCorrect": True}, headers=HEADERS)
    assert missing.status_code == 404
    assert client.post(f"/api/phrases/{created['id']}/review", json={}, headers=HEADERS).status_code == 422


def test_bulk_create_reports_per_item_errors(client):
    resp = client.post(
        "/api/phrases/bulk",
        json={
            "phrases": [
                {"englishPhrase": "Good morning, teacher.", "userTranslation": "สวัสดีตอนเช้าครับครู"},
                {"englishPhrase": "", "userTranslation": "ว่าง"},
            ]
        },
        headers=HEADERS,
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["successCount"] == 1
    assert body["errorCount"] == 1
    assert body["errors"][0]["index"] == 1
    assert body["data"][0]["englishPhrase"] == "Good morning, teacher."
    assert client.get("/api/phrases", headers=HEADERS).json()["total"] == 1
    assert client.post("/api/phrases/bulk", json={"phrases": []}, headers=HEADERS).status_code == 422
