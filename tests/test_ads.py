from models.history import PropertyHistory
import routers.ads

PROPERTY = {"tipo": "Casa", "cidade": "Campinas", "preco": "R$ 750.000", "bairro": "Cambuí"}


def test_generate_requires_auth(client, fake_gemini):
    r = client.post("/api/ads/generate", json={"property": PROPERTY})
    assert r.status_code == 401


def test_generate_blocked_without_subscription(client, make_user, fake_gemini):
    _, headers = make_user(subscription_status="inactive")
    r = client.post("/api/ads/generate", json={"property": PROPERTY}, headers=headers)
    assert r.status_code == 403
    assert r.json()["reason"] == "subscription_required"
    assert fake_gemini == []


def test_generate_blocked_when_suspended(client, make_user, fake_gemini):
    _, headers = make_user(is_active=False)
    r = client.post("/api/ads/generate", json={"property": PROPERTY}, headers=headers)
    assert r.status_code == 403
    assert r.json()["reason"] == "suspended"


def test_admin_bypasses_subscription_gate(client, make_user, fake_gemini):
    _, headers = make_user(role="Administrator", subscription_status="inactive", is_active=False)
    r = client.post("/api/ads/generate", json={"property": PROPERTY}, headers=headers)
    assert r.status_code == 200


def test_generate_requires_core_fields(client, make_user, fake_gemini):
    _, headers = make_user()
    r = client.post("/api/ads/generate", json={"property": {"tipo": "Casa", "cidade": " "}}, headers=headers)
    assert r.status_code == 400
    assert r.json()["fields"] == ["preco", "cidade"]
    assert fake_gemini == []


def test_generate_records_history(client, make_user, fake_gemini, db):
    uid, headers = make_user()
    r = client.post("/api/ads/generate", json={"property": PROPERTY}, headers=headers)
    assert r.status_code == 200
    body = r.json()
    assert set(body["ads"]) == {"olx", "whatsapp", "instagram", "tiktok"}
    item = body["history_item"]
    assert item["property"]["bairro"] == "Cambuí"
    assert isinstance(item["timestamp"], int)

    rows = db.query(PropertyHistory).filter(PropertyHistory.user_id == uid).all()
    assert len(rows) == 1
    assert rows[0].ads_data == body["ads"]


def test_generate_failure_returns_502(client, make_user, monkeypatch, db):
    import utils.copywriter
    monkeypatch.setattr(utils.copywriter, "_gemini_generate", lambda prompt, json_mode=False: "{}")
    uid, headers = make_user()
    r = client.post("/api/ads/generate", json={"property": PROPERTY}, headers=headers)
    assert r.status_code == 502
    assert r.json()["error"] == "generation_failed"
    assert db.query(PropertyHistory).filter(PropertyHistory.user_id == uid).count() == 0


def test_generate_rate_limited(client, make_user, fake_gemini, monkeypatch):
    monkeypatch.setattr(routers.ads, "check_generation_rate_limit", lambda uid: (False, "slow down"))
    _, headers = make_user()
    r = client.post("/api/ads/generate", json={"property": PROPERTY}, headers=headers)
    assert r.status_code == 429


def test_regenerate_rejects_unknown_platform(client, make_user, fake_gemini):
    _, headers = make_user()
    r = client.post("/api/ads/regenerate", json={"platform": "facebook", "property": PROPERTY, "ads": {}}, headers=headers)
    assert r.status_code == 400


def test_regenerate_replaces_one_platform_and_updates_history(client, make_user, fake_gemini, db):
    uid, headers = make_user()
    first = client.post("/api/ads/generate", json={"property": PROPERTY}, headers=headers).json()
    history_id = first["history_item"]["id"]

    r = client.post(
        "/api/ads/regenerate",
        json={"platform": "tiktok", "property": PROPERTY, "ads": first["ads"], "history_id": history_id},
        headers=headers,
    )
    assert r.status_code == 200
    body = r.json()
    assert body["platform"] == "tiktok"
    assert body["text"].startswith("Novo texto para a plataforma.")
    assert body["ads"]["olx"] == first["ads"]["olx"]
    assert body["ads"]["tiktok"] == body["text"]

    db.expire_all()
    row = db.query(PropertyHistory).filter(PropertyHistory.id == history_id).one()
    assert row.ads_data["tiktok"] == body["text"]
    assert row.ads_data["olx"] == first["ads"]["olx"]


def test_regenerate_ignores_foreign_history(client, make_user, fake_gemini, db):
    owner_uid, owner_headers = make_user(uid="owner", email="owner@example.com")
    first = client.post("/api/ads/generate", json={"property": PROPERTY}, headers=owner_headers).json()

    _, other_headers = make_user(uid="other", email="other@example.com")
    r = client.post(
        "/api/ads/regenerate",
        json={"platform": "olx", "property": PROPERTY, "ads": {}, "history_id": first["history_item"]["id"]},
        headers=other_headers,
    )
    assert r.status_code == 200
    db.expire_all()
    row = db.query(PropertyHistory).filter(PropertyHistory.id == first["history_item"]["id"]).one()
    assert row.ads_data["olx"] == first["ads"]["olx"]


def test_regenerate_failure_keeps_history(client, make_user, fake_gemini, monkeypatch, db):
    uid, headers = make_user()
    first = client.post("/api/ads/generate", json={"property": PROPERTY}, headers=headers).json()
    history_id = first["history_item"]["id"]

    import utils.copywriter
    monkeypatch.setattr(utils.copywriter, "_gemini_generate", lambda prompt, json_mode=False: "" if not json_mode else "{}")
    r = client.post(
        "/api/ads/regenerate",
        json={"platform": "olx", "property": PROPERTY, "ads": first["ads"], "history_id": history_id},
        headers=headers,
    )
    assert r.status_code == 502
    assert r.json()["error"] == "generation_failed"

    db.expire_all()
    row = db.query(PropertyHistory).filter(PropertyHistory.id == history_id).one()
    assert row.ads_data == first["ads"]
