import routers.auth
from models.profile import Profile


def test_signup_creates_auth_user_and_profile(client, fake_auth, db):
    r = client.post("/api/auth/signup", json={"email": "Nova@Example.com", "password": "segredo1", "name": "Nova"})
    assert r.status_code == 200
    uid = r.json()["uid"]
    assert fake_auth.users[uid].display_name == "Nova"

    prof = db.query(Profile).filter(Profile.id == uid).one()
    assert prof.email == "nova@example.com"
    assert prof.role == "user"
    assert prof.is_active is True
    assert prof.subscription_status == "inactive"


def test_signup_admin_email_gets_admin_role(client, db):
    r = client.post("/api/auth/signup", json={"email": "boss@example.com", "password": "segredo1", "name": "Chefe"})
    assert r.status_code == 200
    assert r.json()["profile"]["is_admin"] is True


def test_signup_validation(client):
    r = client.post("/api/auth/signup", json={"email": "not-an-email", "password": "segredo1"})
    assert r.status_code == 400
    assert r.json()["error"] == "invalid_email"
    r = client.post("/api/auth/signup", json={"email": "ok@example.com", "password": "123"})
    assert r.status_code == 400
    assert r.json()["error"] == "invalid_password"


def test_signup_duplicate_email(client, fake_auth):
    fake_auth.add_user("existing", "dup@example.com")
    r = client.post("/api/auth/signup", json={"email": "dup@example.com", "password": "segredo1", "name": "Dup"})
    assert r.status_code == 409


def test_signup_rate_limited(client, monkeypatch):
    monkeypatch.setattr(routers.auth, "check_signup_rate_limit", lambda ip: (False, "too many"))
    r = client.post("/api/auth/signup", json={"email": "x@example.com", "password": "segredo1"})
    assert r.status_code == 429


def test_signin_success(client, monkeypatch):
    async def _ok(email, password):
        return 200, {"localId": "u1", "email": email, "idToken": "id-tok", "refreshToken": "ref-tok", "expiresIn": "3600"}

    monkeypatch.setattr(routers.auth, "_identity_toolkit_sign_in", _ok)
    r = client.post("/api/auth/signin", json={"email": "a@example.com", "password": "segredo1"})
    assert r.status_code == 200
    body = r.json()
    assert body["id_token"] == "id-tok"
    assert body["refresh_token"] == "ref-tok"
    assert body["expires_in"] == 3600


def test_signin_bad_credentials(client, monkeypatch):
    async def _bad(email, password):
        return 400, {"error": {"message": "INVALID_LOGIN_CREDENTIALS"}}

    monkeypatch.setattr(routers.auth, "_identity_toolkit_sign_in", _bad)
    r = client.post("/api/auth/signin", json={"email": "a@example.com", "password": "wrong!"})
    assert r.status_code == 401


def test_signin_without_web_key(client, monkeypatch):
    monkeypatch.setattr(routers.auth, "FIREBASE_WEB_API_KEY", "")
    r = client.post("/api/auth/signin", json={"email": "a@example.com", "password": "segredo1"})
    assert r.status_code == 503


def test_signout_revokes_and_tolerates_missing_session(client, make_user, fake_auth):
    uid, headers = make_user()
    r = client.post("/api/auth/signout", headers=headers)
    assert r.json() == {"ok": True}
    assert fake_auth.revoked == [uid]

    r = client.post("/api/auth/signout", headers={"Authorization": "Bearer expired"})
    assert r.status_code == 200
    assert r.json() == {"ok": True}


def test_session_returns_profile(client, make_user):
    uid, headers = make_user()
    r = client.get("/api/auth/session", headers=headers)
    assert r.status_code == 200
    assert r.json()["uid"] == uid
    assert r.json()["profile"]["creci"] == "12345-F"
    assert client.get("/api/auth/session").status_code == 401
