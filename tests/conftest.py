import json
import os
import tempfile
from types import SimpleNamespace

import pytest

# Point the app at throwaway storage before any app module is imported
_TMP = tempfile.mkdtemp(prefix="corretorpro-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP, 'test.db')}"
os.environ["STATIC_DIR"] = os.path.join(_TMP, "static")
os.environ["ADMIN_EMAILS"] = "boss@example.com"
os.environ["ADMIN_ALLOWLIST_IPS"] = ""
os.environ["CAKTO_WEBHOOK_SECRET"] = ""
os.environ["GEMINI_API_KEY"] = ""
os.environ["FIREBASE_WEB_API_KEY"] = "test-web-key"
os.environ["REDIS_URL"] = ""
os.environ["R2_ACCOUNT_ID"] = ""
os.environ["R2_ACCESS_KEY_ID"] = ""
os.environ["R2_SECRET_ACCESS_KEY"] = ""
os.environ["SIGNUP_LIMIT_PER_HOUR"] = "10000"
os.environ["GENERATION_LIMIT_PER_HOUR"] = "10000"
os.environ["ADMIN_LIMIT_PER_MINUTE"] = "10000"

from fastapi.testclient import TestClient  # noqa: E402

import core.auth  # noqa: E402
from core.database import SessionLocal, init_db  # noqa: E402
from models.history import PropertyHistory  # noqa: E402
from models.profile import Profile  # noqa: E402
from models.webhook import WebhookDebug  # noqa: E402
import utils.copywriter  # noqa: E402


class EmailAlreadyExistsError(Exception):
    pass


class FakeAuth:
    """In-memory stand-in for firebase_admin.auth."""

    def __init__(self):
        self.users = {}
        self.tokens = {}
        self.revoked = []
        self.updates = []
        self._n = 0

    def add_user(self, uid, email, password="secret123", display_name=""):
        self.users[uid] = SimpleNamespace(uid=uid, email=email, password=password, display_name=display_name)
        token = f"token-{uid}"
        self.tokens[token] = uid
        return token

    def verify_id_token(self, token):
        uid = self.tokens.get(token)
        if not uid:
            raise ValueError("invalid token")
        user = self.users.get(uid)
        return {"uid": uid, "email": getattr(user, "email", None)}

    def get_user(self, uid):
        if uid not in self.users:
            raise ValueError("user not found")
        return self.users[uid]

    def create_user(self, email, password, display_name=None):
        if any(u.email == email for u in self.users.values()):
            raise EmailAlreadyExistsError("The user with the provided email already exists")
        self._n += 1
        uid = f"new-uid-{self._n}"
        self.add_user(uid, email, password, display_name or "")
        return self.users[uid]

    def update_user(self, uid, **kwargs):
        if uid not in self.users:
            raise ValueError(f"No user record found for the provided user ID: {uid}")
        self.updates.append((uid, kwargs))
        for k, v in kwargs.items():
            setattr(self.users[uid], k, v)
        return self.users[uid]

    def revoke_refresh_tokens(self, uid):
        self.revoked.append(uid)


@pytest.fixture(scope="session", autouse=True)
def _schema():
    init_db()


@pytest.fixture(autouse=True)
def fake_auth(monkeypatch):
    fake = FakeAuth()
    monkeypatch.setattr(core.auth, "fb_auth", fake)
    monkeypatch.setattr(core.auth, "firebase_enabled", True)
    return fake


@pytest.fixture(autouse=True)
def _clean_tables():
    yield
    s = SessionLocal()
    try:
        s.query(PropertyHistory).delete()
        s.query(WebhookDebug).delete()
        s.query(Profile).delete()
        s.commit()
    finally:
        s.close()


@pytest.fixture
def db():
    s = SessionLocal()
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def client():
    from main import app
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_user(fake_auth, db):
    """Create an auth user plus profile row; returns (uid, auth headers)."""

    def _make(uid="agent-1", email="agent@example.com", role="user", is_active=True, subscription_status="active", **fields):
        token = fake_auth.add_user(uid, email)
        db.add(Profile(
            id=uid,
            email=email,
            name=fields.pop("name", "Ana Corretora"),
            creci=fields.pop("creci", "12345-F"),
            telefone=fields.pop("telefone", "(11) 99999-0000"),
            role=role,
            is_active=is_active,
            subscription_status=subscription_status,
            **fields,
        ))
        db.commit()
        return uid, {"Authorization": f"Bearer {token}"}

    return _make


ADS_REPLY = {
    "olx": "Apartamento amplo no centro.\n\nCRECI: 12345-F\nWhatsApp: (11) 99999-0000",
    "whatsapp": "Oi! Olha que oportunidade.",
    "instagram": "Viva o melhor da cidade. #imoveis",
    "tiktok": "Você precisa ver isso!",
}


@pytest.fixture
def fake_gemini(monkeypatch):
    calls = []

    def _generate(prompt, json_mode=False):
        calls.append({"prompt": prompt, "json_mode": json_mode})
        if json_mode:
            return json.dumps(ADS_REPLY)
        return "Novo texto para a plataforma."

    monkeypatch.setattr(utils.copywriter, "_gemini_generate", _generate)
    return calls
