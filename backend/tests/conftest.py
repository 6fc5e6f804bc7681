"""
Pytest configuration and shared test helpers for backend tests.

MongoDB is replaced by an in-memory store that implements the handful of
Motor collection methods the services call.
"""
import copy
import hashlib
import hmac
import time
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from auth import TokenService
from config import Settings
from models import User
from server import create_app

WEBHOOK_SECRET = "whsec_test_secret"


def _compare(op, value, arg):
    if op == "$lt":
        return value is not None and value < arg
    if op == "$lte":
        return value is not None and value <= arg
    if op == "$gt":
        return value is not None and value > arg
    if op == "$gte":
        return value is not None and value >= arg
    if op == "$ne":
        return value != arg
    raise NotImplementedError(op)


class InMemoryCollection:
    """Minimal async collection: equality and comparison filters, $set and $inc."""

    def __init__(self, unique_fields=()):
        self.docs = []
        self.unique_fields = unique_fields

    def _matches(self, doc, query):
        for key, cond in query.items():
            value = doc.get(key)
            if isinstance(cond, dict) and cond and all(k.startswith("$") for k in cond):
                if not all(_compare(op, value, arg) for op, arg in cond.items()):
                    return False
            elif value != cond:
                return False
        return True

    def _find(self, query):
        for doc in self.docs:
            if self._matches(doc, query):
                return doc
        return None

    @staticmethod
    def _apply(doc, update):
        for k, v in update.get("$set", {}).items():
            doc[k] = v
        for k, v in update.get("$inc", {}).items():
            doc[k] = doc.get(k, 0) + v

    async def find_one(self, query, projection=None, **kw):
        doc = self._find(query)
        return copy.deepcopy(doc) if doc else None

    async def insert_one(self, doc, **kw):
        for field in self.unique_fields:
            if any(d.get(field) == doc.get(field) for d in self.docs):
                raise DuplicateKeyError(f"duplicate key: {field}")
        self.docs.append(copy.deepcopy(doc))
        return SimpleNamespace(inserted_id=len(self.docs))

    async def update_one(self, query, update, upsert=False, **kw):
        doc = self._find(query)
        if doc is None:
            return SimpleNamespace(matched_count=0, modified_count=0)
        self._apply(doc, update)
        return SimpleNamespace(matched_count=1, modified_count=1)

    async def find_one_and_update(self, query, update, projection=None,
                                  return_document=ReturnDocument.BEFORE, **kw):
        doc = self._find(query)
        if doc is None:
            return None
        before = copy.deepcopy(doc)
        self._apply(doc, update)
        return copy.deepcopy(doc) if return_document == ReturnDocument.AFTER else before


class InMemoryDatabase:
    """Stands in for database.Database: connect/close are no-ops."""

    def __init__(self):
        self.db = SimpleNamespace(
            users=InMemoryCollection(unique_fields=("user_id", "email")),
            stripe_events=InMemoryCollection(unique_fields=("event_id",)),
        )

    async def connect(self):
        pass

    async def close(self):
        pass

    def get_db(self):
        return self.db


def sign_webhook_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int = None) -> str:
    """Build a Stripe-Signature header the way Stripe does (HMAC-SHA256, v1 scheme)."""
    timestamp = timestamp or int(time.time())
    signature = hmac.new(
        secret.encode("utf-8"),
        f"{timestamp}.{payload}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return f"t={timestamp},v1={signature}"


@pytest.fixture
def settings():
    return Settings(
        jwt_secret="test-jwt-secret",
        gemini_api_key="test-gemini-key",
        stripe_secret_key="sk_test_123",
        stripe_webhook_secret=WEBHOOK_SECRET,
        frontend_url="http://localhost:5173",
        cors_origins=["http://localhost:5173"],
        environment="test",
    )


@pytest.fixture
def memory_db():
    return InMemoryDatabase()


@pytest.fixture
def app(settings, memory_db):
    return create_app(settings=settings, database=memory_db)


@pytest.fixture
def client(app):
    """TestClient without lifespan, so no MongoDB connection is attempted."""
    return TestClient(app)


@pytest.fixture
def make_user(settings, memory_db):
    """Insert a user directly and return (user, bearer token)."""
    tokens = TokenService(settings)

    def _make_user(email="reader@docs.io", plan="free", daily_count=0, last_reset_date=None):
        user = User(
            email=email,
            password_hash="not-a-real-hash",
            plan=plan,
            daily_count=daily_count,
            last_reset_date=last_reset_date or datetime.now(timezone.utc),
        )
        memory_db.db.users.docs.append(user.model_dump())
        return user, tokens.create_access_token(user.user_id)

    return _make_user


def stored_user(memory_db, user_id):
    for doc in memory_db.db.users.docs:
        if doc["user_id"] == user_id:
            return doc
    return None


def auth_header(token):
    return {"Authorization": f"Bearer {token}"}
