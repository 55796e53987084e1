"""Shared fixtures: isolated config, in-memory database, fake billing gateway.

Service tests use the `session` + `factory` fixtures (one session, flushed
but never committed). API tests use `client` + `seed`, where every seeded
row is committed through its own session so the app can see it.
"""

import hashlib
import hmac
import json
import time
from contextlib import contextmanager
from typing import Any

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from noteearly.config.app_config import clear_config_cache
from noteearly.config.plans import clear_plans_cache
from noteearly.core.auth_service import access_claims
from noteearly.core.billing_gateway import BillingGateway
from noteearly.core.security import create_access_token, hash_secret
from noteearly.core.subscription_service import sync_plans
from noteearly.db.database import get_session, init_db
from noteearly.db.models import (
    CustomerSubscription,
    ModuleType,
    Profile,
    ReadingModule,
    Role,
)
from noteearly.web.api import create_app
from noteearly.web.deps import get_gateway

API = "/api/v1"
WEBHOOK_SECRET = "whsec_test_secret"
PASSWORD = "correct-horse-battery"
PIN = "1234"

# bcrypt is slow; hash the shared credentials once
PASSWORD_HASH = hash_secret(PASSWORD)
PIN_HASH = hash_secret(PIN)


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Run every test in an empty directory with test secrets."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("NOTEEARLY_JWT_SECRET", "test-access-secret")
    monkeypatch.setenv("NOTEEARLY_JWT_REFRESH_SECRET", "test-refresh-secret")
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    monkeypatch.setenv("STRIPE_SECRET_KEY", "sk_test_dummy")
    monkeypatch.delenv("DATABASE_URL", raising=False)
    clear_config_cache()
    clear_plans_cache()
    yield
    clear_config_cache()
    clear_plans_cache()


# =============================================================================
# BILLING
# =============================================================================


class FakeGateway(BillingGateway):
    """Billing gateway that records calls instead of reaching the provider.

    Webhook signature verification is inherited unchanged.
    """

    def __init__(self):
        super().__init__()
        self.calls: list[tuple[str, Any]] = []
        self.subscriptions: dict[str, dict[str, Any]] = {}

    def create_customer(self, email, name, profile_id):
        self.calls.append(("create_customer", email))
        return f"cus_{profile_id[:8]}"

    def create_checkout_session(self, customer_id, price_id, success_url, cancel_url, profile_id):
        self.calls.append(("create_checkout_session", price_id))
        return {"session_id": "cs_test_123", "url": "https://checkout.test/cs_test_123"}

    def create_portal_session(self, customer_id, return_url):
        self.calls.append(("create_portal_session", return_url))
        return {"url": "https://billing.test/portal"}

    def set_cancel_at_period_end(self, subscription_id, cancel):
        self.calls.append(("set_cancel_at_period_end", cancel))
        return {"id": subscription_id, "status": "active", "cancel_at_period_end": cancel}

    def retrieve_subscription(self, subscription_id):
        self.calls.append(("retrieve_subscription", subscription_id))
        return self.subscriptions[subscription_id]


@pytest.fixture
def gateway():
    return FakeGateway()


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET) -> str:
    """Build a Stripe-Signature header for a payload."""
    timestamp = int(time.time())
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def make_event(event_type: str, obj: dict[str, Any]) -> bytes:
    return json.dumps({"id": f"evt_{event_type}", "type": event_type, "data": {"object": obj}}).encode("utf-8")


# =============================================================================
# ROW FACTORIES
# =============================================================================


class Factory:
    """Creates rows directly in the database."""

    def __init__(self, session: Session | None = None):
        self.session = session

    @contextmanager
    def _session(self):
        if self.session is not None:
            yield self.session
            self.session.flush()
        else:
            with get_session() as session:
                yield session

    def admin(self, email: str = "teacher@example.com", role: Role = Role.ADMIN, **fields) -> Profile:
        with self._session() as session:
            profile = Profile(
                role=role.value,
                email=email,
                full_name=fields.pop("full_name", "Tess Teacher"),
                password_hash=PASSWORD_HASH,
                **fields,
            )
            session.add(profile)
        return profile

    def super_admin(self, email: str = "root@example.com") -> Profile:
        return self.admin(email=email, role=Role.SUPER_ADMIN, full_name="Root Admin")

    def student(self, admin: Profile, full_name: str = "Sam Reader", **fields) -> Profile:
        with self._session() as session:
            student = Profile(
                role=Role.STUDENT.value,
                full_name=full_name,
                pin_hash=PIN_HASH,
                admin_id=admin.id,
                **fields,
            )
            session.add(student)
        return student

    def module(
        self,
        paragraphs: int = 3,
        admin: Profile | None = None,
        title: str = "The Lighthouse",
        **fields,
    ) -> ReadingModule:
        content = [{"index": i, "text": f"Paragraph {i} of {title}."} for i in range(1, paragraphs + 1)]
        with self._session() as session:
            module = ReadingModule(
                title=title,
                structured_content=content,
                paragraph_count=paragraphs,
                level=fields.pop("level", 2),
                type=ModuleType.CUSTOM.value if admin is not None else ModuleType.CURATED.value,
                admin_id=admin.id if admin is not None else None,
                genre=fields.pop("genre", "Adventure"),
                language=fields.pop("language", "UK"),
                **fields,
            )
            session.add(module)
        return module

    def subscription(self, user: Profile, plan_id: str, sub_id: str = "sub_123", **fields) -> CustomerSubscription:
        with self._session() as session:
            row = CustomerSubscription(
                id=sub_id,
                user_id=user.id,
                plan_id=plan_id,
                stripe_customer_id=fields.pop("stripe_customer_id", user.stripe_customer_id or "cus_test"),
                status=fields.pop("status", "active"),
                **fields,
            )
            session.add(row)
        return row


def auth_headers(profile: Profile) -> dict[str, str]:
    """Bearer header for a profile."""
    return {"Authorization": f"Bearer {create_access_token(access_claims(profile))}"}


# =============================================================================
# DATABASE / APP
# =============================================================================


@pytest.fixture
def session():
    """Session on a fresh in-memory database with the plan catalog synced."""
    engine = init_db("sqlite://")
    db_session = Session(bind=engine, autoflush=False, expire_on_commit=False)
    sync_plans(db_session)
    db_session.flush()
    yield db_session
    db_session.rollback()
    db_session.close()


@pytest.fixture
def factory(session):
    return Factory(session)


@pytest.fixture
def client(gateway):
    """Test client on a fresh in-memory database with the plan catalog synced."""
    app = create_app(database_url="sqlite://")
    app.dependency_overrides[get_gateway] = lambda: gateway
    with TestClient(app) as test_client:
        with get_session() as db_session:
            sync_plans(db_session)
        yield test_client


@pytest.fixture
def seed(client):
    return Factory()
