import hashlib
import hmac
import json
import time
from typing import Any, Dict, Optional

import pytest
from fastapi.testclient import TestClient

from app.core.config import Settings
from app.main import create_app
from app.services.stripe_service import StripeService
from app.services.supabase_service import SupabaseService

STRIPE_SECRET_KEY = "sk_test_123"
WEBHOOK_SECRET = "whsec_test_secret"


class InMemorySubscriptionStore(SupabaseService):
    """Dict-backed store with the same merge-on-upsert behaviour as the table"""

    def __init__(self):
        super().__init__(client=None)
        self.documents: Dict[str, Dict[str, Any]] = {}
        self.writes = 0
        self.fail_with: Optional[Exception] = None

    async def get_subscription(self, uid: str) -> Optional[Dict[str, Any]]:
        document = self.documents.get(uid)
        return dict(document) if document is not None else None

    async def subscription_exists(self, uid: str) -> bool:
        return uid in self.documents

    async def upsert_subscription(self, uid: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        if self.fail_with is not None:
            raise self.fail_with
        document = self.documents.setdefault(uid, {"uid": uid})
        document.update(fields)
        self.writes += 1
        return dict(document)


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Build a stripe-signature header the way Stripe does"""
    timestamp = timestamp or int(time.time())
    signed_payload = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed_payload, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def make_event(event_type: str, obj: Dict[str, Any], event_id: str = "evt_123", created: int = 1700000000) -> Dict[str, Any]:
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "created": created,
        "data": {"object": obj},
    }


def post_event(client: TestClient, event: Dict[str, Any], signature: Optional[str] = None):
    payload = json.dumps(event).encode("utf-8")
    headers = {
        "content-type": "application/json",
        "stripe-signature": signature or sign_payload(payload),
    }
    return client.post("/api/stripe/webhook", content=payload, headers=headers)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        environment="development",
        stripe_secret_key=STRIPE_SECRET_KEY,
        stripe_webhook_secret=WEBHOOK_SECRET,
        stripe_api_version="2023-10-16",
        supabase_url="",
        supabase_key="",
    )


@pytest.fixture
def store() -> InMemorySubscriptionStore:
    return InMemorySubscriptionStore()


@pytest.fixture
def stripe_service(settings) -> StripeService:
    return StripeService(
        api_key=settings.stripe_secret_key,
        webhook_secret=settings.stripe_webhook_secret,
        api_version=settings.stripe_api_version
    )


@pytest.fixture
def client(settings, stripe_service, store) -> TestClient:
    app = create_app(settings, stripe_service=stripe_service, store=store)
    return TestClient(app)
