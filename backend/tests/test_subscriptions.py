from unittest.mock import patch

import requests

from backend.store import MemoryStore
from backend.subscriptions import (
    SUBSCRIPTION_EVENTS,
    USER_SUBSCRIPTIONS,
    SubscriptionClient,
    check_feature_access,
    get_usage_limit,
    is_unlimited,
    tier_from_product,
)


def _event(event_type, product_id="professional_monthly", user_id="u1"):
    return {"event": {
        "id": f"evt-{event_type.lower()}",
        "type": event_type,
        "app_user_id": user_id,
        "product_id": product_id,
        "purchased_at_ms": 1767225600000,
        "expiration_at_ms": 1769904000000,
    }}


# -----------------------------
# Tier table
# -----------------------------
def test_feature_access_by_tier():
    assert check_feature_access("free", "saved_jobs") is True
    assert check_feature_access("free", "ai_conversations") is False
    assert check_feature_access("professional", "advanced_filters") is True
    assert check_feature_access("professional", "voice_responses") is False
    assert check_feature_access("career_os", "voice_responses") is True
    assert check_feature_access("platinum", "saved_jobs") is False


def test_usage_limits():
    assert get_usage_limit("free", "saved_jobs") == 5
    assert get_usage_limit("professional", "ai_conversations") == 5
    assert get_usage_limit("professional", "advanced_filters") == 0
    assert is_unlimited("career_os", "ai_conversations")
    assert not is_unlimited("free", "ai_conversations")


def test_tier_from_product():
    assert tier_from_product("professional_monthly") == "professional"
    assert tier_from_product("career_os_annual") == "career_os"
    assert tier_from_product("premium_yearly") == "career_os"
    assert tier_from_product("tip_jar") == "free"
    assert tier_from_product(None) == "free"


# -----------------------------
# Status lookups
# -----------------------------
def test_status_defaults_to_free():
    status = SubscriptionClient(MemoryStore()).status_for("nobody")
    assert status.tier == "free"
    assert status.to_dict()["is_professional"] is False


def test_status_from_revenuecat():
    body = {"subscriber": {
        "entitlements": {
            "career_os": {"expires_date": "2099-01-01T00:00:00Z", "product_identifier": "career_os_monthly"},
            "professional": {"expires_date": "2001-01-01T00:00:00Z", "product_identifier": "professional_monthly"},
        },
        "subscriptions": {"career_os_monthly": {"unsubscribe_detected_at": None}},
    }}
    client = SubscriptionClient(MemoryStore(), api_key="sk_test")

    with patch("backend.subscriptions.requests.get") as get:
        get.return_value.json.return_value = body
        status = client.status_for("u1")

    assert get.call_args.args[0] == "https://api.revenuecat.com/v1/subscribers/u1"
    assert get.call_args.kwargs["headers"]["Authorization"] == "Bearer sk_test"
    assert status.tier == "career_os"
    assert status.is_career_os
    assert status.will_renew is True


def test_revenuecat_outage_falls_back_to_free():
    client = SubscriptionClient(MemoryStore(), api_key="sk_test")
    with patch("backend.subscriptions.requests.get", side_effect=requests.Timeout("slow")):
        assert client.status_for("u1").tier == "free"


# -----------------------------
# Webhook + status endpoint
# -----------------------------
def test_purchase_then_expiration(client, store):
    res = client.post("/webhooks/revenuecat", json=_event("INITIAL_PURCHASE"))
    assert res.status_code == 200
    assert res.json == {"received": True}

    status = client.get("/api/subscription/u1").json
    assert status["tier"] == "professional"
    assert status["is_professional"] is True
    assert status["will_renew"] is True

    client.post("/webhooks/revenuecat", json=_event("CANCELLATION"))
    assert store.select(USER_SUBSCRIPTIONS)[0]["subscription_status"] == "cancelled"
    assert client.get("/api/subscription/u1").json["tier"] == "professional"

    client.post("/webhooks/revenuecat", json=_event("EXPIRATION"))
    row = store.select(USER_SUBSCRIPTIONS)[0]
    assert (row["subscription_tier"], row["subscription_status"]) == ("free", "expired")

    events = store.select(SUBSCRIPTION_EVENTS)
    assert [e["event_type"] for e in events] == ["initial_purchase", "cancellation", "expiration"]


def test_repeat_purchase_keeps_one_row(client, store):
    client.post("/webhooks/revenuecat", json=_event("INITIAL_PURCHASE"))
    client.post("/webhooks/revenuecat", json=_event("INITIAL_PURCHASE", product_id="career_os_monthly"))
    rows = store.select(USER_SUBSCRIPTIONS)
    assert len(rows) == 1
    assert rows[0]["subscription_tier"] == "career_os"


def test_product_change(client, store):
    client.post("/webhooks/revenuecat", json=_event("INITIAL_PURCHASE"))
    client.post("/webhooks/revenuecat", json=_event("PRODUCT_CHANGE", product_id="career_os_monthly"))
    assert client.get("/api/subscription/u1").json["tier"] == "career_os"


def test_unknown_event_is_recorded_only(client, store):
    res = client.post("/webhooks/revenuecat", json=_event("BILLING_ISSUE"))
    assert res.status_code == 200
    assert store.select(USER_SUBSCRIPTIONS) == []
    assert len(store.select(SUBSCRIPTION_EVENTS)) == 1


def test_malformed_webhook(client):
    res = client.post("/webhooks/revenuecat", json={"event": {"type": "RENEWAL"}})
    assert res.status_code == 500
    assert res.json["error"] == "Webhook processing failed"
    assert res.json["message"] == "Malformed RevenueCat event"


def test_status_payload_describes_tier(client, store):
    client.post("/webhooks/revenuecat", json=_event("INITIAL_PURCHASE", product_id="career_os_monthly"))
    status = client.get("/api/subscription/u1").json
    assert status["tier_name"] == "Career OS"
    assert status["price"] == 9.99
    assert status["features"]["voice_responses"] is True

    free = client.get("/api/subscription/nobody").json
    assert (free["tier_name"], free["price"]) == ("Starter", 0)
    assert free["features"]["saved_jobs"] is True
    assert free["features"]["ai_conversations"] is False
