"""
Subscription tiers, feature limits and billing status.

Billing is handled by RevenueCat. Its webhook keeps a mirror of each user's
subscription in the ``user_subscriptions`` table; ``SubscriptionClient``
reads the live status from the RevenueCat REST API when a secret key is
configured and from that mirror otherwise.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import requests

from .store import first

logger = logging.getLogger(__name__)

USER_SUBSCRIPTIONS = "user_subscriptions"
SUBSCRIPTION_EVENTS = "subscription_events"

UNLIMITED = -1

SUBSCRIPTION_LIMITS: Dict[str, Dict[str, Any]] = {
    "free": {
        "saved_jobs": 5,
        "ai_conversations": 0,
        "voice_responses": False,
        "advanced_filters": False,
        "multi_language": False,
        "priority_support": False,
        "analytics_dashboard": False,
        "interview_prep": False,
        "career_roadmap": False,
        "application_templates": False,
    },
    "professional": {
        "saved_jobs": UNLIMITED,
        "ai_conversations": 5,
        "voice_responses": False,
        "advanced_filters": True,
        "multi_language": False,
        "priority_support": True,
        "analytics_dashboard": False,
        "interview_prep": False,
        "career_roadmap": False,
        "application_templates": True,
    },
    "career_os": {
        "saved_jobs": UNLIMITED,
        "ai_conversations": UNLIMITED,
        "voice_responses": True,
        "advanced_filters": True,
        "multi_language": True,
        "priority_support": True,
        "analytics_dashboard": True,
        "interview_prep": True,
        "career_roadmap": True,
        "application_templates": True,
    },
}

TIER_NAMES = {"free": "Starter", "professional": "Professional", "career_os": "Career OS"}
TIER_PRICES = {"professional": 4.99, "career_os": 9.99}


def check_feature_access(tier: str, feature: str) -> bool:
    limits = SUBSCRIPTION_LIMITS.get(tier)
    if not limits:
        return False
    value = limits.get(feature, False)
    return value is not False and value != 0


def get_usage_limit(tier: str, feature: str) -> int:
    value = (SUBSCRIPTION_LIMITS.get(tier) or {}).get(feature)
    # bools are ints in Python; only real counts are limits
    if isinstance(value, bool) or not isinstance(value, int):
        return 0
    return value


def is_unlimited(tier: str, feature: str) -> bool:
    return get_usage_limit(tier, feature) == UNLIMITED


def tier_from_product(product_id: str | None) -> str:
    if not product_id:
        return "free"
    p = product_id.lower()
    if "professional" in p or "pro" in p:
        return "professional"
    if "career_os" in p or "premium" in p or "ultimate" in p:
        return "career_os"
    return "free"


@dataclass
class SubscriptionStatus:
    tier: str = "free"
    status: str = "active"
    expiration_date: Optional[str] = None
    will_renew: bool = False

    @property
    def is_professional(self) -> bool:
        return self.tier == "professional"

    @property
    def is_career_os(self) -> bool:
        return self.tier == "career_os"

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["is_professional"] = self.is_professional
        d["is_career_os"] = self.is_career_os
        d["tier_name"] = TIER_NAMES.get(self.tier, self.tier)
        d["price"] = TIER_PRICES.get(self.tier, 0)
        d["features"] = {name: check_feature_access(self.tier, name) for name in SUBSCRIPTION_LIMITS["free"]}
        return d


def _parse_ts(v: str | None) -> datetime | None:
    if not v:
        return None
    try:
        return datetime.fromisoformat(v.replace("Z", "+00:00"))
    except ValueError:
        return None


class SubscriptionClient:
    """
    One instance per process, built at startup and handed to whatever needs
    subscription status.
    """

    def __init__(self, store, api_key: str | None = None,
                 api_url: str = "https://api.revenuecat.com/v1", timeout: float = 10.0):
        self.store = store
        self.api_key = (api_key or "").strip() or None
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout

    def status_for(self, user_id: str) -> SubscriptionStatus:
        if self.api_key:
            return self._from_revenuecat(user_id)
        return self._from_mirror(user_id)

    def _from_mirror(self, user_id: str) -> SubscriptionStatus:
        row = first(self.store.select(USER_SUBSCRIPTIONS, eq={"user_id": user_id}))
        if not row:
            return SubscriptionStatus()
        return SubscriptionStatus(
            tier=row.get("subscription_tier") or "free",
            status=row.get("subscription_status") or "active",
            expiration_date=row.get("current_period_end"),
            will_renew=(row.get("subscription_status") == "active"),
        )

    def _from_revenuecat(self, user_id: str) -> SubscriptionStatus:
        try:
            r = requests.get(
                f"{self.api_url}/subscribers/{user_id}",
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
            r.raise_for_status()
            subscriber = (r.json() or {}).get("subscriber") or {}
        except (requests.RequestException, ValueError) as e:
            logger.error("Error getting subscription status for %s: %s", user_id, e)
            return SubscriptionStatus()

        now = datetime.now(timezone.utc)
        active = {}
        for name, ent in (subscriber.get("entitlements") or {}).items():
            expires = _parse_ts(ent.get("expires_date"))
            if expires is None or expires > now:
                active[name] = ent

        entitlement = active.get("career_os") or active.get("professional")
        if not entitlement:
            return SubscriptionStatus()

        tier = "career_os" if "career_os" in active else "professional"
        product = (subscriber.get("subscriptions") or {}).get(entitlement.get("product_identifier"), {})
        return SubscriptionStatus(
            tier=tier,
            status="active",
            expiration_date=entitlement.get("expires_date"),
            will_renew=product.get("unsubscribe_detected_at") is None and bool(product),
        )


# -----------------------------
# RevenueCat webhook
# -----------------------------
def _ms_to_iso(ms: int | None) -> str | None:
    if not ms:
        return None
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _subscription_start(store, ev: dict) -> None:
    user_id = ev["app_user_id"]
    store.upsert(USER_SUBSCRIPTIONS, {
        "user_id": user_id,
        "subscription_tier": tier_from_product(ev.get("product_id")),
        "subscription_status": "active",
        "revenuecat_customer_id": ev.get("original_app_user_id") or user_id,
        "current_period_start": _ms_to_iso(ev.get("purchased_at_ms")) or _now_iso(),
        "current_period_end": _ms_to_iso(ev.get("expiration_at_ms")),
        "updated_at": _now_iso(),
    }, on_conflict="user_id")


def _subscription_renewal(store, ev: dict) -> None:
    store.update(USER_SUBSCRIPTIONS, {
        "subscription_status": "active",
        "current_period_start": _ms_to_iso(ev.get("purchased_at_ms")) or _now_iso(),
        "current_period_end": _ms_to_iso(ev.get("expiration_at_ms")),
        "updated_at": _now_iso(),
    }, eq={"user_id": ev["app_user_id"]})


def _subscription_cancellation(store, ev: dict) -> None:
    # access is kept until the period ends; EXPIRATION does the downgrade
    store.update(USER_SUBSCRIPTIONS, {
        "subscription_status": "cancelled",
        "updated_at": _now_iso(),
    }, eq={"user_id": ev["app_user_id"]})


def _subscription_expiration(store, ev: dict) -> None:
    store.update(USER_SUBSCRIPTIONS, {
        "subscription_tier": "free",
        "subscription_status": "expired",
        "updated_at": _now_iso(),
    }, eq={"user_id": ev["app_user_id"]})


def _subscription_change(store, ev: dict) -> None:
    store.update(USER_SUBSCRIPTIONS, {
        "subscription_tier": tier_from_product(ev.get("product_id")),
        "subscription_status": "active",
        "current_period_end": _ms_to_iso(ev.get("expiration_at_ms")),
        "updated_at": _now_iso(),
    }, eq={"user_id": ev["app_user_id"]})


EVENT_HANDLERS = {
    "INITIAL_PURCHASE": _subscription_start,
    "RENEWAL": _subscription_renewal,
    "CANCELLATION": _subscription_cancellation,
    "EXPIRATION": _subscription_expiration,
    "PRODUCT_CHANGE": _subscription_change,
}


def _record_event(store, ev: dict) -> None:
    try:
        store.insert(SUBSCRIPTION_EVENTS, {
            "user_id": ev.get("app_user_id"),
            "event_type": str(ev.get("type", "")).lower(),
            "subscription_tier": tier_from_product(ev.get("product_id")),
            "revenuecat_event_id": ev.get("id"),
            "revenuecat_customer_id": ev.get("original_app_user_id") or ev.get("app_user_id"),
            "event_data": ev,
            "processed_at": _now_iso(),
        })
    except Exception as e:
        logger.error("Error logging subscription event %s: %s", ev.get("id"), e)


def process_revenuecat_event(store, payload: Dict[str, Any]) -> str:
    """Apply one webhook delivery to the subscription mirror; returns the event type."""
    ev = (payload or {}).get("event")
    if not isinstance(ev, dict) or not ev.get("type") or not ev.get("app_user_id"):
        raise ValueError("Malformed RevenueCat event")

    logger.info("Received RevenueCat webhook: type=%s user=%s id=%s", ev["type"], ev["app_user_id"], ev.get("id"))
    handler = EVENT_HANDLERS.get(ev["type"])
    if handler:
        handler(store, ev)
    else:
        logger.info("Unhandled RevenueCat event type: %s", ev["type"])

    _record_event(store, ev)
    return ev["type"]
