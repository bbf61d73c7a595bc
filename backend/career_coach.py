"""
AI career chat with a monthly conversation allowance per subscription tier.

Each exchange is stored in ``ai_conversations``; the month's row count for a
user is the usage checked against the tier limit.
"""
from __future__ import annotations

import logging
import os
import time
from datetime import datetime, timezone
from typing import Any, Dict

import google.generativeai as genai

from .subscriptions import UNLIMITED, get_usage_limit, is_unlimited

logger = logging.getLogger(__name__)

AI_CONVERSATIONS = "ai_conversations"

SYSTEM_PROMPT = """\
You are an expert career coach specializing in helping professionals in underserved regions \
(Africa, Southeast Asia, Latin America) access global remote opportunities. Provide practical, \
actionable advice focused on:

- Remote work skills and best practices
- International job applications and resume optimization
- Building professional networks globally
- Salary negotiation for remote positions
- Career development in tech and other remote-friendly fields
- Overcoming geographical barriers in job search

Keep responses concise but actionable. Always consider the unique challenges faced by \
professionals in emerging markets.
"""

FALLBACK_REPLY = "I apologize, but I couldn't generate a response. Please try again."


class UsageLimitReached(Exception):
    def __init__(self, tier: str, limit: int, used: int):
        super().__init__("Monthly AI conversation limit reached")
        self.tier = tier
        self.limit = limit
        self.used = used


def _month_start(now: datetime | None = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


class CareerCoach:
    def __init__(self, store, subscriptions, model_name: str | None = None):
        self.store = store
        self.subscriptions = subscriptions
        self.model_name = model_name or os.getenv("GEMINI_MODEL", "gemini-2.5-flash")

    def conversations_this_month(self, user_id: str) -> int:
        return self.store.count(
            AI_CONVERSATIONS,
            eq={"user_id": user_id},
            gte={"created_at": _month_start()},
        )

    def chat(self, message: str, user_id: str, conversation_id: str | None = None) -> Dict[str, Any]:
        tier = self.subscriptions.status_for(user_id).tier
        limit = get_usage_limit(tier, "ai_conversations")
        unlimited = is_unlimited(tier, "ai_conversations")

        if not unlimited:
            used = self.conversations_this_month(user_id)
            if used >= limit:
                logger.info("AI conversation limit reached: user=%s tier=%s used=%d/%d", user_id, tier, used, limit)
                raise UsageLimitReached(tier, limit, used)

        model = genai.GenerativeModel(self.model_name, system_instruction=SYSTEM_PROMPT)
        resp = model.generate_content(message)
        reply = (getattr(resp, "text", None) or "").strip()
        if not reply:
            logger.warning("Empty Gemini reply for user %s", user_id)
            reply = FALLBACK_REPLY

        self.store.insert(AI_CONVERSATIONS, {
            "user_id": user_id,
            "conversation_id": conversation_id or f"chat-{int(time.time() * 1000)}",
            "user_message": message,
            "ai_response": reply,
            "tier": tier,
        })

        remaining = UNLIMITED
        if not unlimited:
            remaining = max(0, limit - self.conversations_this_month(user_id))

        return {
            "response": reply,
            "remainingUses": remaining,
            "tier": tier,
            "success": True,
        }
