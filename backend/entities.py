"""Accessors for the records the matching and automation code reads and writes."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from .store import first

USERS = "users"
JOBS = "jobs"
JOB_MATCHES = "job_matches"
AUTOMATION_LOGS = "automation_logs"


def days_ago(days: int, now: datetime | None = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now - timedelta(days=days)


def get_user(store, user_id: str) -> Optional[Dict[str, Any]]:
    return first(store.select(USERS, eq={"id": user_id}))


def get_job(store, job_id: str) -> Optional[Dict[str, Any]]:
    return first(store.select(JOBS, eq={"id": job_id}))


def jobs_created_since(store, since: datetime, category: str | None = None, limit: int | None = None) -> List[Dict[str, Any]]:
    eq = {"category": category} if category else None
    return store.select(JOBS, eq=eq, gte={"created_at": since}, limit=limit)


def users_created_since(store, since: datetime) -> List[Dict[str, Any]]:
    return store.select(USERS, gte={"created_at": since})


def update_user(store, user_id: str, values: Dict[str, Any]) -> List[Dict[str, Any]]:
    return store.update(USERS, values, eq={"id": user_id})


def upsert_matches(store, matches: List[Dict[str, Any]]) -> None:
    """One batched write; a (user_id, job_id) pair never gets a second row."""
    if matches:
        store.upsert(JOB_MATCHES, matches, on_conflict="user_id,job_id")


def log_automation(store, user_id: str | None, workflow_type: str, result_data: Dict[str, Any], status: str = "completed") -> None:
    store.insert(AUTOMATION_LOGS, {
        "user_id": user_id or "system",
        "workflow_type": workflow_type,
        "status": status,
        "result_data": result_data,
    })
