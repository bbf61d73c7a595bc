"""
Record store clients.

The hosted store speaks PostgREST: tables live under ``/rest/v1/<table>``,
filters are query parameters like ``id=eq.<v>`` or ``created_at=gte.<ts>`` and
upserts are plain POSTs with ``Prefer: resolution=merge-duplicates``.

When no store credentials are configured the backend falls back to an
in-memory store with the same interface so the app still boots for local
development and tests.
"""
from __future__ import annotations

import logging
import os
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import requests

logger = logging.getLogger(__name__)

Row = Dict[str, Any]


class StoreError(Exception):
    """Raised when the store rejects a request or cannot be reached."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


def _iso(v: Any) -> Any:
    if isinstance(v, datetime):
        if v.tzinfo is None:
            v = v.replace(tzinfo=timezone.utc)
        return v.isoformat()
    return v


def _as_datetime(v: Any) -> datetime | None:
    if v is None:
        return None
    if isinstance(v, datetime):
        return v if v.tzinfo else v.replace(tzinfo=timezone.utc)
    try:
        dt = datetime.fromisoformat(str(v).replace("Z", "+00:00"))
    except ValueError:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


class SupabaseStore:
    """Thin PostgREST client over a shared ``requests.Session``."""

    def __init__(self, url: str, service_key: str, timeout: float = 15.0, session: requests.Session | None = None):
        self.base_url = url.rstrip("/") + "/rest/v1"
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {service_key}",
            "apikey": service_key,
            "Content-Type": "application/json",
        })

    @staticmethod
    def _params(eq: Dict[str, Any] | None, gte: Dict[str, Any] | None, limit: int | None, order: str | None) -> Dict[str, str]:
        params: Dict[str, str] = {}
        for col, val in (eq or {}).items():
            params[col] = f"eq.{_iso(val)}"
        for col, val in (gte or {}).items():
            params[col] = f"gte.{_iso(val)}"
        if limit is not None:
            params["limit"] = str(int(limit))
        if order:
            params["order"] = order
        return params

    def _request(self, method: str, table: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}/{table}"
        try:
            r = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise StoreError(f"Store request failed for {table}: {e}") from e
        if r.status_code >= 400:
            raise StoreError(f"Store error {r.status_code} on {table}: {r.text[:200]}", r.status_code)
        return r

    @staticmethod
    def _rows(r: requests.Response) -> List[Row]:
        if not r.content:
            return []
        data = r.json()
        if isinstance(data, dict):
            return [data]
        return list(data or [])

    def select(self, table: str, eq: Dict[str, Any] | None = None, gte: Dict[str, Any] | None = None,
               limit: int | None = None, order: str | None = None) -> List[Row]:
        r = self._request("GET", table, params=self._params(eq, gte, limit, order))
        return self._rows(r)

    def count(self, table: str, eq: Dict[str, Any] | None = None, gte: Dict[str, Any] | None = None) -> int:
        r = self._request(
            "HEAD",
            table,
            params=self._params(eq, gte, None, None),
            headers={"Prefer": "count=exact"},
        )
        # Content-Range: 0-24/3573 or */0
        m = re.search(r"/(\d+)$", r.headers.get("Content-Range", ""))
        return int(m.group(1)) if m else 0

    def insert(self, table: str, rows: Row | List[Row]) -> List[Row]:
        r = self._request(
            "POST",
            table,
            json=rows,
            headers={"Prefer": "return=representation"},
        )
        return self._rows(r)

    def upsert(self, table: str, rows: Row | List[Row], on_conflict: str) -> List[Row]:
        r = self._request(
            "POST",
            table,
            json=rows,
            params={"on_conflict": on_conflict},
            headers={"Prefer": "resolution=merge-duplicates,return=representation"},
        )
        return self._rows(r)

    def update(self, table: str, values: Row, eq: Dict[str, Any]) -> List[Row]:
        r = self._request(
            "PATCH",
            table,
            json=values,
            params=self._params(eq, None, None, None),
            headers={"Prefer": "return=representation"},
        )
        return self._rows(r)


class MemoryStore:
    """
    In-memory stand-in for the hosted store.
    Filters compare ids as strings and timestamps as datetimes.
    """

    def __init__(self, tables: Dict[str, List[Row]] | None = None):
        self.tables: Dict[str, List[Row]] = {k: [dict(r) for r in v] for k, v in (tables or {}).items()}

    def clear(self) -> None:
        self.tables.clear()

    def _match(self, row: Row, eq: Dict[str, Any] | None, gte: Dict[str, Any] | None) -> bool:
        for col, val in (eq or {}).items():
            if str(row.get(col)) != str(_iso(val)):
                return False
        for col, val in (gte or {}).items():
            have, floor = _as_datetime(row.get(col)), _as_datetime(val)
            if have is None or floor is None or have < floor:
                return False
        return True

    def select(self, table: str, eq: Dict[str, Any] | None = None, gte: Dict[str, Any] | None = None,
               limit: int | None = None, order: str | None = None) -> List[Row]:
        rows = [dict(r) for r in self.tables.get(table, []) if self._match(r, eq, gte)]
        if order:
            col, _, direction = order.partition(".")
            rows.sort(key=lambda r: str(r.get(col) or ""), reverse=(direction == "desc"))
        if limit is not None:
            rows = rows[: int(limit)]
        return rows

    def count(self, table: str, eq: Dict[str, Any] | None = None, gte: Dict[str, Any] | None = None) -> int:
        return len(self.select(table, eq=eq, gte=gte))

    def _prepare(self, row: Row) -> Row:
        new = {k: _iso(v) for k, v in row.items()}
        new.setdefault("id", str(uuid.uuid4()))
        new.setdefault("created_at", datetime.now(timezone.utc).isoformat())
        return new

    def insert(self, table: str, rows: Row | List[Row]) -> List[Row]:
        items = [rows] if isinstance(rows, dict) else list(rows)
        out = [self._prepare(r) for r in items]
        self.tables.setdefault(table, []).extend(out)
        return [dict(r) for r in out]

    def upsert(self, table: str, rows: Row | List[Row], on_conflict: str) -> List[Row]:
        keys = [k.strip() for k in on_conflict.split(",") if k.strip()]
        existing = self.tables.setdefault(table, [])
        out: List[Row] = []
        for row in ([rows] if isinstance(rows, dict) else list(rows)):
            target = next(
                (r for r in existing if all(str(r.get(k)) == str(row.get(k)) for k in keys)),
                None,
            )
            if target is None:
                target = self._prepare(row)
                existing.append(target)
            else:
                target.update({k: _iso(v) for k, v in row.items()})
            out.append(dict(target))
        return out

    def update(self, table: str, values: Row, eq: Dict[str, Any]) -> List[Row]:
        out = []
        for r in self.tables.get(table, []):
            if self._match(r, eq, None):
                r.update({k: _iso(v) for k, v in values.items()})
                out.append(dict(r))
        return out


def store_from_env():
    """REST store when credentials are present, memory store otherwise."""
    url = os.getenv("SUPABASE_URL", "").strip()
    key = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "").strip()
    if url and key:
        timeout = float(os.getenv("STORE_TIMEOUT", "15"))
        logger.info("Using REST record store at %s", url)
        return SupabaseStore(url, key, timeout=timeout)
    logger.warning("SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY not set; using memory store")
    return MemoryStore()


def first(rows: Iterable[Row]) -> Optional[Row]:
    for r in rows:
        return r
    return None
