"""Shared helpers for the scheduling API scenarios."""

from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from urllib.parse import quote, urlencode

from loadwright.runner.context import IterationContext

# Registering an existing user is expected to conflict.
REGISTER_STATUSES = frozenset({200, 201, 400, 409})


def random_int(low: int, high: int) -> int:
    """Random integer in [low, high]."""
    return random.randint(low, high)


def get_headers(token: Optional[str] = None) -> Dict[str, str]:
    headers = {"Content-Type": "application/json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


def rfc3339(dt: datetime) -> str:
    """UTC timestamp with millisecond precision and a Z suffix."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def appointments_range_path(days: int, now: Optional[datetime] = None) -> str:
    """``/appointments`` query covering ``days`` either side of now."""
    now = now or datetime.now(timezone.utc)
    query = urlencode(
        {
            "start_time": rfc3339(now - timedelta(days=days)),
            "end_time": rfc3339(now + timedelta(days=days)),
        },
        quote_via=quote,
    )
    return f"/appointments?{query}"


def search_path(q: str) -> str:
    return f"/patients/search?q={quote(q, safe='')}"


def login_or_register(ctx: IterationContext) -> Dict[str, Any]:
    """
    Register (a conflict is fine) and log in.

    Uses the configured username, or a random ``testuser_N`` one.

    Returns:
        {"token": str or None, "user": dict or None}
    """
    username = ctx.config.username or f"testuser_{random_int(0, 999_999)}"
    password = ctx.config.password
    email = f"{username}@example.com"

    ctx.http.post(
        ctx.url("/register"),
        {"username": username, "email": email, "password": password},
        headers=get_headers(),
        expected_statuses=REGISTER_STATUSES,
    )
    res = ctx.http.post(
        ctx.url("/login"),
        {"username": username, "password": password},
        headers=get_headers(),
    )
    ctx.check(res, {"login 200": lambda r: r.status == 200})
    body = res.json()
    token = body.get("token")
    return {
        "token": token if isinstance(token, str) else None,
        "user": body.get("user"),
    }


def pick_existing_patient_id(ctx: IterationContext, headers: Optional[Dict[str, str]] = None) -> Optional[Any]:
    """First patient id from a broad search, or None."""
    res = ctx.http.get(ctx.url(search_path("a")), headers=headers)
    if res.status != 200:
        return None
    patients = res.json().as_list()
    if not patients:
        return None
    first = patients[0]
    if isinstance(first, dict):
        return first.get("id")
    return None


def token_of(ctx: IterationContext) -> Optional[str]:
    """Token returned by the scenario setup, if any."""
    if isinstance(ctx.data, dict):
        return ctx.data.get("token")
    return None
