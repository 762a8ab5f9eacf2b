"""district_etl.auth

Bearer-token validation against the hosted auth service.

The token is not decoded locally: it is sent to {SUPABASE_URL}/auth/v1/user,
which answers 200 with the user object for a live session and 401 otherwise.
The capability check itself is has_role() in district_etl.store.
"""

from __future__ import annotations

import logging

import requests

from district_etl import config

log = logging.getLogger(__name__)


def bearer_token(authorization: str) -> str:
    """Strip an optional 'Bearer ' prefix from an Authorization header value."""
    value = authorization.lstrip()
    if value[:7].lower() == "bearer ":
        return value[7:].strip()
    return value.strip()


def resolve_user(token: str) -> str | None:
    """Return the user id the token belongs to, or None if it is not accepted."""
    if not config.SUPABASE_URL:
        log.warning("SUPABASE_URL not configured, cannot validate tokens")
        return None
    if not token:
        return None
    try:
        resp = requests.get(
            f"{config.SUPABASE_URL}/auth/v1/user",
            headers={
                "Authorization": f"Bearer {token}",
                "apikey": config.SUPABASE_ANON_KEY,
            },
            timeout=config.AUTH_TIMEOUT_SECONDS,
        )
    except requests.RequestException as exc:
        log.warning("Auth service unreachable: %s", exc)
        return None

    if resp.status_code != 200:
        log.info("Token rejected by auth service: HTTP %s", resp.status_code)
        return None
    try:
        user_id = resp.json().get("id")
    except ValueError:
        log.warning("Auth service returned a non-JSON body")
        return None
    return str(user_id) if user_id else None
