"""Session lifetime on top of Starlette's signed cookie session.

The cookie carries the user id, an absolute expiry (30 days) and the time of
the last request; a session idle for more than two hours is expired.
"""

import time
from dataclasses import dataclass
from typing import Literal

from fastapi import Request

from gristips.constants import SESSION_INACTIVITY_TIMEOUT, SESSION_MAX_AGE

SessionProblem = Literal["no_session", "expired"]

# Sessions closer than this to their expiry are extended
RENEW_THRESHOLD = 60 * 60


@dataclass
class SessionCheck:
    valid: bool
    reason: SessionProblem | None = None
    user_id: int | None = None
    expires_at: float | None = None


def start_session(
    request: Request, user_id: int, id_token: str | None = None, now: float | None = None
) -> None:
    """Replace whatever is in the session with a fresh signed-in session."""
    now = time.time() if now is None else now
    request.session.clear()
    request.session["user_id"] = user_id
    request.session["expires_at"] = now + SESSION_MAX_AGE
    request.session["last_activity"] = now
    if id_token:
        request.session["id_token"] = id_token


def check_session(request: Request, now: float | None = None) -> SessionCheck:
    """Check the session and record activity when it is still valid."""
    now = time.time() if now is None else now
    session = request.session

    user_id = session.get("user_id")
    if not user_id:
        return SessionCheck(valid=False, reason="no_session")

    expires_at = session.get("expires_at", 0)
    last_activity = session.get("last_activity", 0)
    if now >= expires_at or now - last_activity > SESSION_INACTIVITY_TIMEOUT:
        return SessionCheck(valid=False, reason="expired", user_id=user_id)

    if expires_at - now < RENEW_THRESHOLD:
        expires_at = now + SESSION_MAX_AGE
        session["expires_at"] = expires_at
    session["last_activity"] = now

    return SessionCheck(valid=True, user_id=user_id, expires_at=expires_at)


def end_session(request: Request) -> str | None:
    """Clear the session and return the ProConnect ID token it held, if any."""
    id_token = request.session.get("id_token")
    request.session.clear()
    return id_token
