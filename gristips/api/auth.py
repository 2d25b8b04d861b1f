"""Authentication API endpoints (ProConnect sign-in, sign-out, session)."""

import logging
import secrets
from datetime import UTC, datetime
from typing import Annotated, Any
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gristips.api.dependencies import get_proconnect_client
from gristips.auth import get_current_user, parse_proconnect_profile
from gristips.auth.models import ProConnectProfile
from gristips.auth.proconnect import ProConnectClient
from gristips.auth.session import check_session, end_session, start_session
from gristips.config import get_settings
from gristips.db import get_db
from gristips.exceptions import AppError, ErrorType
from gristips.models.schemas import SessionInfo, SessionValidation, UserRead
from gristips.models.user import User
from gristips.utils.logging import log_auth_event, log_error

router = APIRouter()
settings = get_settings()
logger = logging.getLogger(__name__)

AFTER_SIGNIN_URL = "/admin"
ERROR_PAGE_URL = "/auth/error"

SESSION_PROBLEMS = {
    "no_session": (ErrorType.AUTHENTICATION_FAILED, "Aucune session active trouvée"),
    "expired": (ErrorType.SESSION_EXPIRED, "La session a expiré"),
}


def _error_redirect(error: str) -> RedirectResponse:
    return RedirectResponse(url=f"{ERROR_PAGE_URL}?{urlencode({'error': error})}", status_code=302)


async def _load_profile(
    proconnect: ProConnectClient, tokens: dict[str, Any], nonce: str
) -> tuple[ProConnectProfile, str]:
    """Verify the ID token and build the user profile, asking userinfo for missing claims."""
    id_token = tokens["id_token"]
    claims = await proconnect.verifier.verify(id_token, nonce=nonce, required_claims=("sub",))

    if not claims.get("email") or not claims.get("given_name"):
        logger.debug("ID token lacks profile claims, fetching userinfo")
        userinfo = await proconnect.fetch_userinfo(tokens["access_token"])
        if userinfo.get("sub") and userinfo["sub"] != claims["sub"]:
            raise AppError(
                ErrorType.PROCONNECT_ERROR,
                details="userinfo subject does not match the ID token",
            )
        claims = {**claims, **userinfo}

    return parse_proconnect_profile(claims), id_token


async def _upsert_user(db: AsyncSession, profile: ProConnectProfile, is_agent: bool) -> User:
    """Find the user by ProConnect subject, then by email, or create it."""
    result = await db.execute(select(User).where(User.proconnect_sub == profile.sub))
    user = result.scalar_one_or_none()

    if not user:
        # Link an existing account created before ProConnect was used
        result = await db.execute(select(User).where(User.email == profile.email))
        user = result.scalar_one_or_none()
        if user:
            logger.info(f"Linking ProConnect account to existing user {user.id}")

    if not user:
        user = User(email=profile.email)
        db.add(user)

    user.proconnect_sub = profile.sub
    user.email = profile.email
    user.name = profile.full_name
    user.given_name = profile.given_name
    user.usual_name = profile.usual_name
    user.organization = profile.organizational_unit
    user.is_public_agent = is_agent

    await db.flush()
    return user


# ============== ProConnect ==============


@router.get("/proconnect/login")
async def proconnect_login(
    request: Request,
    proconnect: Annotated[ProConnectClient, Depends(get_proconnect_client)],
) -> RedirectResponse:
    """Initiate ProConnect login."""
    state = secrets.token_urlsafe(32)
    nonce = secrets.token_urlsafe(32)
    request.session["oauth_state"] = state
    request.session["oauth_nonce"] = nonce

    return RedirectResponse(url=proconnect.authorization_url(state, nonce), status_code=302)


@router.get("/proconnect/callback")
async def proconnect_callback(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    proconnect: Annotated[ProConnectClient, Depends(get_proconnect_client)],
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
) -> RedirectResponse:
    """Handle ProConnect callback."""
    stored_state = request.session.pop("oauth_state", None)
    nonce = request.session.pop("oauth_nonce", None)

    if error:
        log_auth_event("signin_failed", provider="proconnect", reason=error)
        return _error_redirect("AccessDenied" if error == "access_denied" else "OAuthSignin")

    if not code or not stored_state or not nonce or not secrets.compare_digest(
        stored_state, state or ""
    ):
        log_auth_event("signin_failed", provider="proconnect", reason="invalid_state")
        return _error_redirect("OAuthCallback")

    try:
        tokens = await proconnect.exchange_code(code)
        profile, id_token = await _load_profile(proconnect, tokens, nonce)
    except AppError as e:
        log_error(e, action="proconnect_signin")
        log_auth_event("signin_failed", provider="proconnect", reason=e.type.value)
        return _error_redirect("OAuthCallback")

    is_agent = profile.is_public_agent if proconnect.config.require_agent_claim else True
    if not is_agent:
        log_auth_event(
            "access_denied",
            email=profile.email,
            provider="proconnect",
            reason="not_public_agent",
        )
        return _error_redirect("AccessDenied")

    user = await _upsert_user(db, profile, is_agent)
    await db.commit()

    start_session(request, user.id, id_token=id_token)
    log_auth_event(
        "signin_success",
        user_id=user.id,
        email=user.email,
        is_public_agent=user.is_public_agent,
        provider="proconnect",
    )
    return RedirectResponse(url=AFTER_SIGNIN_URL, status_code=302)


# ============== Common ==============


@router.get("/logout")
async def logout(
    request: Request,
    proconnect: Annotated[ProConnectClient, Depends(get_proconnect_client)],
) -> RedirectResponse:
    """Log out the current user, from ProConnect as well when possible."""
    user_id = request.session.get("user_id")
    id_token = end_session(request)
    if user_id:
        log_auth_event("signout", user_id=user_id)

    if id_token:
        url = proconnect.end_session_url(
            id_token_hint=id_token,
            post_logout_redirect_uri=f"{settings.app_url.rstrip('/')}/",
            state=secrets.token_urlsafe(16),
        )
        return RedirectResponse(url=url, status_code=302)
    return RedirectResponse(url="/", status_code=302)


@router.get("/me")
async def get_me(user: Annotated[User, Depends(get_current_user)]) -> UserRead:
    """Get current authenticated user."""
    return UserRead.model_validate(user)


@router.get("/validate-session")
async def validate_session(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> SessionValidation:
    """Check the session cookie and return the session it holds."""
    check = check_session(request)
    if not check.valid:
        reason = check.reason or "unknown"
        request.session.clear()
        error_type, message = SESSION_PROBLEMS.get(
            reason, (ErrorType.AUTHENTICATION_FAILED, "Session invalide")
        )
        raise AppError(error_type, details=f"Validation échouée: {reason}", message=message)

    result = await db.execute(select(User).where(User.id == check.user_id))
    user = result.scalar_one_or_none()
    if not user:
        request.session.clear()
        raise AppError(
            ErrorType.AUTHENTICATION_FAILED,
            details="Validation échouée: unknown_user",
            message="Session invalide",
        )

    return SessionValidation(
        valid=True,
        session=SessionInfo(
            user=UserRead.model_validate(user),
            expires=datetime.fromtimestamp(check.expires_at, UTC),
        ),
    )
