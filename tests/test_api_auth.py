"""Tests for authentication API endpoints."""

import dataclasses
from urllib.parse import parse_qs, urlsplit

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from gristips.models.user import User

AGENT_CLAIMS = {
    "given_name": "Marie",
    "usual_name": "Dupont",
    "organizational_unit": "DINUM",
    "belonging_population": ["agent"],
}


async def _start_login(client: AsyncClient) -> dict[str, str]:
    response = await client.get("/api/auth/proconnect/login", follow_redirects=False)
    assert response.status_code == 302
    params = parse_qs(urlsplit(response.headers["location"]).query)
    return {name: values[0] for name, values in params.items()}


async def _sign_in(client: AsyncClient, proconnect, make_token, **claims):
    """Run the whole ProConnect flow and return the callback response."""
    params = await _start_login(client)
    proconnect.tokens = {
        "access_token": "access-token",
        "token_type": "Bearer",
        "id_token": make_token(nonce=params["nonce"], **{**AGENT_CLAIMS, **claims}),
    }
    return await client.get(
        "/api/auth/proconnect/callback",
        params={"code": "authorization-code", "state": params["state"]},
        follow_redirects=False,
    )


class TestProConnectLogin:
    """Tests for /api/auth/proconnect/login."""

    @pytest.mark.asyncio
    async def test_login_redirects_to_proconnect(self, client: AsyncClient, proconnect):
        params = await _start_login(client)

        assert params["client_id"] == proconnect.client.config.client_id
        assert params["acr_values"] == "eidas1"
        assert params["state"]
        assert params["nonce"]

    @pytest.mark.asyncio
    async def test_each_login_uses_fresh_state(self, client: AsyncClient, proconnect):
        first = await _start_login(client)
        second = await _start_login(client)

        assert first["state"] != second["state"]
        assert first["nonce"] != second["nonce"]


class TestProConnectCallback:
    """Tests for /api/auth/proconnect/callback."""

    @pytest.mark.asyncio
    async def test_successful_sign_in(self, client: AsyncClient, proconnect, make_token, db_session):
        response = await _sign_in(client, proconnect, make_token)

        assert response.status_code == 302
        assert response.headers["location"] == "/admin"

        result = await db_session.execute(select(User).where(User.proconnect_sub == "sub-agent-123"))
        user = result.scalar_one()
        assert user.email == "agent@numerique.gouv.fr"
        assert user.name == "Marie Dupont"
        assert user.organization == "DINUM"
        assert user.is_public_agent

        me = await client.get("/api/auth/me")
        assert me.status_code == 200
        data = me.json()
        assert data["email"] == "agent@numerique.gouv.fr"
        assert data["givenName"] == "Marie"
        assert data["isPublicAgent"] is True

    @pytest.mark.asyncio
    async def test_sign_in_links_existing_account(
        self, client: AsyncClient, proconnect, make_token, db_session
    ):
        existing = User(email="agent@numerique.gouv.fr", name="Ancien nom")
        db_session.add(existing)
        await db_session.commit()

        response = await _sign_in(client, proconnect, make_token)

        assert response.status_code == 302
        await db_session.refresh(existing)
        assert existing.proconnect_sub == "sub-agent-123"
        assert existing.name == "Marie Dupont"

    @pytest.mark.asyncio
    async def test_missing_claims_are_fetched_from_userinfo(
        self, client: AsyncClient, proconnect, make_token
    ):
        proconnect.userinfo = {"sub": "sub-agent-123", **AGENT_CLAIMS}

        response = await _sign_in(
            client,
            proconnect,
            make_token,
            given_name=None,
            usual_name=None,
            organizational_unit=None,
            belonging_population=None,
        )

        assert response.headers["location"] == "/admin"
        assert any(r.url.path.endswith("/userinfo") for r in proconnect.requests)

    @pytest.mark.asyncio
    async def test_userinfo_for_another_subject(self, client: AsyncClient, proconnect, make_token):
        proconnect.userinfo = {"sub": "someone-else", **AGENT_CLAIMS}

        response = await _sign_in(client, proconnect, make_token, given_name=None)

        assert response.headers["location"] == "/auth/error?error=OAuthCallback"

    @pytest.mark.asyncio
    async def test_non_agent_is_refused(
        self, client: AsyncClient, proconnect, make_token, db_session
    ):
        response = await _sign_in(client, proconnect, make_token, belonging_population=None)

        assert response.headers["location"] == "/auth/error?error=AccessDenied"
        result = await db_session.execute(select(User))
        assert result.scalars().all() == []

        me = await client.get("/api/auth/me")
        assert me.status_code == 401

    @pytest.mark.asyncio
    async def test_agent_claim_not_required(self, client: AsyncClient, proconnect, make_token):
        proconnect.client.config = dataclasses.replace(
            proconnect.client.config, require_agent_claim=False
        )

        response = await _sign_in(client, proconnect, make_token, belonging_population=None)

        assert response.headers["location"] == "/admin"
        me = await client.get("/api/auth/me")
        assert me.json()["isPublicAgent"] is True

    @pytest.mark.asyncio
    async def test_state_mismatch(self, client: AsyncClient, proconnect):
        await _start_login(client)

        response = await client.get(
            "/api/auth/proconnect/callback",
            params={"code": "authorization-code", "state": "forged"},
            follow_redirects=False,
        )

        assert response.headers["location"] == "/auth/error?error=OAuthCallback"
        assert not any(r.url.path.endswith("/token") for r in proconnect.requests)

    @pytest.mark.asyncio
    async def test_callback_without_login(self, client: AsyncClient, proconnect):
        response = await client.get(
            "/api/auth/proconnect/callback",
            params={"code": "authorization-code", "state": "anything"},
            follow_redirects=False,
        )

        assert response.headers["location"] == "/auth/error?error=OAuthCallback"

    @pytest.mark.asyncio
    async def test_user_cancelled(self, client: AsyncClient, proconnect):
        await _start_login(client)

        response = await client.get(
            "/api/auth/proconnect/callback",
            params={"error": "access_denied"},
            follow_redirects=False,
        )

        assert response.headers["location"] == "/auth/error?error=AccessDenied"

    @pytest.mark.asyncio
    async def test_provider_error(self, client: AsyncClient, proconnect):
        response = await client.get(
            "/api/auth/proconnect/callback",
            params={"error": "server_error"},
            follow_redirects=False,
        )

        assert response.headers["location"] == "/auth/error?error=OAuthSignin"

    @pytest.mark.asyncio
    async def test_nonce_mismatch(self, client: AsyncClient, proconnect, make_token):
        params = await _start_login(client)
        proconnect.tokens = {
            "access_token": "access-token",
            "id_token": make_token(nonce="replayed", **AGENT_CLAIMS),
        }

        response = await client.get(
            "/api/auth/proconnect/callback",
            params={"code": "authorization-code", "state": params["state"]},
            follow_redirects=False,
        )

        assert response.headers["location"] == "/auth/error?error=OAuthCallback"

    @pytest.mark.asyncio
    async def test_incomplete_token_response(self, client: AsyncClient, proconnect):
        params = await _start_login(client)
        proconnect.tokens = {"access_token": "access-token"}

        response = await client.get(
            "/api/auth/proconnect/callback",
            params={"code": "authorization-code", "state": params["state"]},
            follow_redirects=False,
        )

        assert response.headers["location"] == "/auth/error?error=OAuthCallback"


class TestSession:
    """Tests for /api/auth/me, /api/auth/validate-session and /api/auth/logout."""

    @pytest.mark.asyncio
    async def test_me_unauthenticated(self, client: AsyncClient):
        response = await client.get("/api/auth/me")

        assert response.status_code == 401
        error = response.json()["error"]
        assert error["type"] == "authentication_failed"
        assert error["requestId"] == response.headers["X-Request-ID"]

    @pytest.mark.asyncio
    async def test_validate_session(self, client: AsyncClient, proconnect, make_token):
        await _sign_in(client, proconnect, make_token)

        response = await client.get("/api/auth/validate-session")

        assert response.status_code == 200
        data = response.json()
        assert data["valid"] is True
        assert data["session"]["user"]["email"] == "agent@numerique.gouv.fr"
        assert data["session"]["expires"]

    @pytest.mark.asyncio
    async def test_validate_without_session(self, client: AsyncClient):
        response = await client.get("/api/auth/validate-session")

        assert response.status_code == 401
        error = response.json()["error"]
        assert error["type"] == "authentication_failed"
        assert error["message"] == "Aucune session active trouvée"

    @pytest.mark.asyncio
    async def test_logout_signs_out_of_proconnect(
        self, client: AsyncClient, proconnect, make_token
    ):
        await _sign_in(client, proconnect, make_token)

        response = await client.get("/api/auth/logout", follow_redirects=False)

        assert response.status_code == 302
        location = response.headers["location"]
        assert location.startswith(proconnect.client.config.endpoints.end_session)
        params = parse_qs(urlsplit(location).query)
        assert params["id_token_hint"] == [proconnect.tokens["id_token"]]

        me = await client.get("/api/auth/me")
        assert me.status_code == 401

    @pytest.mark.asyncio
    async def test_logout_unauthenticated(self, client: AsyncClient, proconnect):
        response = await client.get("/api/auth/logout", follow_redirects=False)

        assert response.status_code == 302
        assert response.headers["location"] == "/"
