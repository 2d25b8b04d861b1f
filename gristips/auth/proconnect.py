"""ProConnect (OIDC) client: authorization URL, code exchange, token verification."""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Iterable
from urllib.parse import urlencode

import httpx
from authlib.jose import JsonWebKey, JsonWebToken
from authlib.jose.errors import JoseError
from pydantic import ValidationError

from gristips.auth.models import ProConnectProfile
from gristips.config_validation import ProConnectConfig
from gristips.constants import (
    JWKS_CACHE_TTL,
    JWT_CLOCK_TOLERANCE,
    PROCONNECT_TIMEOUT,
    PROCONNECT_USER_AGENT,
)
from gristips.exceptions import AppError, ErrorKind, ErrorType, ProConnectError
from gristips.utils.logging import log_error
from gristips.utils.retry import ExponentialBackoff, RetryConfig, kind_for_status

logger = logging.getLogger(__name__)

JWKS_RETRY_CONFIG = RetryConfig(max_attempts=3, base_delay=0.5, max_delay=5.0)
SIGNING_ALGORITHMS = ("RS256", "RS384", "RS512", "PS256", "ES256", "ES384")


def parse_proconnect_profile(claims: dict[str, Any]) -> ProConnectProfile:
    """Validate ProConnect claims into a profile.

    Raises:
        ProConnectError: If a required claim is missing or has the wrong type
    """
    try:
        return ProConnectProfile.model_validate(claims)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise ProConnectError(
            f"Claims ProConnect invalides: {fields}", kind=ErrorKind.VALIDATION
        ) from e


class JwksCache:
    """ProConnect signing keys, fetched on demand and kept for ``ttl`` seconds."""

    def __init__(
        self,
        jwks_url: str,
        client: httpx.AsyncClient,
        ttl: float = JWKS_CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
        retry_config: RetryConfig = JWKS_RETRY_CONFIG,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.jwks_url = jwks_url
        self.ttl = ttl
        self._client = client
        self._clock = clock
        self._retry_config = retry_config
        self._sleep = sleep
        self._keys: list[dict[str, Any]] | None = None
        self._expires_at = 0.0

    async def get_keys(self) -> list[dict[str, Any]]:
        """Return the cached key set, fetching it when missing or expired.

        Raises:
            ProConnectError: If the key set cannot be fetched
        """
        now = self._clock()
        if self._keys is not None and now < self._expires_at:
            return self._keys

        backoff = ExponentialBackoff(
            self._retry_config, sleep=self._sleep, operation_name="fetch_jwks"
        )
        try:
            keys = await backoff.execute(self._fetch)
        except ProConnectError as e:
            log_error(e, action="fetch_jwks")
            raise

        self._keys = keys
        self._expires_at = now + self.ttl
        logger.debug(f"Fetched {len(keys)} JWKS keys from {self.jwks_url}")
        return keys

    def invalidate(self) -> None:
        """Drop the cached keys so the next call fetches them again."""
        self._keys = None
        self._expires_at = 0.0

    async def _fetch(self) -> list[dict[str, Any]]:
        try:
            response = await self._client.get(
                self.jwks_url,
                headers={"User-Agent": PROCONNECT_USER_AGENT, "Accept": "application/json"},
                timeout=PROCONNECT_TIMEOUT,
            )
        except httpx.TimeoutException as e:
            raise ProConnectError(
                "Timeout lors de la récupération des clés JWKS", kind=ErrorKind.TIMEOUT
            ) from e
        except httpx.HTTPError as e:
            raise ProConnectError(
                f"Erreur réseau lors de la récupération des clés JWKS: {e}",
                kind=ErrorKind.NETWORK,
            ) from e

        if response.is_error:
            raise ProConnectError(
                f"Échec de récupération des clés JWKS: "
                f"{response.status_code} {response.reason_phrase}",
                kind=kind_for_status(response.status_code),
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ProConnectError(
                "Format JWKS invalide: réponse non JSON", kind=ErrorKind.VALIDATION
            ) from e

        keys = data.get("keys") if isinstance(data, dict) else None
        if not isinstance(keys, list) or not keys:
            raise ProConnectError(
                "Format JWKS invalide: aucune clé trouvée", kind=ErrorKind.VALIDATION
            )
        return keys


class ProConnectTokenVerifier:
    """Verifies JWTs signed by ProConnect (ID tokens and signed userinfo)."""

    def __init__(
        self,
        jwks: JwksCache,
        issuer: str,
        client_id: str,
        leeway: int = JWT_CLOCK_TOLERANCE,
        algorithms: Iterable[str] = SIGNING_ALGORITHMS,
    ):
        self.jwks = jwks
        self.issuer = issuer
        self.client_id = client_id
        self.leeway = leeway
        self._jwt = JsonWebToken(list(algorithms))
        self._claims_options = {
            "iss": {"essential": True, "value": issuer},
            "aud": {"essential": True, "value": client_id},
            "exp": {"essential": True},
        }

    async def verify(
        self,
        token: str,
        nonce: str | None = None,
        required_claims: Iterable[str] = ("sub", "email"),
    ) -> dict[str, Any]:
        """Verify signature and standard claims, and return the payload.

        Every key of the set is tried in turn.

        Raises:
            AppError: VALIDATION_ERROR if the token is empty
            ProConnectError: If no key verifies the token or claims are wrong
        """
        if not token or not isinstance(token, str):
            raise AppError(ErrorType.VALIDATION_ERROR, details="Token JWT manquant ou invalide")

        keys = await self.jwks.get_keys()

        claims = None
        last_error: Exception | None = None
        for jwk in keys:
            try:
                key = JsonWebKey.import_key(jwk)
                claims = self._jwt.decode(token, key, claims_options=self._claims_options)
                claims.validate(leeway=self.leeway)
                break
            except (JoseError, ValueError, TypeError, KeyError) as e:
                claims = None
                last_error = e

        if claims is None:
            error = ProConnectError(
                "Impossible de vérifier le token JWT"
                + (f": {last_error}" if last_error else ""),
                kind=ErrorKind.AUTHENTICATION,
            )
            log_error(error, action="verify_proconnect_token")
            raise error

        payload = dict(claims)

        if nonce is not None and payload.get("nonce") != nonce:
            raise ProConnectError("Nonce du token JWT invalide", kind=ErrorKind.AUTHENTICATION)

        missing = [c for c in required_claims if not payload.get(c)]
        if missing:
            raise ProConnectError(
                f"Token JWT valide mais claims manquants: {', '.join(missing)}",
                kind=ErrorKind.AUTHENTICATION,
            )

        return payload


class ProConnectClient:
    """Talks to ProConnect for the authorization code flow."""

    def __init__(
        self,
        config: ProConnectConfig,
        http_client: httpx.AsyncClient,
        jwks: JwksCache | None = None,
        verifier: ProConnectTokenVerifier | None = None,
    ):
        self.config = config
        self._http = http_client
        self.jwks = jwks or JwksCache(config.endpoints.jwks, http_client)
        self.verifier = verifier or ProConnectTokenVerifier(
            self.jwks, config.issuer, config.client_id
        )

    @property
    def http_client(self) -> httpx.AsyncClient:
        return self._http

    def authorization_url(self, state: str, nonce: str) -> str:
        """URL the browser is redirected to in order to sign in."""
        params = {
            "response_type": "code",
            "client_id": self.config.client_id,
            "redirect_uri": self.config.redirect_uri,
            "scope": " ".join(self.config.scopes),
            "state": state,
            "nonce": nonce,
            "acr_values": "eidas1",
        }
        return f"{self.config.endpoints.authorization}?{urlencode(params)}"

    def end_session_url(
        self, id_token_hint: str, post_logout_redirect_uri: str, state: str | None = None
    ) -> str:
        """URL that signs the user out of ProConnect too."""
        params = {
            "id_token_hint": id_token_hint,
            "post_logout_redirect_uri": post_logout_redirect_uri,
        }
        if state:
            params["state"] = state
        return f"{self.config.endpoints.end_session}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> dict[str, Any]:
        """Exchange an authorization code for tokens.

        Returns:
            The token response (``access_token``, ``id_token``, ...)
        """
        response = await self._send(
            "POST",
            self.config.endpoints.token,
            "token",
            data={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.config.redirect_uri,
                "client_id": self.config.client_id,
                "client_secret": self.config.client_secret,
            },
            headers={"Accept": "application/json"},
        )
        try:
            tokens = response.json()
        except ValueError as e:
            raise ProConnectError("Réponse du endpoint token invalide") from e

        if not isinstance(tokens, dict) or "error" in tokens:
            description = tokens.get("error_description") if isinstance(tokens, dict) else None
            raise ProConnectError(f"Erreur OAuth: {description or tokens}")
        if not tokens.get("access_token") or not tokens.get("id_token"):
            raise ProConnectError("Réponse du endpoint token incomplète")
        return tokens

    async def fetch_userinfo(self, access_token: str) -> dict[str, Any]:
        """Fetch user claims. ProConnect answers with a signed JWT, verified here."""
        response = await self._send(
            "GET",
            self.config.endpoints.userinfo,
            "userinfo",
            headers={"Authorization": f"Bearer {access_token}"},
        )

        content_type = response.headers.get("content-type", "")
        if content_type.startswith("application/jwt"):
            return await self.verifier.verify(response.text.strip(), required_claims=("sub",))

        try:
            claims = response.json()
        except ValueError as e:
            raise ProConnectError("Réponse userinfo invalide") from e
        if not isinstance(claims, dict):
            raise ProConnectError("Réponse userinfo invalide")
        return claims

    async def _send(self, method: str, url: str, endpoint: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._http.request(
                method, url, timeout=PROCONNECT_TIMEOUT, **kwargs
            )
        except httpx.TimeoutException as e:
            raise ProConnectError(
                f"Timeout sur le endpoint {endpoint}", kind=ErrorKind.TIMEOUT
            ) from e
        except httpx.HTTPError as e:
            raise ProConnectError(
                f"Erreur réseau sur le endpoint {endpoint}: {e}", kind=ErrorKind.NETWORK
            ) from e

        if response.is_error:
            raise ProConnectError(
                f"Endpoint {endpoint} en erreur: {response.status_code} {response.reason_phrase}",
                kind=kind_for_status(response.status_code),
            )
        return response
