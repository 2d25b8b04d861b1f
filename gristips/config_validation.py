"""ProConnect configuration checks, run once at startup.

Messages are in French like the rest of the user-facing texts; they are
shown by the health endpoint and written to the logs.
"""

import logging
import re
import time
from dataclasses import dataclass, field
from typing import Literal
from urllib.parse import urlsplit

import httpx

from gristips.config import Settings
from gristips.constants import PROCONNECT_TIMEOUT, PROCONNECT_USER_AGENT
from gristips.exceptions import ConfigurationError
from gristips.utils.logging import LogContext, log_error

logger = logging.getLogger(__name__)

Environment = Literal["development", "integration", "production"]

REQUIRED_PROCONNECT_SCOPES = (
    "openid",
    "given_name",
    "usual_name",
    "email",
    "organizational_unit",
    "belonging_population",
)

PLACEHOLDER_CLIENT_IDS = ("your_client_id_here", "your_client_id")
PLACEHOLDER_CLIENT_SECRETS = ("your_client_secret_here", "your_client_secret")
DEFAULT_APP_SECRETS = (
    "development_secret_change_in_production",
    "change-me-to-a-secure-random-string",
    "change_me_in_production",
    "secret",
)

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)


@dataclass
class ProConnectValidationResult:
    environment: Environment
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


@dataclass(frozen=True)
class ProConnectEndpoints:
    authorization: str
    token: str
    userinfo: str
    jwks: str
    end_session: str
    well_known: str

    @classmethod
    def from_domain(cls, domain: str) -> "ProConnectEndpoints":
        """Endpoints of the ProConnect v2 API served on ``domain``."""
        base = f"https://{domain}/api/v2"
        return cls(
            authorization=f"{base}/authorize",
            token=f"{base}/token",
            userinfo=f"{base}/userinfo",
            jwks=f"{base}/jwks",
            end_session=f"{base}/session/end",
            well_known=f"{base}/.well-known/openid-configuration",
        )


@dataclass(frozen=True)
class ProConnectConfig:
    client_id: str
    client_secret: str
    domain: str
    issuer: str
    endpoints: ProConnectEndpoints
    scopes: tuple[str, ...]
    environment: Environment
    redirect_uri: str
    require_agent_claim: bool = True


@dataclass
class ConnectivityResult:
    is_reachable: bool
    errors: list[str] = field(default_factory=list)
    latency_ms: int | None = None


def determine_environment(settings: Settings) -> Environment:
    """Tell the ProConnect environment from the issuer, then from APP_ENV."""
    issuer = settings.proconnect_issuer
    if issuer:
        if "agent-connect-particulier" in issuer:
            return "integration"
        if "agent-connect" in issuer:
            return "production"

    if settings.is_production:
        return "production"
    return "integration"


def validate_proconnect_environment(settings: Settings) -> ProConnectValidationResult:
    """Check the ProConnect related settings and collect errors and warnings."""
    result = ProConnectValidationResult(environment=determine_environment(settings))
    errors, warnings = result.errors, result.warnings

    required = {
        "PROCONNECT_CLIENT_ID": settings.proconnect_client_id,
        "PROCONNECT_CLIENT_SECRET": settings.proconnect_client_secret,
        "PROCONNECT_DOMAIN": settings.proconnect_domain,
        "APP_SECRET_KEY": settings.app_secret_key,
        "APP_URL": settings.app_url,
        "DATABASE_URL": str(settings.database_url) if settings.database_url else "",
    }
    for name, value in required.items():
        if not value:
            errors.append(f"Variable d'environnement manquante: {name}")

    client_id = settings.proconnect_client_id
    if client_id:
        if client_id in PLACEHOLDER_CLIENT_IDS:
            errors.append("PROCONNECT_CLIENT_ID contient encore la valeur par défaut")
        if len(client_id) < 10:
            warnings.append(
                "PROCONNECT_CLIENT_ID semble trop court (minimum recommandé: 10 caractères)"
            )
        if not UUID_PATTERN.match(client_id):
            warnings.append("PROCONNECT_CLIENT_ID ne semble pas être un UUID valide")

    client_secret = settings.proconnect_client_secret
    if client_secret:
        if client_secret in PLACEHOLDER_CLIENT_SECRETS:
            errors.append("PROCONNECT_CLIENT_SECRET contient encore la valeur par défaut")
        if len(client_secret) < 32:
            warnings.append(
                "PROCONNECT_CLIENT_SECRET semble trop court (minimum recommandé: 32 caractères)"
            )
        if re.search(r"\s", client_secret):
            errors.append("PROCONNECT_CLIENT_SECRET ne doit pas contenir d'espaces")

    if settings.app_url:
        url = urlsplit(settings.app_url)
        if url.scheme not in ("http", "https") or not url.hostname:
            errors.append("APP_URL n'est pas une URL valide")
        else:
            if settings.is_production and url.scheme != "https":
                errors.append("APP_URL doit utiliser HTTPS en production")
            if url.path not in ("", "/") and url.path.endswith("/"):
                warnings.append("APP_URL ne devrait pas se terminer par un slash")
            if settings.is_production and not url.hostname.endswith(".gouv.fr"):
                warnings.append("En production, il est recommandé d'utiliser un domaine .gouv.fr")
            warnings.append(
                f"Assurez-vous que l'URL de callback {settings.proconnect_redirect_uri} "
                "est configurée dans votre application ProConnect"
            )

    domain = settings.proconnect_domain
    if domain:
        if "." not in domain:
            errors.append("PROCONNECT_DOMAIN doit être un domaine valide")
        if result.environment == "integration" and "integ" not in domain:
            warnings.append(
                "Pour l'environnement d'intégration, utilisez un domaine contenant 'integ'"
            )

    issuer = settings.proconnect_issuer
    if issuer:
        if domain and domain not in issuer:
            warnings.append(
                f"PROCONNECT_ISSUER ({issuer}) ne correspond pas au PROCONNECT_DOMAIN ({domain})"
            )
    elif domain:
        warnings.append(
            f"PROCONNECT_ISSUER non défini. Utilisation par défaut: https://{domain}/api/v2"
        )

    secret = settings.app_secret_key
    if secret:
        if secret in DEFAULT_APP_SECRETS and settings.is_production:
            errors.append(
                "APP_SECRET_KEY doit être changé en production (valeur par défaut détectée)"
            )
        if len(secret) < 32:
            warnings.append(
                "APP_SECRET_KEY devrait faire au moins 32 caractères pour une sécurité optimale"
            )
        if not (
            re.search(r"[A-Z]", secret) and re.search(r"[a-z]", secret) and re.search(r"[0-9]", secret)
        ):
            warnings.append("APP_SECRET_KEY devrait contenir des majuscules, minuscules et chiffres")

    if settings.database_url:
        _check_database_url(str(settings.database_url), settings.is_production, result)

    scopes = settings.proconnect_scopes.split()
    missing_scopes = [s for s in REQUIRED_PROCONNECT_SCOPES if s not in scopes]
    if missing_scopes:
        errors.append(f"Scopes ProConnect manquants: {', '.join(missing_scopes)}")

    return result


def _check_database_url(
    database_url: str, is_production: bool, result: ProConnectValidationResult
) -> None:
    if not database_url.startswith(("postgresql://", "postgres://", "postgresql+")):
        result.errors.append(
            "DATABASE_URL doit être une URL PostgreSQL valide (postgresql:// ou postgres://)"
        )
    url = urlsplit(database_url)
    if not url.hostname:
        result.errors.append("DATABASE_URL doit contenir un hostname valide")
    if not url.path or url.path == "/":
        result.errors.append("DATABASE_URL doit spécifier un nom de base de données")
    if is_production and (url.username == "postgres" or url.password == "password"):
        result.warnings.append(
            "Utilisez des credentials de base de données sécurisés en production"
        )


def build_proconnect_config(
    settings: Settings, environment: Environment | None = None
) -> ProConnectConfig:
    """Build the ProConnect client configuration from settings, without validating."""
    endpoints = ProConnectEndpoints.from_domain(settings.proconnect_domain)
    return ProConnectConfig(
        client_id=settings.proconnect_client_id,
        client_secret=settings.proconnect_client_secret,
        domain=settings.proconnect_domain,
        issuer=settings.proconnect_issuer or f"https://{settings.proconnect_domain}/api/v2",
        endpoints=endpoints,
        scopes=tuple(settings.proconnect_scopes.split()),
        environment=environment or determine_environment(settings),
        redirect_uri=settings.proconnect_redirect_uri,
        require_agent_claim=settings.proconnect_require_agent_claim,
    )


def get_validated_proconnect_config(settings: Settings) -> ProConnectConfig:
    """Build the ProConnect configuration, refusing an invalid one.

    Raises:
        ConfigurationError: If validation reports errors
    """
    result = validate_proconnect_environment(settings)
    if not result.is_valid:
        raise ConfigurationError(
            f"Configuration ProConnect invalide: {', '.join(result.errors)}"
        )
    return build_proconnect_config(settings, result.environment)


def log_validation_results(
    result: ProConnectValidationResult, settings: Settings | None = None
) -> None:
    """Write a validation report to the logs, with the endpoints in use when settings are given."""
    log = LogContext(logger, environment=result.environment)

    for error in result.errors:
        log.error(f"ProConnect configuration error: {error}")
    for warning in result.warnings:
        log.warning(f"ProConnect configuration warning: {warning}")

    if result.is_valid:
        suffix = " (with warnings)" if result.warnings else ""
        log.info(f"ProConnect configuration valid{suffix}")

    if settings is None:
        return
    endpoints = ProConnectEndpoints.from_domain(settings.proconnect_domain)
    log.info(
        f"ProConnect endpoints: authorization={endpoints.authorization} "
        f"token={endpoints.token} userinfo={endpoints.userinfo} jwks={endpoints.jwks}"
    )


def validate_configuration_at_startup(settings: Settings) -> ProConnectValidationResult:
    """Validate and log the configuration when the application starts.

    Raises:
        ConfigurationError: In production, when the configuration is invalid
    """
    result = validate_proconnect_environment(settings)
    log_validation_results(result, settings)

    if not result.is_valid:
        error = ConfigurationError(
            f"Configuration ProConnect invalide: {', '.join(result.errors)}"
        )
        log_error(error, action="startup_validation")
        if settings.is_production:
            raise error
        logger.warning("Starting in development mode despite configuration errors")

    return result


async def validate_proconnect_connectivity(
    config: ProConnectConfig, client: httpx.AsyncClient
) -> ConnectivityResult:
    """Check that the ProConnect JWKS endpoint answers."""
    start = time.perf_counter()
    try:
        response = await client.get(
            config.endpoints.jwks,
            headers={"User-Agent": PROCONNECT_USER_AGENT},
            timeout=PROCONNECT_TIMEOUT,
        )
    except httpx.TimeoutException:
        return ConnectivityResult(
            is_reachable=False,
            errors=["Timeout lors de la connexion aux endpoints ProConnect"],
        )
    except httpx.HTTPError as e:
        return ConnectivityResult(
            is_reachable=False, errors=[f"Erreur de connectivité: {e}"]
        )

    latency_ms = int((time.perf_counter() - start) * 1000)
    errors = []
    if response.is_error:
        errors.append(
            f"Endpoint JWKS non accessible: {response.status_code} {response.reason_phrase}"
        )
    return ConnectivityResult(is_reachable=not errors, errors=errors, latency_ms=latency_ms)
