"""Grist REST API client.

Every call sends the user's API key as a Bearer token. Transient failures
(timeouts, network errors, 5xx, 429) are retried with exponential backoff.
Documentation: https://support.getgrist.com/api/
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar
from urllib.parse import quote

import httpx
from pydantic import TypeAdapter, ValidationError

from gristips.exceptions import AppError, ErrorKind, ErrorType, GristApiError
from gristips.services.grist.types import GristColumn, GristDocument, GristTable
from gristips.utils.encryption import mask_secret
from gristips.utils.retry import ExponentialBackoff, RetryConfig, kind_for_status

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_GRIST_URL = "https://docs.getgrist.com"
VALIDATION_RETRY = RetryConfig(max_attempts=2, base_delay=1.0, max_delay=5.0)
FETCH_RETRY = RetryConfig(max_attempts=3, base_delay=1.0, max_delay=10.0)

_documents_adapter = TypeAdapter(list[GristDocument])
_tables_adapter = TypeAdapter(list[GristTable])
_columns_adapter = TypeAdapter(list[GristColumn])


def _require(value: str | None, details: str, message: str) -> None:
    if not value or not isinstance(value, str) or not value.strip():
        raise AppError(ErrorType.VALIDATION_ERROR, details=details, message=message)


class GristApiClient:
    """Client for the Grist API.

    Usage:
        client = GristApiClient("https://docs.getgrist.com", http_client=http_client)

        if await client.validate_api_key(api_key):
            docs = await client.get_documents(api_key)
            tables = await client.get_tables(api_key, docs[0].id)
    """

    def __init__(
        self,
        base_url: str = DEFAULT_GRIST_URL,
        timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http = http_client
        self._sleep = sleep

    async def _send(self, endpoint: str, api_key: str) -> httpx.Response:
        url = f"{self.base_url}{endpoint}"
        headers = {
            "Authorization": f"Bearer {api_key}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        try:
            if self._http is not None:
                return await self._http.get(url, headers=headers, timeout=self.timeout)
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                return await client.get(url, headers=headers)
        except httpx.TimeoutException as e:
            raise AppError(
                ErrorType.EXTERNAL_SERVICE_ERROR,
                details=f"Request timeout after {self.timeout}s: {endpoint}",
                kind=ErrorKind.TIMEOUT,
            ) from e
        except httpx.HTTPError as e:
            raise AppError(
                ErrorType.EXTERNAL_SERVICE_ERROR,
                details=f"Cannot reach Grist: {e}",
                kind=ErrorKind.NETWORK,
            ) from e

    def _check_status(
        self, response: httpx.Response, what: str, not_found: str, failure: str
    ) -> None:
        status = response.status_code
        if status in (401, 403):
            raise AppError(
                ErrorType.AUTHENTICATION_ERROR,
                details="Invalid or expired API key",
                message="Clé API invalide ou expirée",
                kind=ErrorKind.AUTHENTICATION,
            )
        if status == 404:
            raise AppError(
                ErrorType.NOT_FOUND,
                details=f"{what}: not found",
                message=not_found,
                kind=ErrorKind.NOT_FOUND,
            )
        if status == 429:
            raise AppError(
                ErrorType.RATE_LIMIT_EXCEEDED,
                details="Grist rate limit exceeded",
                message="Limite de taux dépassée. Veuillez patienter.",
                kind=ErrorKind.RATE_LIMITED,
            )
        if response.is_error:
            raise GristApiError(
                f"Failed to fetch {what}: {status} {response.reason_phrase}",
                message=failure,
                kind=kind_for_status(status),
            )

    def _parse(self, response: httpx.Response, key: str, adapter: TypeAdapter[list[T]]) -> list[T]:
        try:
            data = response.json()
            items = data.get(key) if isinstance(data, dict) else None
            if not isinstance(items, list):
                raise ValueError(f"missing '{key}' list")
            return adapter.validate_python(items)
        except (ValueError, ValidationError) as e:
            raise GristApiError(
                f"Invalid response format from Grist API: {e}",
                message="Format de réponse invalide de l'API Grist",
                kind=ErrorKind.VALIDATION,
            ) from e

    async def _fetch(
        self,
        endpoint: str,
        api_key: str,
        key: str,
        adapter: TypeAdapter[list[T]],
        what: str,
        not_found: str,
        failure: str,
    ) -> list[T]:
        async def attempt() -> list[T]:
            response = await self._send(endpoint, api_key)
            self._check_status(response, what, not_found, failure)
            return self._parse(response, key, adapter)

        backoff = ExponentialBackoff(FETCH_RETRY, sleep=self._sleep, operation_name=f"grist {what}")
        try:
            return await backoff.execute(attempt)
        except AppError as e:
            logger.error(f"Failed to fetch Grist {what}: {e}")
            raise

    async def validate_api_key(self, api_key: str) -> bool:
        """Check an API key against ``/api/orgs``.

        Returns:
            True if Grist accepts the key; False if it rejects it or cannot be reached
        """
        if not api_key or not isinstance(api_key, str) or not api_key.strip():
            logger.info("API key validation failed: empty key")
            return False

        logger.debug(f"Validating Grist API key {mask_secret(api_key)}")

        async def attempt() -> bool:
            response = await self._send("/api/orgs", api_key)
            if response.status_code in (401, 403):
                return False
            if response.is_error:
                raise GristApiError(
                    f"API validation failed: {response.status_code} {response.reason_phrase}",
                    kind=kind_for_status(response.status_code),
                )
            return True

        backoff = ExponentialBackoff(
            VALIDATION_RETRY, sleep=self._sleep, operation_name="grist validate_api_key"
        )
        try:
            valid = await backoff.execute(attempt)
        except AppError as e:
            logger.warning(f"Grist API key validation failed: {e}")
            return False

        if not valid:
            logger.info(f"Grist rejected API key {mask_secret(api_key)}")
        return valid

    async def get_documents(self, api_key: str) -> list[GristDocument]:
        """Documents the key gives access to."""
        _require(api_key, "API key is required", "Clé API requise pour récupérer les documents")
        return await self._fetch(
            "/api/docs",
            api_key,
            "docs",
            _documents_adapter,
            "documents",
            "Ressource non trouvée.",
            "Erreur lors de la récupération des documents Grist",
        )

    async def get_tables(self, api_key: str, document_id: str) -> list[GristTable]:
        """Tables of a document."""
        _require(api_key, "API key is required", "Clé API requise pour récupérer les tables")
        _require(
            document_id,
            "Document ID is required",
            "ID du document requis pour récupérer les tables",
        )
        return await self._fetch(
            f"/api/docs/{quote(document_id, safe='')}/tables",
            api_key,
            "tables",
            _tables_adapter,
            "tables",
            "Document non trouvé ou inaccessible",
            "Erreur lors de la récupération des tables Grist",
        )

    async def get_table_schema(
        self, api_key: str, document_id: str, table_id: str
    ) -> list[GristColumn]:
        """Columns of a table."""
        _require(
            api_key,
            "API key is required",
            "Clé API requise pour récupérer le schéma de la table",
        )
        _require(
            document_id,
            "Document ID is required",
            "ID du document requis pour récupérer le schéma de la table",
        )
        _require(
            table_id,
            "Table ID is required",
            "ID de la table requis pour récupérer le schéma",
        )
        return await self._fetch(
            f"/api/docs/{quote(document_id, safe='')}/tables/{quote(table_id, safe='')}/columns",
            api_key,
            "columns",
            _columns_adapter,
            "table schema",
            "Document ou table non trouvé",
            "Erreur lors de la récupération du schéma de la table",
        )
