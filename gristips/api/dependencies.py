"""Accessors for the services built at startup and kept on ``app.state``.

Handlers depend on these instead of importing module globals, so tests can
swap any of them with ``app.dependency_overrides``.
"""

from fastapi import Request

from gristips.auth.proconnect import ProConnectClient
from gristips.services.grist import GristApiClient
from gristips.utils.encryption import SecretCipher
from gristips.utils.rate_limiter import RateLimiters


def get_secret_cipher(request: Request) -> SecretCipher:
    return request.app.state.secret_cipher


def get_rate_limiters(request: Request) -> RateLimiters:
    return request.app.state.rate_limiters


def get_grist_client(request: Request) -> GristApiClient:
    return request.app.state.grist_client


def get_proconnect_client(request: Request) -> ProConnectClient:
    return request.app.state.proconnect
