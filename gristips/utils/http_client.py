"""Persistent httpx client for outbound calls (ProConnect, Grist).

One client is created by the application and shared, so connections are
pooled and reused instead of paying a TLS handshake per call.
"""

import httpx

from gristips.constants import HTTPX_TIMEOUT

# Connection pool limits
POOL_LIMITS = httpx.Limits(
    max_connections=20,
    max_keepalive_connections=10,
    keepalive_expiry=30,
)


def create_http_client(
    timeout: float = HTTPX_TIMEOUT,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create the shared client. Close it with ``aclose()`` at shutdown.

    Args:
        timeout: Default timeout in seconds
        transport: Custom transport (``httpx.MockTransport`` in tests)
    """
    return httpx.AsyncClient(
        timeout=timeout,
        limits=POOL_LIMITS,
        transport=transport,
        http2=False,
    )
