"""ProConnect health check: configuration plus reachability of the JWKS endpoint."""

import logging
from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from gristips.api.dependencies import get_proconnect_client
from gristips.auth.proconnect import ProConnectClient
from gristips.config import get_settings
from gristips.config_validation import (
    validate_proconnect_connectivity,
    validate_proconnect_environment,
)

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/proconnect")
async def proconnect_health(
    proconnect: Annotated[ProConnectClient, Depends(get_proconnect_client)],
) -> JSONResponse:
    """Report whether ProConnect is configured and reachable.

    Returns:
        200 with status ``healthy`` or ``warning``, 503 with ``unhealthy``
    """
    settings = get_settings()
    validation = validate_proconnect_environment(settings)
    connectivity = await validate_proconnect_connectivity(
        proconnect.config, proconnect.http_client
    )

    if not validation.is_valid or not connectivity.is_reachable:
        status = "unhealthy"
    elif validation.warnings:
        status = "warning"
    else:
        status = "healthy"

    if status == "unhealthy":
        logger.warning(
            f"ProConnect health check failed: {validation.errors + connectivity.errors}"
        )

    body = {
        "status": status,
        "timestamp": datetime.now(UTC).isoformat(),
        "environment": validation.environment,
        "configuration": {
            "valid": validation.is_valid,
            "errors": validation.errors,
            "warnings": validation.warnings,
        },
        "connectivity": {
            "reachable": connectivity.is_reachable,
            "errors": connectivity.errors,
            "latencyMs": connectivity.latency_ms,
        },
        "endpoints": {
            "authorization": proconnect.config.endpoints.authorization,
            "token": proconnect.config.endpoints.token,
            "userinfo": proconnect.config.endpoints.userinfo,
            "jwks": proconnect.config.endpoints.jwks,
        },
    }
    return JSONResponse(content=body, status_code=503 if status == "unhealthy" else 200)
