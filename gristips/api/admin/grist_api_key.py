"""Grist API key management endpoints."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from gristips.api.dependencies import get_grist_client, get_rate_limiters, get_secret_cipher
from gristips.auth import get_current_agent
from gristips.db import get_db
from gristips.exceptions import AppError, DecryptionError, ErrorType, RateLimitExceededError
from gristips.models.schemas import GristApiKeySaved, GristApiKeyStatus, GristApiKeyUpdate
from gristips.models.user import User
from gristips.services.grist import GristApiClient
from gristips.utils.encryption import SecretCipher, hash_secret, mask_secret
from gristips.utils.rate_limiter import RateLimiters
from gristips.utils.validation import validate_api_key

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/grist-api-key")
async def get_api_key_status(
    user: Annotated[User, Depends(get_current_agent)],
    cipher: Annotated[SecretCipher, Depends(get_secret_cipher)],
    grist: Annotated[GristApiClient, Depends(get_grist_client)],
) -> GristApiKeyStatus:
    """Tell whether the user has a stored API key and whether Grist still accepts it."""
    if not user.has_grist_api_key:
        return GristApiKeyStatus(has_api_key=False)

    try:
        api_key = cipher.decrypt(user.grist_api_key)
    except DecryptionError as e:
        logger.error(f"Failed to decrypt stored API key for user {user.id}: {e}")
        return GristApiKeyStatus(has_api_key=True, is_valid=False)

    is_valid = await grist.validate_api_key(api_key)
    return GristApiKeyStatus(has_api_key=True, is_valid=is_valid)


@router.post("/grist-api-key")
async def save_api_key(
    data: GristApiKeyUpdate,
    user: Annotated[User, Depends(get_current_agent)],
    db: Annotated[AsyncSession, Depends(get_db)],
    cipher: Annotated[SecretCipher, Depends(get_secret_cipher)],
    grist: Annotated[GristApiClient, Depends(get_grist_client)],
    limiters: Annotated[RateLimiters, Depends(get_rate_limiters)],
) -> GristApiKeySaved:
    """Validate an API key against Grist and store it encrypted."""
    check = limiters.check_grist_validation(str(user.id), "api_key_validation")
    if not check.allowed:
        raise RateLimitExceededError(
            check.retry_after,
            details=f"API key validation rate limit reached for user {user.id}",
        )

    validation = validate_api_key(data.api_key)
    if not validation.is_valid:
        message = ", ".join(validation.errors)
        raise AppError(ErrorType.VALIDATION_ERROR, details=message, message=message)
    if validation.warnings:
        logger.warning(f"API key validation warnings for user {user.id}: {validation.warnings}")

    api_key = data.api_key
    if not await grist.validate_api_key(api_key):
        raise AppError(
            ErrorType.VALIDATION_ERROR,
            details="Invalid API key",
            message="Clé API invalide. Veuillez vérifier votre clé API Grist.",
        )

    user.grist_api_key = cipher.encrypt(api_key)
    user.grist_api_key_hash = hash_secret(api_key)
    db.add(user)
    await db.commit()
    logger.info(f"Stored Grist API key {mask_secret(api_key)} for user {user.id}")

    return GristApiKeySaved(
        message="Clé API sauvegardée avec succès",
        warnings=validation.warnings,
    )
