"""Grist browsing endpoints: documents, tables and columns of the user's account."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from gristips.api.dependencies import get_grist_client, get_secret_cipher
from gristips.auth import get_current_agent
from gristips.exceptions import AppError, DecryptionError, ErrorType
from gristips.models.schemas import GristColumnList, GristDocumentList, GristTableList
from gristips.models.user import User
from gristips.services.grist import GristApiClient
from gristips.utils.encryption import SecretCipher
from gristips.utils.validation import validate_grist_ids

router = APIRouter()
logger = logging.getLogger(__name__)


def _stored_api_key(user: User, cipher: SecretCipher) -> str:
    """Decrypt the user's Grist API key.

    Raises:
        AppError: VALIDATION_ERROR if no key is configured, SERVER_ERROR if
            the stored key cannot be decrypted
    """
    if not user.has_grist_api_key:
        raise AppError(
            ErrorType.VALIDATION_ERROR,
            details="Grist API key not configured",
            message=(
                "Clé API Grist non configurée. "
                "Veuillez configurer votre clé API dans les paramètres."
            ),
        )
    try:
        return cipher.decrypt(user.grist_api_key)
    except DecryptionError as e:
        logger.error(f"Failed to decrypt API key for user {user.id}: {e}")
        raise AppError(
            ErrorType.SERVER_ERROR,
            details="Failed to decrypt API key",
            message="Erreur lors du déchiffrement de la clé API",
        ) from e


def _check_ids(document_id: str | None = None, table_id: str | None = None) -> None:
    validation = validate_grist_ids(document_id, table_id)
    if not validation.is_valid:
        message = ", ".join(validation.errors)
        raise AppError(ErrorType.VALIDATION_ERROR, details=message, message=message)


@router.get("/grist/documents")
async def list_documents(
    user: Annotated[User, Depends(get_current_agent)],
    cipher: Annotated[SecretCipher, Depends(get_secret_cipher)],
    grist: Annotated[GristApiClient, Depends(get_grist_client)],
) -> GristDocumentList:
    """Documents reachable with the user's API key."""
    api_key = _stored_api_key(user, cipher)
    return GristDocumentList(documents=await grist.get_documents(api_key))


@router.get("/grist/tables")
async def list_tables(
    user: Annotated[User, Depends(get_current_agent)],
    cipher: Annotated[SecretCipher, Depends(get_secret_cipher)],
    grist: Annotated[GristApiClient, Depends(get_grist_client)],
    document_id: Annotated[str, Query(alias="documentId")] = "",
) -> GristTableList:
    """Tables of a document."""
    _check_ids(document_id=document_id)
    api_key = _stored_api_key(user, cipher)
    return GristTableList(tables=await grist.get_tables(api_key, document_id))


@router.get("/grist/columns")
async def list_columns(
    user: Annotated[User, Depends(get_current_agent)],
    cipher: Annotated[SecretCipher, Depends(get_secret_cipher)],
    grist: Annotated[GristApiClient, Depends(get_grist_client)],
    document_id: Annotated[str, Query(alias="documentId")] = "",
    table_id: Annotated[str, Query(alias="tableId")] = "",
) -> GristColumnList:
    """Columns of a table."""
    _check_ids(document_id=document_id, table_id=table_id)
    api_key = _stored_api_key(user, cipher)
    return GristColumnList(columns=await grist.get_table_schema(api_key, document_id, table_id))
