"""Automation CRUD endpoints. Every automation is scoped to its owner."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gristips.api.dependencies import get_rate_limiters
from gristips.auth import get_current_agent
from gristips.db import get_db
from gristips.exceptions import AppError, ErrorType, RateLimitExceededError
from gristips.models.automation import Automation, AutomationStatus, AutomationType
from gristips.models.schemas import (
    AutomationCreate,
    AutomationList,
    AutomationRead,
    AutomationUpdate,
)
from gristips.models.user import User
from gristips.utils.rate_limiter import RateLimiters
from gristips.utils.validation import (
    ValidationResult,
    validate_automation_form,
    validate_automation_update,
    validate_grist_ids,
)

router = APIRouter()
logger = logging.getLogger(__name__)

# Fields that may be cleared; every other column is required
NULLABLE_FIELDS = {"description"}


def _raise_if_invalid(validation: ValidationResult) -> None:
    if not validation.is_valid:
        message = ", ".join(validation.errors)
        raise AppError(ErrorType.VALIDATION_ERROR, details=message, message=message)


def _check_rate_limit(limiters: RateLimiters, user: User, action: str) -> None:
    check = limiters.check_grist_api(str(user.id), action)
    if not check.allowed:
        raise RateLimitExceededError(
            check.retry_after,
            details=f"{action} rate limit reached for user {user.id}",
        )


async def _get_owned_automation(db: AsyncSession, user: User, automation_id: str) -> Automation:
    if not automation_id.strip():
        raise AppError(
            ErrorType.VALIDATION_ERROR,
            details="Automation ID cannot be empty",
            message="L'ID de l'automation ne peut pas être vide",
        )

    result = await db.execute(
        select(Automation).where(Automation.id == automation_id, Automation.user_id == user.id)
    )
    automation = result.scalar_one_or_none()
    if not automation:
        raise AppError(
            ErrorType.NOT_FOUND,
            details="Automation not found",
            message="Automation non trouvée",
        )
    return automation


@router.get("/automations")
async def list_automations(
    user: Annotated[User, Depends(get_current_agent)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> AutomationList:
    """List the user's automations, newest first."""
    result = await db.execute(
        select(Automation)
        .where(Automation.user_id == user.id)
        .order_by(Automation.created_at.desc())
    )
    automations = result.scalars().all()
    return AutomationList(automations=[AutomationRead.model_validate(a) for a in automations])


@router.post("/automations", status_code=201)
async def create_automation(
    data: AutomationCreate,
    user: Annotated[User, Depends(get_current_agent)],
    db: Annotated[AsyncSession, Depends(get_db)],
    limiters: Annotated[RateLimiters, Depends(get_rate_limiters)],
) -> AutomationRead:
    """Create a table copy automation."""
    _check_rate_limit(limiters, user, "create_automation")

    form = data.model_dump(by_alias=True)
    if form["selectedColumns"] is None:
        form["selectedColumns"] = []
    validation = validate_automation_form(form)
    _raise_if_invalid(validation)
    if validation.warnings:
        logger.warning(f"Automation creation warnings for user {user.id}: {validation.warnings}")

    if data.type != AutomationType.TABLE_COPY.value:
        raise AppError(
            ErrorType.VALIDATION_ERROR,
            details="Invalid automation type. Only 'table_copy' is supported.",
            message="Type d'automation invalide. Seul 'table_copy' est supporté.",
        )

    _raise_if_invalid(validate_grist_ids(data.source_document_id, data.source_table_id))
    _raise_if_invalid(validate_grist_ids(data.target_document_id, data.target_table_id))

    if not all(
        (
            data.source_document_name,
            data.source_table_name,
            data.target_document_name,
            data.target_table_name,
        )
    ):
        raise AppError(
            ErrorType.VALIDATION_ERROR,
            details="Document and table names are required",
            message="Les noms des documents et tables sont requis",
        )

    automation = Automation(
        user_id=user.id,
        name=data.name.strip(),
        description=(data.description or "").strip() or None,
        type=data.type,
        status=AutomationStatus.ACTIVE.value,
        source_document_id=data.source_document_id,
        source_document_name=data.source_document_name,
        source_table_id=data.source_table_id,
        source_table_name=data.source_table_name,
        target_document_id=data.target_document_id,
        target_document_name=data.target_document_name,
        target_table_id=data.target_table_id,
        target_table_name=data.target_table_name,
        selected_columns=data.selected_columns,
    )
    db.add(automation)
    await db.commit()
    await db.refresh(automation)

    logger.info(f"Created automation {automation.id} for user {user.id}")
    return AutomationRead.model_validate(automation)


@router.get("/automations/{automation_id}")
async def get_automation(
    automation_id: str,
    user: Annotated[User, Depends(get_current_agent)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> AutomationRead:
    """Get one automation."""
    automation = await _get_owned_automation(db, user, automation_id)
    return AutomationRead.model_validate(automation)


@router.put("/automations/{automation_id}")
async def update_automation(
    automation_id: str,
    data: AutomationUpdate,
    user: Annotated[User, Depends(get_current_agent)],
    db: Annotated[AsyncSession, Depends(get_db)],
    limiters: Annotated[RateLimiters, Depends(get_rate_limiters)],
) -> AutomationRead:
    """Update the fields sent in the request body."""
    _check_rate_limit(limiters, user, "update_automation")

    changes = data.model_dump(exclude_unset=True)
    if not changes:
        raise AppError(
            ErrorType.VALIDATION_ERROR,
            details="No update data provided",
            message="Aucune donnée de mise à jour fournie",
        )

    validation = validate_automation_update(data.model_dump(by_alias=True, exclude_unset=True))
    _raise_if_invalid(validation)
    if validation.warnings:
        logger.warning(f"Automation update warnings for user {user.id}: {validation.warnings}")

    if "status" in changes and changes["status"] not in {s.value for s in AutomationStatus}:
        raise AppError(
            ErrorType.VALIDATION_ERROR,
            details="Status must be 'active' or 'inactive'",
            message="Le statut doit être 'active' ou 'inactive'",
        )

    automation = await _get_owned_automation(db, user, automation_id)

    for field, value in changes.items():
        if value is None and field not in NULLABLE_FIELDS:
            continue
        if field == "name":
            value = value.strip()
        elif field == "description":
            value = (value or "").strip() or None
        setattr(automation, field, value)

    await db.commit()
    await db.refresh(automation)

    logger.info(f"Updated automation {automation.id} for user {user.id}")
    return AutomationRead.model_validate(automation)


@router.delete("/automations/{automation_id}", status_code=204)
async def delete_automation(
    automation_id: str,
    user: Annotated[User, Depends(get_current_agent)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Response:
    """Delete an automation."""
    automation = await _get_owned_automation(db, user, automation_id)
    await db.delete(automation)
    await db.commit()

    logger.info(f"Deleted automation {automation_id} for user {user.id}")
    return Response(status_code=204)
