"""Pydantic schemas for API validation and serialization.

The JSON API is camelCase; fields are declared in snake_case and aliased.
Request bodies are loosely typed on purpose so that the validation module can
report problems with its own messages.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from gristips.services.grist.types import GristColumn, GristDocument, GristTable


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# User / session schemas
class UserRead(ApiModel):
    """User read schema."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    name: str | None = None
    given_name: str | None = None
    usual_name: str | None = None
    organization: str | None = None
    is_public_agent: bool


class SessionInfo(ApiModel):
    user: UserRead
    expires: datetime


class SessionValidation(ApiModel):
    valid: bool
    session: SessionInfo


# Grist API key schemas
class GristApiKeyStatus(ApiModel):
    has_api_key: bool
    # Only set when a key is stored
    is_valid: bool | None = None


class GristApiKeyUpdate(ApiModel):
    # Checked by validate_api_key, which reports wrong types itself
    api_key: Any = None


class GristApiKeySaved(ApiModel):
    success: bool = True
    is_valid: bool = True
    message: str
    warnings: list[str] = []


# Grist browsing schemas
class GristDocumentList(ApiModel):
    documents: list[GristDocument]


class GristTableList(ApiModel):
    tables: list[GristTable]


class GristColumnList(ApiModel):
    columns: list[GristColumn]


# Automation schemas
class AutomationCreate(ApiModel):
    """Automation create schema."""

    name: str | None = None
    description: str | None = None
    type: str | None = None
    source_document_id: str | None = None
    source_document_name: str | None = None
    source_table_id: str | None = None
    source_table_name: str | None = None
    target_document_id: str | None = None
    target_document_name: str | None = None
    target_table_id: str | None = None
    target_table_name: str | None = None
    selected_columns: list[str] | None = None


class AutomationUpdate(ApiModel):
    """Automation update schema. Only the fields sent are changed."""

    name: str | None = None
    description: str | None = None
    status: str | None = None
    source_document_id: str | None = None
    source_document_name: str | None = None
    source_table_id: str | None = None
    source_table_name: str | None = None
    target_document_id: str | None = None
    target_document_name: str | None = None
    target_table_id: str | None = None
    target_table_name: str | None = None
    selected_columns: list[str] | None = None


class AutomationRead(ApiModel):
    """Automation read schema."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str | None = None
    type: str
    status: str
    source_document_id: str
    source_document_name: str
    source_table_id: str
    source_table_name: str
    target_document_id: str
    target_document_name: str
    target_table_id: str
    target_table_name: str
    selected_columns: list[str]
    last_executed: datetime | None = None
    last_execution_status: str | None = None
    created_at: datetime
    updated_at: datetime


class AutomationList(ApiModel):
    automations: list[AutomationRead]
