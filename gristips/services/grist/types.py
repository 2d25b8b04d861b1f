"""Pydantic models for Grist API payloads."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class GristModel(BaseModel):
    """Grist payloads are camelCase; unknown keys are ignored.

    The REST API nests most attributes under ``fields``; they are lifted to the
    top level before validation.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def lift_fields(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("fields"), dict):
            return {**data["fields"], **{k: v for k, v in data.items() if k != "fields"}}
        return data


class GristDocument(GristModel):
    id: str
    name: str
    url_id: str | None = None
    access: str | None = None


class GristColumn(GristModel):
    id: str
    col_id: str | None = None
    type: str = "Any"
    label: str | None = None
    is_formula: bool = False

    @model_validator(mode="after")
    def default_col_id(self) -> "GristColumn":
        if self.col_id is None:
            self.col_id = self.id
        if self.label is None:
            self.label = self.col_id
        return self


class GristTable(GristModel):
    id: str
    table_id: str | None = None
    columns: list[GristColumn] = Field(default_factory=list)

    @model_validator(mode="after")
    def default_table_id(self) -> "GristTable":
        if self.table_id is None:
            self.table_id = self.id
        return self
