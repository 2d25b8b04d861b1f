"""Authentication-related Pydantic models."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from gristips.constants import PUBLIC_AGENT_POPULATION


class ProConnectProfile(BaseModel):
    """User claims returned by ProConnect (ID token and/or userinfo)."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    sub: str = Field(min_length=1)
    email: str = Field(min_length=1)
    given_name: str = Field(min_length=1)
    usual_name: str = Field(min_length=1)
    organizational_unit: str | None = None
    belonging_population: list[str] = Field(default_factory=list)

    @field_validator("belonging_population", mode="before")
    @classmethod
    def wrap_single_population(cls, v: Any) -> Any:
        """Accept a lone population string; anything else that is not a list is rejected."""
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        if not isinstance(v, list):
            raise ValueError("belonging_population must be a list of strings")
        return v

    @property
    def full_name(self) -> str:
        return f"{self.given_name} {self.usual_name}"

    @property
    def is_public_agent(self) -> bool:
        return PUBLIC_AGENT_POPULATION in self.belonging_population
