"""User model."""

from typing import TYPE_CHECKING

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gristips.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from gristips.models.automation import Automation


class User(Base, TimestampMixin):
    """Agent signed in through ProConnect."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    proconnect_sub: Mapped[str | None] = mapped_column(
        String(255), unique=True, index=True, nullable=True
    )
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    given_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    usual_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    organization: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_public_agent: Mapped[bool] = mapped_column(default=False)

    # Grist API key: encrypted blob plus SHA-256 hex digest of the plaintext
    grist_api_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    grist_api_key_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    automations: Mapped[list["Automation"]] = relationship(
        "Automation",
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="select",
    )

    @property
    def has_grist_api_key(self) -> bool:
        return bool(self.grist_api_key and self.grist_api_key_hash)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"
