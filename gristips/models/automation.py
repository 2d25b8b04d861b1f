"""Automation model: a table copy between two Grist documents."""

import enum
import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import JSON, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gristips.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from gristips.models.user import User


class AutomationType(str, enum.Enum):
    """Kind of automation."""

    TABLE_COPY = "table_copy"


class AutomationStatus(str, enum.Enum):
    """Whether the automation is enabled."""

    ACTIVE = "active"
    INACTIVE = "inactive"


def new_automation_id() -> str:
    return str(uuid.uuid4())


class Automation(Base, TimestampMixin):
    """Copies selected columns of a source table into a target table."""

    __tablename__ = "automations"
    __table_args__ = (Index("ix_automations_user_created", "user_id", "created_at"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_automation_id)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[str] = mapped_column(String(50), default=AutomationType.TABLE_COPY.value)
    status: Mapped[str] = mapped_column(String(20), default=AutomationStatus.ACTIVE.value)

    source_document_id: Mapped[str] = mapped_column(String(255))
    source_document_name: Mapped[str] = mapped_column(String(500))
    source_table_id: Mapped[str] = mapped_column(String(255))
    source_table_name: Mapped[str] = mapped_column(String(500))
    target_document_id: Mapped[str] = mapped_column(String(255))
    target_document_name: Mapped[str] = mapped_column(String(500))
    target_table_id: Mapped[str] = mapped_column(String(255))
    target_table_name: Mapped[str] = mapped_column(String(500))
    selected_columns: Mapped[list] = mapped_column(JSON, default=list)

    last_executed: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_execution_status: Mapped[str | None] = mapped_column(String(50), nullable=True)

    user: Mapped["User"] = relationship("User", back_populates="automations")

    def __repr__(self) -> str:
        return f"<Automation(id={self.id}, name={self.name})>"
