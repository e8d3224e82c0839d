"""User model — actors who create snapshots and appear in audit trails."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from workflowguard.models.base import Base, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from workflowguard.models.api_key import ApiKey
    from workflowguard.models.workflow import Workflow


class User(UUIDPrimaryKeyMixin, Base):
    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    name: Mapped[str | None] = mapped_column(String, nullable=True)

    # Relationships
    workflows: Mapped[list[Workflow]] = relationship("Workflow", back_populates="owner")
    api_keys: Mapped[list[ApiKey]] = relationship("ApiKey", back_populates="user")

    @property
    def display_name(self) -> str:
        return self.name or "Unknown"
