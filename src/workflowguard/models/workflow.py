"""Workflow model — a protected HubSpot workflow.

Owned by the workflow sync side of the product; the version history core
only reads it.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from workflowguard.models.base import Base, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from workflowguard.models.user import User


class Workflow(UUIDPrimaryKeyMixin, Base):
    __tablename__ = "workflows"
    __table_args__ = (
        UniqueConstraint("owner_id", "external_id", name="uq_workflows_owner_external"),
    )

    # HubSpot workflow id
    external_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    owner_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False)

    # Relationships
    owner: Mapped[User] = relationship("User", back_populates="workflows")
