"""MappingSet and MappingRule models — versioned field-mapping tables."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid, func, true
from sqlalchemy.orm import Mapped, mapped_column, relationship

from leadsync.models.base import Base, UUIDMixin


class MappingSet(Base, UUIDMixin):
    """A named, versioned collection of mapping rules.

    Rows are never edited in place: a changed rule list is stored as a new
    version so running jobs keep reading the rules they started with.
    """

    __tablename__ = "mapping_sets"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    rules: Mapped[list["MappingRule"]] = relationship(
        back_populates="mapping_set",
        order_by="MappingRule.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (UniqueConstraint("name", "version", name="uq_mapping_sets_name_version"),)


class MappingRule(Base, UUIDMixin):
    """Maps one target field from up to three prioritized source fields."""

    __tablename__ = "mapping_rules"

    mapping_set_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("mapping_sets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    target_field: Mapped[str] = mapped_column(String(100), nullable=False)
    primary_source: Mapped[str] = mapped_column(String(255), nullable=False)
    secondary_source: Mapped[str | None] = mapped_column(String(255), nullable=True)
    tertiary_source: Mapped[str | None] = mapped_column(String(255), nullable=True)
    transform: Mapped[str] = mapped_column(String(20), nullable=False, default="identity", server_default="identity")
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=true())

    mapping_set: Mapped[MappingSet] = relationship(back_populates="rules")

    __table_args__ = (UniqueConstraint("mapping_set_id", "target_field", name="uq_mapping_rules_set_target"),)
