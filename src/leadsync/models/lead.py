"""Lead model — the default destination table for import and sync jobs."""

from datetime import date, datetime
from typing import Any

from sqlalchemy import Boolean, Date, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from leadsync.models.base import Base, JSONType


class Lead(Base):
    """A scouting lead keyed by its CRM identifier.

    Every column except ``id`` is nullable: mapped records are sparse and
    only carry the fields their mapping set resolved.
    """

    __tablename__ = "leads"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    nome: Mapped[str | None] = mapped_column(String(255), nullable=True)
    telefone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    idade: Mapped[int | None] = mapped_column(Integer, nullable=True)
    projeto: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    scouter: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    supervisor: Mapped[str | None] = mapped_column(String(255), nullable=True)
    localizacao: Mapped[str | None] = mapped_column(Text, nullable=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    local_da_abordagem: Mapped[str | None] = mapped_column(Text, nullable=True)
    etapa: Mapped[str | None] = mapped_column(String(100), nullable=True)
    valor_ficha: Mapped[float | None] = mapped_column(Float, nullable=True)
    ficha_confirmada: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    criado: Mapped[date | None] = mapped_column(Date, nullable=True)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    raw: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
