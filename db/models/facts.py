"""
db/models/facts.py

Daily fact table for reservoir telemetry.
One row per reservoir per variable per day.
"""

from __future__ import annotations

from sqlalchemy import Float, ForeignKey, Index, Integer
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base


class HechoRepresaDiario(Base):
    """
    Daily reservoir measurement. ``valor`` may be NULL when the source
    station reported no reading for that day.
    """

    __tablename__ = "hecho_represa_diario"

    id_fecha: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("dim_fecha.id_fecha"),
        primary_key=True,
    )
    id_represa: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("dim_represa.id_represa"),
        primary_key=True,
    )
    id_variable: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("dim_variable.id_variable"),
        primary_key=True,
    )
    valor: Mapped[float | None] = mapped_column(Float, nullable=True)

    __table_args__ = (
        Index("ix_hecho_represa_diario_represa_fecha", "id_represa", "id_fecha"),
    )
