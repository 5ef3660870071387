"""
db/models/dimensions.py

Dimension tables of the telemetry warehouse.

The warehouse is loaded by an external ETL; this service only reads it.
"""

from __future__ import annotations

from datetime import date

from sqlalchemy import Date, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base


class DimFecha(Base):
    """
    Calendar dimension. One row per day.
    """

    __tablename__ = "dim_fecha"

    id_fecha: Mapped[int] = mapped_column(Integer, primary_key=True)
    fecha: Mapped[date] = mapped_column(Date, nullable=False, unique=True, index=True)


class DimRepresa(Base):
    """
    Reservoir (dam) dimension.
    """

    __tablename__ = "dim_represa"

    id_represa: Mapped[int] = mapped_column(Integer, primary_key=True)
    nombre: Mapped[str] = mapped_column(String(200), nullable=False)


class DimCentral(Base):
    """
    Power plant dimension.
    """

    __tablename__ = "dim_central"

    id_central: Mapped[int] = mapped_column(Integer, primary_key=True)
    nombre: Mapped[str] = mapped_column(String(200), nullable=False)


class DimCanal(Base):
    """
    Channel dimension.
    """

    __tablename__ = "dim_canal"

    id_canal: Mapped[int] = mapped_column(Integer, primary_key=True)
    nombre: Mapped[str] = mapped_column(String(200), nullable=False)


class DimVariable(Base):
    """
    Measured variable dimension (``VOL_BRUTO``, ``COTA``, ``DESCARGA`` ...).
    """

    __tablename__ = "dim_variable"

    id_variable: Mapped[int] = mapped_column(Integer, primary_key=True)
    codigo: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    nombre: Mapped[str | None] = mapped_column(String(200), nullable=True)
    unidad: Mapped[str | None] = mapped_column(String(50), nullable=True)
