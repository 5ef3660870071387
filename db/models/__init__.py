"""
Model package exports.

Import all SQLAlchemy models here so metadata registration works without
extra imports.
"""

from db.models.dimensions import DimCanal, DimCentral, DimFecha, DimRepresa, DimVariable
from db.models.facts import HechoRepresaDiario

__all__ = [
    "DimCanal",
    "DimCentral",
    "DimFecha",
    "DimRepresa",
    "DimVariable",
    "HechoRepresaDiario",
]
