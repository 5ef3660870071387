"""
app/repositories/telemetry_repository.py

Read access to the telemetry warehouse.

The insights pipeline depends only on :class:`TelemetrySource`; the
SQLAlchemy implementation below is the production collaborator. Each
method opens its own short-lived session and runs the blocking query in a
worker thread, so two reads issued with ``asyncio.gather`` really overlap.

Query design
------------
``fetch_rows`` issues exactly one statement. Aggregation to week / month
buckets happens in SQL::

    day    → fecha,                          valor
    week   → MIN(fecha)  per ISO week,       AVG(valor)
    month  → date_trunc('month', fecha),     AVG(valor)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from datetime import date
from typing import Callable, Final, Protocol

from sqlalchemy import Date, Select, cast, func, literal_column, select, text
from sqlalchemy.orm import Session

from app.domain.telemetry import EntityRef, Granularity, TelemetryRow
from db.models import DimCanal, DimCentral, DimFecha, DimRepresa, DimVariable, HechoRepresaDiario

logger = logging.getLogger(__name__)

VARIABLE_CODES: Final[tuple[str, ...]] = (
    "VOL_BRUTO",
    "VOL_UTIL",
    "COTA",
    "DESCARGA",
    "REBOSE",
    "PRECIP",
)

# entity kind -> (model, id column, name column)
_ENTITY_KINDS = {
    "represas": (DimRepresa, DimRepresa.id_represa, DimRepresa.nombre),
    "centrales": (DimCentral, DimCentral.id_central, DimCentral.nombre),
    "canales": (DimCanal, DimCanal.id_canal, DimCanal.nombre),
}

ENTITY_KINDS: Final[tuple[str, ...]] = tuple(_ENTITY_KINDS)


class TelemetrySource(Protocol):
    """
    Collaborator contract consumed by the dataset builder.
    """

    async def fetch_entity_names(self, entity_ids: Sequence[int]) -> list[EntityRef]:
        ...

    async def fetch_rows(
        self,
        *,
        start: date,
        end: date,
        entity_ids: Sequence[int],
        granularity: Granularity,
        variable_codes: Sequence[str] = VARIABLE_CODES,
    ) -> list[TelemetryRow]:
        ...


class SqlTelemetryRepository:
    """
    SQLAlchemy-backed :class:`TelemetrySource` plus the metadata listings.

    Parameters
    ----------
    session_factory:
        Zero-argument callable returning a new :class:`Session`. The
        repository closes every session it opens.
    """

    def __init__(self, session_factory: Callable[[], Session]) -> None:
        self._session_factory = session_factory

    # ------------------------------------------------------------------
    # Insights reads
    # ------------------------------------------------------------------

    async def fetch_entity_names(self, entity_ids: Sequence[int]) -> list[EntityRef]:
        return await asyncio.to_thread(self._entity_names_sync, list(entity_ids))

    async def fetch_rows(
        self,
        *,
        start: date,
        end: date,
        entity_ids: Sequence[int],
        granularity: Granularity,
        variable_codes: Sequence[str] = VARIABLE_CODES,
    ) -> list[TelemetryRow]:
        return await asyncio.to_thread(
            self._rows_sync,
            start,
            end,
            list(entity_ids),
            granularity,
            list(variable_codes),
        )

    # ------------------------------------------------------------------
    # Metadata / health
    # ------------------------------------------------------------------

    async def list_entities(self, kind: str) -> list[EntityRef]:
        if kind not in _ENTITY_KINDS:
            raise ValueError(f"Unknown entity kind {kind!r}")
        return await asyncio.to_thread(self._list_entities_sync, kind)

    async def ping(self) -> None:
        await asyncio.to_thread(self._ping_sync)

    # ------------------------------------------------------------------
    # Blocking implementations
    # ------------------------------------------------------------------

    def _entity_names_sync(self, entity_ids: list[int]) -> list[EntityRef]:
        stmt = (
            select(DimRepresa.id_represa, DimRepresa.nombre)
            .where(DimRepresa.id_represa.in_(entity_ids))
            .order_by(DimRepresa.nombre)
        )
        with self._session_factory() as session:
            rows = session.execute(stmt).all()
        return [EntityRef(id=int(r.id_represa), name=str(r.nombre)) for r in rows]

    def _rows_sync(
        self,
        start: date,
        end: date,
        entity_ids: list[int],
        granularity: Granularity,
        variable_codes: list[str],
    ) -> list[TelemetryRow]:
        stmt = build_rows_statement(start, end, entity_ids, granularity, variable_codes)
        with self._session_factory() as session:
            result = session.execute(stmt).all()

        rows = [
            TelemetryRow(
                date=_iso(r.fecha),
                entity_id=int(r.id_represa),
                entity_name=str(r.nombre),
                variable_code=str(r.codigo),
                value=None if r.valor is None else float(r.valor),
            )
            for r in result
        ]
        logger.debug(
            "fetch_rows entities=%s [%s, %s] granularity=%s → %d rows",
            entity_ids, start.isoformat(), end.isoformat(), granularity, len(rows),
        )
        return rows

    def _list_entities_sync(self, kind: str) -> list[EntityRef]:
        _, id_col, name_col = _ENTITY_KINDS[kind]
        stmt = select(id_col, name_col).order_by(name_col)
        with self._session_factory() as session:
            rows = session.execute(stmt).all()
        return [EntityRef(id=int(row[0]), name=str(row[1])) for row in rows]

    def _ping_sync(self) -> None:
        with self._session_factory() as session:
            session.execute(text("SELECT 1"))


def _iso(value: object) -> str:
    if isinstance(value, date):
        return value.isoformat()[:10]
    return str(value)[:10]


def build_rows_statement(
    start: date,
    end: date,
    entity_ids: Sequence[int],
    granularity: Granularity,
    variable_codes: Sequence[str] = VARIABLE_CODES,
) -> Select:
    """
    Single SELECT returning ``fecha, id_represa, nombre, codigo, valor`` rows
    bucketed to ``granularity``.
    """

    if granularity == "week":
        bucket = func.date_trunc(literal_column("'week'"), DimFecha.fecha)
        date_col = func.min(DimFecha.fecha)
        value_col = func.avg(HechoRepresaDiario.valor)
        group_by = (bucket,)
    elif granularity == "month":
        bucket = func.date_trunc(literal_column("'month'"), DimFecha.fecha)
        date_col = cast(bucket, Date)
        value_col = func.avg(HechoRepresaDiario.valor)
        group_by = (bucket,)
    else:
        date_col = DimFecha.fecha
        value_col = HechoRepresaDiario.valor
        group_by = ()

    stmt = (
        select(
            date_col.label("fecha"),
            DimRepresa.id_represa,
            DimRepresa.nombre,
            DimVariable.codigo,
            value_col.label("valor"),
        )
        .select_from(HechoRepresaDiario)
        .join(DimFecha, DimFecha.id_fecha == HechoRepresaDiario.id_fecha)
        .join(DimRepresa, DimRepresa.id_represa == HechoRepresaDiario.id_represa)
        .join(DimVariable, DimVariable.id_variable == HechoRepresaDiario.id_variable)
        .where(
            DimFecha.fecha >= start,
            DimFecha.fecha <= end,
            HechoRepresaDiario.id_represa.in_(list(entity_ids)),
            DimVariable.codigo.in_(list(variable_codes)),
        )
    )
    if group_by:
        return stmt.group_by(
            *group_by,
            DimRepresa.id_represa,
            DimRepresa.nombre,
            DimVariable.codigo,
        ).order_by(date_col, DimRepresa.nombre, DimVariable.codigo)
    return stmt.order_by(DimFecha.fecha, DimRepresa.nombre, DimVariable.codigo)
