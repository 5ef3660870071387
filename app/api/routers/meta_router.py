"""
app/api/routers/meta_router.py

Health check and entity metadata listings.

    GET /health          data-source connectivity (unauthenticated)
    GET /meta/{kind}     id/name listing for represas | centrales | canales
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from app.api.dependencies import get_metadata_cache, get_telemetry_repository, require_api_key
from app.errors import DataSourceError, DataSourceUnavailableError, NotFoundError
from app.repositories.telemetry_repository import ENTITY_KINDS, SqlTelemetryRepository
from app.schemas.insights import EntityItem, EntityListResponse, HealthResponse, HealthStatus
from app.stores import TTLCache

logger = logging.getLogger(__name__)

router = APIRouter(tags=["meta"])


@router.get("/health", response_model=HealthResponse)
async def healthcheck(
    repository: SqlTelemetryRepository = Depends(get_telemetry_repository),
) -> HealthResponse:
    try:
        await repository.ping()
    except Exception as exc:
        raise DataSourceUnavailableError() from exc
    return HealthResponse(data=HealthStatus(status="OK", db="Connected"))


@router.get(
    "/meta/{kind}",
    response_model=EntityListResponse,
    dependencies=[Depends(require_api_key)],
)
async def list_entities(
    kind: str,
    repository: SqlTelemetryRepository = Depends(get_telemetry_repository),
    cache: TTLCache = Depends(get_metadata_cache),
) -> EntityListResponse:
    """
    List ``{id, nombre}`` for one entity kind, ordered by name.
    """
    if kind not in ENTITY_KINDS:
        raise NotFoundError(f"Unknown entity kind '{kind}'", details={"kinds": list(ENTITY_KINDS)})

    cached = cache.get(kind)
    if cached is None:
        try:
            entities = await repository.list_entities(kind)
        except Exception as exc:
            raise DataSourceError() from exc
        cached = [EntityItem(id=e.id, nombre=e.name) for e in entities]
        cache.set(kind, cached)
        logger.debug("Metadata cache refreshed kind=%s entries=%d", kind, len(cached))
    return EntityListResponse(data=cached)
