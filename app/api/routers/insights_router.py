"""
app/api/routers/insights_router.py

AI insights endpoint.

    POST /insights  →  InsightsPipeline.run  →  {ok, meta, insights}

Failures are raised as classified errors and rendered by the central error
handlers; this module only shapes the success payload.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status

from app.api.dependencies import get_client_id, get_insights_pipeline, require_api_key
from app.schemas.insights import (
    ErrorResponse,
    InsightsMeta,
    InsightsRequestBody,
    InsightsSuccessResponse,
)
from app.services.insights_pipeline import InsightsPipeline, PipelineRun

router = APIRouter(tags=["insights"])


@router.post(
    "/insights",
    response_model=InsightsSuccessResponse,
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_api_key)],
    responses={code: {"model": ErrorResponse} for code in (400, 401, 429, 500, 502, 503)},
)
async def generate_insights(
    body: InsightsRequestBody,
    request: Request,
    pipeline: InsightsPipeline = Depends(get_insights_pipeline),
    client_id: str = Depends(get_client_id),
) -> InsightsSuccessResponse:
    """
    Generate operational insights for the requested reservoirs and range.
    """
    run = PipelineRun(request_id=request.state.request_id)
    outcome = await pipeline.run(body.to_pipeline_request(), client_id=client_id, run=run)

    dataset = outcome.dataset
    return InsightsSuccessResponse(
        meta=InsightsMeta(
            fecha_ini=dataset.start,
            fecha_fin=dataset.end,
            represas=[entity.name for entity in dataset.meta.entities],
            modelo=outcome.model,
        ),
        insights=outcome.result,
    )
