"""Transformation endpoints: single steps, ad hoc previews, stored runs."""

from typing import Any

from fastapi import APIRouter, Query

from reportstudio.api.deps import EngineDep, TenantDep
from reportstudio.api.schemas import PipelinePreviewRequest, TransformRequest
from reportstudio.pipeline import TransformationResult, run_steps

router = APIRouter()


@router.post("/transform", response_model=TransformationResult)
def transform(request: TransformRequest, engine: EngineDep) -> TransformationResult:
    """Apply one operator. Operator failures are reported in ``error``."""
    return engine.execute_transformation(
        request.operator, request.rows, request.config, request.secondary
    )


@router.post("/pipeline/preview")
def preview_pipeline(request: PipelinePreviewRequest, engine: EngineDep) -> dict[str, Any]:
    """Run unsaved steps over inline rows and truncate the final output."""
    preview_rows = request.preview_rows or engine.settings.preview_rows
    result = run_steps(request.steps, request.rows, preview_rows=preview_rows)
    return result.to_dict()


@router.get("/transformations/{transformation_id}/preview")
def preview_transformation(
    transformation_id: str,
    tenant_id: TenantDep,
    engine: EngineDep,
    rows: int | None = Query(default=None, ge=1, description="Rows to return"),
) -> dict[str, Any]:
    return engine.preview_transformation(tenant_id, transformation_id, rows).to_dict()


@router.post("/transformations/{transformation_id}/run")
def run_transformation(
    transformation_id: str, tenant_id: TenantDep, engine: EngineDep
) -> dict[str, Any]:
    """Run a stored transformation; a failed run names the failing step."""
    return engine.run_transformation(tenant_id, transformation_id).to_dict()
