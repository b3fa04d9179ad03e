"""Stored dataset endpoints: paging, profiling, cache invalidation."""

from fastapi import APIRouter

from reportstudio.analysis.profiling import DataProfile, QualityReport
from reportstudio.api.deps import EngineDep, TenantDep
from reportstudio.api.schemas import InvalidateResponse
from reportstudio.sources import FetchOptions, FetchResult

router = APIRouter()


@router.post("/datasets/{dataset_id}/fetch", response_model=FetchResult)
def fetch_dataset(
    dataset_id: str,
    options: FetchOptions,
    tenant_id: TenantDep,
    engine: EngineDep,
) -> FetchResult:
    """One page of the dataset; cached per options."""
    return engine.fetch_dataset(tenant_id, dataset_id, options)


@router.get("/datasets/{dataset_id}/profile", response_model=DataProfile)
def profile_dataset(dataset_id: str, tenant_id: TenantDep, engine: EngineDep) -> DataProfile:
    return engine.profile_dataset(tenant_id, dataset_id)


@router.get("/datasets/{dataset_id}/quality", response_model=QualityReport)
def dataset_quality(dataset_id: str, tenant_id: TenantDep, engine: EngineDep) -> QualityReport:
    return engine.dataset_quality_report(tenant_id, dataset_id)


@router.delete("/datasets/{dataset_id}/cache", response_model=InvalidateResponse)
def invalidate_dataset(
    dataset_id: str, tenant_id: TenantDep, engine: EngineDep
) -> InvalidateResponse:
    """Drop cached pages, profiles and results of the dataset."""
    removed = engine.invalidate_dataset(tenant_id, dataset_id)
    return InvalidateResponse(dataset_id=dataset_id, removed=removed)
