"""Schema detection, profiling and quality endpoints over inline rows."""

from fastapi import APIRouter

from reportstudio.analysis.profiling import DataProfile, QualityReport
from reportstudio.api.deps import EngineDep
from reportstudio.api.schemas import ProfileRequest, RowsRequest, SchemaResponse

router = APIRouter()


@router.post("/schema/detect", response_model=SchemaResponse)
def detect_schema(request: RowsRequest, engine: EngineDep) -> SchemaResponse:
    return SchemaResponse(columns=engine.detect_schema(request.rows, request.columns))


def _profile(request: ProfileRequest, engine: EngineDep) -> DataProfile:
    return engine.profile_data(
        request.rows,
        schema=request.schema_columns,
        columns=request.columns,
        declared_schema=request.declared_schema,
        sample_size=request.sample_size,
    )


@router.post("/profile", response_model=DataProfile)
def profile_data(request: ProfileRequest, engine: EngineDep) -> DataProfile:
    return _profile(request, engine)


@router.post("/quality", response_model=QualityReport)
def quality_report(request: ProfileRequest, engine: EngineDep) -> QualityReport:
    """Profile the rows and score them."""
    return engine.generate_quality_report(_profile(request, engine))
