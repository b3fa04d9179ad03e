"""Raw read-only query endpoints."""

from fastapi import APIRouter

from reportstudio.api.deps import EngineDep, TenantDep, UserDep
from reportstudio.api.schemas import QueryRequest, QueryValidateRequest, QueryValidateResponse
from reportstudio.core.errors import UnsafeQueryError, ValidationError
from reportstudio.sources.database import QueryResult, check_query_safety

router = APIRouter()


@router.post("/query/validate", response_model=QueryValidateResponse)
def validate_query(request: QueryValidateRequest) -> QueryValidateResponse:
    """Check the leading keyword against the write/DDL denylist.

    Note: This is a denylist on the first keyword, not a SQL parser.
    """
    try:
        keyword = check_query_safety(request.sql)
    except UnsafeQueryError as e:
        return QueryValidateResponse(allowed=False, keyword=e.keyword, message=e.message)
    except ValidationError as e:
        return QueryValidateResponse(allowed=False, message=e.message)
    return QueryValidateResponse(allowed=True, keyword=keyword)


@router.post("/data-sources/{data_source_id}/query", response_model=QueryResult)
def execute_query(
    data_source_id: str,
    request: QueryRequest,
    tenant_id: TenantDep,
    engine: EngineDep,
    user_id: UserDep = None,
) -> QueryResult:
    """Run a read-only query. Rows are capped at the system maximum."""
    return engine.execute_query(
        tenant_id, data_source_id, request.sql, limit=request.limit, user_id=user_id
    )
