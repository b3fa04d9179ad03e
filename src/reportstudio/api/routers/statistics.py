"""Statistical function dispatch endpoints."""

from fastapi import APIRouter

from reportstudio.api.deps import EngineDep
from reportstudio.api.schemas import (
    FunctionInfo,
    FunctionListResponse,
    FunctionRequest,
    FunctionResponse,
)

router = APIRouter()


@router.get("/statistics/functions", response_model=FunctionListResponse)
def list_functions(engine: EngineDep) -> FunctionListResponse:
    """Available functions and the payload each one expects."""
    return FunctionListResponse(
        functions=[FunctionInfo(**f) for f in engine.list_functions()]
    )


@router.post("/statistics/{name}", response_model=FunctionResponse)
def run_function(name: str, request: FunctionRequest, engine: EngineDep) -> FunctionResponse:
    """Run one function; shape mismatches come back as 400 with the expected shape."""
    result = engine.run_function(name, request.data, request.options)
    return FunctionResponse(function=name, result=result)
