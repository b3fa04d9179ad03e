"""FastAPI dependency injection.

The engine lives on ``app.state``; tenant and user identity are resolved
upstream and arrive as headers.
"""

from typing import Annotated

from fastapi import Depends, Header, Request

from reportstudio.engine import ReportingEngine


def get_engine(request: Request) -> ReportingEngine:
    """The engine shared by every request of the application."""
    engine: ReportingEngine = request.app.state.engine
    return engine


EngineDep = Annotated[ReportingEngine, Depends(get_engine)]
TenantDep = Annotated[str, Header(alias="X-Tenant-Id", min_length=1)]
UserDep = Annotated[str | None, Header(alias="X-User-Id")]
