"""API server entry point.

Usage:
    # Via script (recommended)
    reportstudio-api

    # Via uvicorn directly
    uvicorn reportstudio.api.main:create_app --factory --reload

    # Via this module
    python -m reportstudio.api.server
"""

import os


def main() -> None:
    """Start the API server."""
    import uvicorn

    from reportstudio.core.config import get_settings
    from reportstudio.core.logging import configure_logging

    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)
    reload = os.environ.get("REPORTSTUDIO_API_RELOAD", "false").lower() == "true"

    print("Starting Report Studio API server...")
    print(f"  Host: {settings.api_host}:{settings.api_port}")
    print(f"  Metadata store: {settings.database_url}")
    print()

    uvicorn.run(
        "reportstudio.api.main:create_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
        reload=reload,
    )


if __name__ == "__main__":
    main()
