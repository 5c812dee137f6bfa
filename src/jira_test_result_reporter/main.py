"""
FastAPI entry point for the Jira Test Result Reporter.
"""
import logging
from typing import Optional

from fastapi import FastAPI

from jira_test_result_reporter.api.dependencies import Services, build_services
from jira_test_result_reporter.api.routes import router
from jira_test_result_reporter.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)


def create_app(app_settings: Optional[Settings] = None, services: Optional[Services] = None) -> FastAPI:
    """
    Build the API application.

    Args:
        app_settings: Settings to use (default: environment settings)
        services: Pre-built services (tests inject in-memory stores and a mock client)
    """
    app_settings = services.settings if services is not None else (app_settings or default_settings)

    app = FastAPI(
        title=app_settings.api_title,
        description="Raises Jira issues for failing tests and resolves them when the tests pass again",
        version=app_settings.api_version,
        debug=app_settings.debug,
    )
    app.state.services = services or build_services(app_settings)
    app.include_router(router)

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "jira_configured": app.state.services.jira_client is not None,
        }

    return app


def run() -> None:
    import uvicorn

    logging.basicConfig(level=getattr(logging, default_settings.log_level.upper(), logging.INFO))
    uvicorn.run(create_app(), host="0.0.0.0", port=8002, reload=False)


if __name__ == "__main__":
    run()
