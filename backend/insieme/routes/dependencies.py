"""Request-scoped access to the application's services."""

from fastapi import Request

from ..services import WorksheetOrchestrationService


def get_orchestrator(request: Request) -> WorksheetOrchestrationService:
    """Get the orchestration service for route handlers."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise RuntimeError("Services not initialized")
    return orchestrator
