"""
Worksheet routes.

Endpoints:
- POST /api/generateProblems
- GET /api/worksheets?userId=...
- GET /api/worksheets/{worksheet_id}
"""

from fastapi import APIRouter, Depends, Query

from ..models import GenerateProblemsRequest, GenerateProblemsResponse
from ..services import WorksheetOrchestrationService
from .dependencies import get_orchestrator


def create_worksheet_routes() -> APIRouter:
    """Create worksheet routes."""

    router = APIRouter(prefix="/api", tags=["worksheets"])

    @router.post("/generateProblems")
    async def generate_problems(
        request: GenerateProblemsRequest,
        orchestrator: WorksheetOrchestrationService = Depends(get_orchestrator),
    ):
        """
        Generate a worksheet from a topic and/or a source PDF.

        The worksheet identified by ``tempWorksheetId`` ends up ``ready``,
        or ``error`` when generation fails.
        """
        worksheet = await orchestrator.generate_worksheet(request)
        response = GenerateProblemsResponse(worksheet=worksheet, count=len(worksheet.problems))
        return response.to_document()

    @router.get("/worksheets")
    async def list_worksheets(
        user_id: str = Query(..., alias="userId"),
        orchestrator: WorksheetOrchestrationService = Depends(get_orchestrator),
    ):
        """Active worksheets of a user, newest first."""
        worksheets = await orchestrator.list_worksheets(user_id)
        return {"worksheets": [worksheet.to_document() for worksheet in worksheets]}

    @router.get("/worksheets/{worksheet_id}")
    async def get_worksheet(
        worksheet_id: str,
        orchestrator: WorksheetOrchestrationService = Depends(get_orchestrator),
    ):
        worksheet = await orchestrator.get_worksheet(worksheet_id)
        return worksheet.to_document()

    return router
