"""
Problem bank routes.

Endpoints:
- GET /api/problems?userId=...
- GET /api/problems/{problem_id}
- POST /api/problems/{problem_id}/answer
- GET /api/problems/{problem_id}/answer/{user_id}
"""

from fastapi import APIRouter, Depends, Query

from ..models import PracticeAnswerRequest
from ..services import WorksheetOrchestrationService
from .dependencies import get_orchestrator


def create_problem_routes() -> APIRouter:
    """Create problem bank routes."""

    router = APIRouter(prefix="/api", tags=["problems"])

    @router.get("/problems")
    async def list_problems(
        user_id: str = Query(..., alias="userId"),
        orchestrator: WorksheetOrchestrationService = Depends(get_orchestrator),
    ):
        """The user's generated problems, newest first."""
        problems = await orchestrator.list_problems(user_id)
        return {"problems": [problem.to_document() for problem in problems]}

    @router.get("/problems/{problem_id}")
    async def get_problem(
        problem_id: str,
        orchestrator: WorksheetOrchestrationService = Depends(get_orchestrator),
    ):
        problem = await orchestrator.get_problem(problem_id)
        return problem.to_document()

    @router.post("/problems/{problem_id}/answer")
    async def submit_answer(
        problem_id: str,
        request: PracticeAnswerRequest,
        orchestrator: WorksheetOrchestrationService = Depends(get_orchestrator),
    ):
        """
        Grade a practice answer to one problem.

        Resubmitting replaces the learner's previous answer.
        """
        submission = await orchestrator.submit_practice_answer(
            problem_id, request.user_id, request.answer
        )
        return {"success": True, "submission": submission.to_document()}

    @router.get("/problems/{problem_id}/answer/{user_id}")
    async def get_answer(
        problem_id: str,
        user_id: str,
        orchestrator: WorksheetOrchestrationService = Depends(get_orchestrator),
    ):
        submission = await orchestrator.get_practice_submission(problem_id, user_id)
        return submission.to_document()

    return router
