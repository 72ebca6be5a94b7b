"""
Grading routes.

Endpoints:
- POST /api/gradeAnswers
- POST /api/gradeAnswersPDF
- GET /api/submissions?userId=...
- GET /api/submissions/{worksheet_id}/{user_id}
"""

from fastapi import APIRouter, Depends, Query

from ..models import GradeAnswersPDFRequest, GradeAnswersRequest, GradingResponse
from ..services import WorksheetOrchestrationService
from .dependencies import get_orchestrator


def create_grading_routes() -> APIRouter:
    """Create grading routes."""

    router = APIRouter(prefix="/api", tags=["grading"])

    @router.post("/gradeAnswers")
    async def grade_answers(
        request: GradeAnswersRequest,
        orchestrator: WorksheetOrchestrationService = Depends(get_orchestrator),
    ):
        """
        Grade typed answers.

        Multiple-choice answers are checked exactly; open-ended answers are
        graded by Gemini with partial credit.
        """
        submission = await orchestrator.grade_answers(request)
        return GradingResponse.from_submission(submission).to_document()

    @router.post("/gradeAnswersPDF")
    async def grade_answers_pdf(
        request: GradeAnswersPDFRequest,
        orchestrator: WorksheetOrchestrationService = Depends(get_orchestrator),
    ):
        """Grade a scanned, handwritten answer sheet."""
        submission = await orchestrator.grade_answers_pdf(request)
        return GradingResponse.from_submission(submission).to_document()

    @router.get("/submissions")
    async def list_submissions(
        user_id: str = Query(..., alias="userId"),
        orchestrator: WorksheetOrchestrationService = Depends(get_orchestrator),
    ):
        """A user's submissions keyed by worksheet id."""
        submissions = await orchestrator.list_submissions(user_id)
        return {
            "submissions": {
                worksheet_id: submission.to_document()
                for worksheet_id, submission in submissions.items()
            }
        }

    @router.get("/submissions/{worksheet_id}/{user_id}")
    async def get_submission(
        worksheet_id: str,
        user_id: str,
        orchestrator: WorksheetOrchestrationService = Depends(get_orchestrator),
    ):
        submission = await orchestrator.get_submission(worksheet_id, user_id)
        return submission.to_document()

    return router
