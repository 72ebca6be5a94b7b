"""
Orchestration service - coordinates the complete worksheet workflow.

FLOW:
1. generateProblems → placeholder (creating) → Gemini generation
   → worksheet settled in place as ready, or as error
2. gradeAnswers → per problem: exact match or Gemini grading (in order)
   → submission stored → worksheet flipped to submitted
3. gradeAnswersPDF → answer sheet uploaded → one combined Gemini
   extraction + grading call → submission stored → worksheet submitted
4. practice → one bank problem graded like a typed answer
   → stored under {problemId}_{userId}
"""

import logging
from typing import Dict, List, Optional

from ..errors import InsiemeError, ValidationError
from ..models import (
    BankProblem,
    ExtractionDetails,
    GenerateProblemsRequest,
    GradeAnswersPDFRequest,
    GradeAnswersRequest,
    GradingMethod,
    PracticeSubmission,
    Submission,
    Worksheet,
)
from .aggregation import SubmissionAggregator
from .answer_extraction import AnswerExtractionService
from .generation import ProblemGenerationService
from .grading import GradingService
from .lifecycle import GenerationFailure, WorksheetLifecycleManager
from .problem_bank import ProblemBankService

logger = logging.getLogger(__name__)


class WorksheetOrchestrationService:
    """Orchestrates generation → lifecycle and grading → submission."""

    def __init__(self, context):
        self.context = context
        self.settings = context.settings
        self.store = context.store
        self.documents = context.documents
        self.lifecycle = WorksheetLifecycleManager(context.store, context.settings)
        self.aggregator = SubmissionAggregator(context.store, self.lifecycle, context.settings)
        self.generator = ProblemGenerationService(context.ai_backend, context.file_ingestion)
        self.grader = GradingService(context.ai_backend, context.settings.GRADING_CONCURRENCY)
        self.extractor = AnswerExtractionService(context.ai_backend, context.file_ingestion)
        self.problem_bank = ProblemBankService(context.store, self.grader, context.settings)

    # ============ PHASE 1: GENERATION ============

    async def generate_worksheet(self, request: GenerateProblemsRequest) -> Worksheet:
        """
        Generate a worksheet and settle its placeholder.

        Request validation happens before anything is written. Once the
        placeholder id is known every failure is recorded on the worksheet
        (status error) and then re-raised to the caller.
        """
        topic = (request.topic or "").strip()
        if not topic and not request.pdf_data:
            raise ValidationError("topic or pdfData is required", reason="missing_field")

        pdf_bytes = None
        if request.pdf_data:
            pdf_bytes = await self.documents.load_pdf(request.pdf_data, field_name="pdfData")

        if request.temp_worksheet_id:
            worksheet_id = request.temp_worksheet_id
        else:
            worksheet_id = await self.lifecycle.begin_creation(request)
        placeholder = self.lifecycle.placeholder_for(request, worksheet_id)

        try:
            problems, pdf_file_ref = await self.generator.generate(request, worksheet_id, pdf_bytes)
        except InsiemeError as e:
            logger.error(f"❌ Generation failed for worksheet {worksheet_id}: {e}")
            await self.lifecycle.complete_or_fail(
                worksheet_id, GenerationFailure(reason=e.reason, message=e.message), placeholder
            )
            raise

        worksheet = self.generator.build_worksheet(request, worksheet_id, problems, pdf_file_ref)
        worksheet = await self.lifecycle.complete_or_fail(worksheet_id, worksheet, placeholder)
        await self.problem_bank.store_worksheet_problems(worksheet)
        return worksheet

    # ============ PHASE 2: TEXT ANSWERS ============

    async def grade_answers(self, request: GradeAnswersRequest) -> Submission:
        """Grade typed answers and store the submission."""
        answers: Dict[str, Optional[str]] = {}
        for answer in request.answers:
            answers.setdefault(answer.problem_id, answer.answer)

        logger.info(f"⏳ Grading {len(request.problems)} answers for user {request.user_id}...")
        graded = await self.grader.grade_all(request.problems, answers)

        submission = self.aggregator.aggregate(
            worksheet_id=request.worksheet_id,
            user_id=request.user_id,
            graded_answers=graded,
            total_problems=len(request.problems),
        )
        return await self.aggregator.persist(submission)

    # ============ PHASE 3: SCANNED ANSWERS ============

    async def grade_answers_pdf(self, request: GradeAnswersPDFRequest) -> Submission:
        """Grade a scanned, handwritten answer sheet and store the submission."""
        pdf_bytes = await self.documents.load_pdf(request.answer_pdf_data, field_name="answerPDFData")

        graded, recognized = await self.extractor.grade_from_scan(request.problems, pdf_bytes)

        submission = self.aggregator.aggregate(
            worksheet_id=request.worksheet_id,
            user_id=request.user_id,
            graded_answers=graded,
            total_problems=len(request.problems),
            grading_method=GradingMethod.PDF_EXTRACTION,
            extraction_details=ExtractionDetails(
                recognized_answers=recognized,
                total_problems=len(request.problems),
            ),
        )
        return await self.aggregator.persist(submission)

    # ============ READ SIDE ============

    async def list_worksheets(self, user_id: str) -> List[Worksheet]:
        return await self.lifecycle.list_active_worksheets(user_id)

    async def get_worksheet(self, worksheet_id: str) -> Worksheet:
        return await self.lifecycle.get_worksheet(worksheet_id)

    async def list_submissions(self, user_id: str) -> Dict[str, Submission]:
        return await self.aggregator.list_submissions(user_id)

    async def get_submission(self, worksheet_id: str, user_id: str) -> Submission:
        return await self.aggregator.get_submission(worksheet_id, user_id)

    # ============ PROBLEM BANK ============

    async def list_problems(self, user_id: str) -> List[BankProblem]:
        return await self.problem_bank.list_problems(user_id)

    async def get_problem(self, problem_id: str) -> BankProblem:
        return await self.problem_bank.get_problem(problem_id)

    async def submit_practice_answer(
        self, problem_id: str, user_id: str, answer: Optional[str]
    ) -> PracticeSubmission:
        """Grade one answer to a single bank problem."""
        return await self.problem_bank.submit_answer(problem_id, user_id, answer)

    async def get_practice_submission(self, problem_id: str, user_id: str) -> PracticeSubmission:
        return await self.problem_bank.get_submission(problem_id, user_id)
