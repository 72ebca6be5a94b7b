"""
Problem bank - every generated problem, kept per user for single-problem practice.
"""

import logging
from typing import List, Optional

from ..config.settings import settings as default_settings
from ..errors import NotFoundError, PersistenceError, ValidationError
from ..models import BankProblem, PracticeSubmission, Worksheet, utc_now
from .grading import GradingService

logger = logging.getLogger(__name__)


def practice_submission_id_for(problem_id: str, user_id: str) -> str:
    """One practice answer per (problem, user): answering again overwrites."""
    return f"{problem_id}_{user_id}"


class ProblemBankService:
    """Stores generated problems and grades practice answers against them."""

    def __init__(self, store, grader: GradingService, settings=default_settings):
        self.store = store
        self.grader = grader
        self.collection = settings.PROBLEMS_COLLECTION
        self.submissions_collection = settings.PRACTICE_SUBMISSIONS_COLLECTION

    async def store_worksheet_problems(self, worksheet: Worksheet) -> int:
        """
        Copy a worksheet's problems into the bank (best effort).

        Returns:
            Number of problems written
        """
        stored = 0
        for problem in worksheet.problems:
            entry = BankProblem(
                **problem.model_dump(),
                worksheet_id=worksheet.id,
                subject=worksheet.subject,
                difficulty=worksheet.difficulty,
                topic=worksheet.topic,
                created_at=utc_now(),
                created_by=worksheet.created_by,
            )
            try:
                await self.store.set(self.collection, problem.id, entry.to_document())
                stored += 1
            except PersistenceError as e:
                logger.warning(f"Problem bank write failed for {problem.id}: {e}")
        return stored

    async def list_problems(self, user_id: str) -> List[BankProblem]:
        """The user's bank, newest first."""
        docs = await self.store.find(self.collection, {"createdBy": user_id}, order_by="createdAt")
        return [BankProblem.model_validate(doc) for doc in docs]

    async def get_problem(self, problem_id: str) -> BankProblem:
        doc = await self.store.get(self.collection, problem_id)
        if not doc:
            raise NotFoundError(f"Problem {problem_id} not found")
        return BankProblem.model_validate(doc)

    async def submit_answer(self, problem_id: str, user_id: str, answer: Optional[str]) -> PracticeSubmission:
        """
        Grade a practice answer and store it under ``{problemId}_{userId}``.

        Raises:
            ValidationError: blank answer (nothing is graded or stored)
            NotFoundError: unknown problem
        """
        if answer is None or not answer.strip():
            raise ValidationError("answer is required", reason="missing_field")

        problem = await self.get_problem(problem_id)
        graded = await self.grader.grade(problem, answer)

        submission = PracticeSubmission(
            id=practice_submission_id_for(problem_id, user_id),
            problem_id=problem_id,
            user_id=user_id,
            answer=answer.strip(),
            submitted_at=utc_now(),
            is_correct=graded.is_correct,
            result=graded,
        )
        await self.store.set(self.submissions_collection, submission.id, submission.to_document())
        logger.info(f"✅ Practice answer {submission.id}: {graded.partial_score:.2f}")
        return submission

    async def get_submission(self, problem_id: str, user_id: str) -> PracticeSubmission:
        doc = await self.store.get(
            self.submissions_collection, practice_submission_id_for(problem_id, user_id)
        )
        if not doc:
            raise NotFoundError(f"No practice answer for problem {problem_id} by {user_id}")
        return PracticeSubmission.model_validate(doc)
