"""
Submission aggregation - turns graded answers into one stored submission.
"""

import logging
import uuid
from typing import Dict, List, Optional

from ..config.settings import settings as default_settings
from ..errors import InsiemeError, NotFoundError
from ..models import (
    ExtractionDetails,
    GradedAnswer,
    GradingMethod,
    GradingStrategy,
    GradingSummary,
    Submission,
    utc_now,
)
from ..utils import format_percentage, round_half_up
from .lifecycle import WorksheetLifecycleManager

logger = logging.getLogger(__name__)


def submission_id_for(worksheet_id: Optional[str], user_id: str) -> str:
    """
    One submission per (worksheet, user): resubmitting overwrites.

    Grading without a stored worksheet gets a fresh id every time.
    """
    if worksheet_id:
        return f"{worksheet_id}_{user_id}"
    return f"adhoc_{uuid.uuid4().hex}"


def grading_method_for(graded_answers: List[GradedAnswer]) -> GradingMethod:
    strategies = {answer.grading_strategy for answer in graded_answers}
    if GradingStrategy.PDF_EXTRACTION in strategies:
        return GradingMethod.PDF_EXTRACTION
    if GradingStrategy.LLM_OPEN_ENDED in strategies:
        return GradingMethod.LLM_ASSISTED
    return GradingMethod.BASIC


def summarize(graded_answers: List[GradedAnswer]) -> GradingSummary:
    confidences = [answer.confidence for answer in graded_answers]
    return GradingSummary(
        correct=sum(1 for answer in graded_answers if answer.is_correct),
        total=len(graded_answers),
        average_confidence=sum(confidences) / len(confidences) if confidences else 0.0,
    )


class SubmissionAggregator:
    """Scores, summarizes and persists submissions."""

    def __init__(self, store, lifecycle: WorksheetLifecycleManager, settings=default_settings):
        self.store = store
        self.lifecycle = lifecycle
        self.settings = settings
        self.collection = settings.SUBMISSIONS_COLLECTION

    def aggregate(
        self,
        worksheet_id: Optional[str],
        user_id: str,
        graded_answers: List[GradedAnswer],
        total_problems: int,
        grading_method: Optional[GradingMethod] = None,
        extraction_details: Optional[ExtractionDetails] = None,
    ) -> Submission:
        """
        Build the submission record.

        ``total_problems`` is the worksheet's problem count, so unanswered
        problems still count against the percentage.
        """
        partial_score = sum(answer.partial_score for answer in graded_answers)

        return Submission(
            id=submission_id_for(worksheet_id, user_id),
            worksheet_id=worksheet_id,
            user_id=user_id,
            answers=graded_answers,
            submitted_at=utc_now(),
            score=round_half_up(partial_score),
            total_problems=total_problems,
            partial_score=partial_score,
            percentage_score=format_percentage(partial_score, total_problems),
            grading_method=grading_method or grading_method_for(graded_answers),
            grading_version=self.settings.GRADING_VERSION,
            grading_summary=summarize(graded_answers),
            extraction_details=extraction_details,
        )

    async def persist(self, submission: Submission) -> Submission:
        """
        Store the submission, then mark its worksheet submitted.

        The order matters: if the submission write fails (PersistenceError
        propagates) the worksheet stays ``ready`` so the learner can retry.
        A failed status flip after a stored submission is only logged.
        """
        await self.store.set(self.collection, submission.id, submission.to_document())
        logger.info(
            f"✅ Submission {submission.id}: {submission.partial_score:.2f}/{submission.total_problems} "
            f"({submission.percentage_score}%)"
        )

        if submission.worksheet_id:
            try:
                await self.lifecycle.mark_submitted(submission.worksheet_id)
            except InsiemeError as e:
                logger.error(f"❌ Submission {submission.id} stored but worksheet status not updated: {e}")

        return submission

    # ============ READ SIDE ============

    async def get_submission(self, worksheet_id: str, user_id: str) -> Submission:
        doc = await self.store.get(self.collection, submission_id_for(worksheet_id, user_id))
        if not doc:
            raise NotFoundError(f"No submission for worksheet {worksheet_id} by {user_id}")
        return Submission.model_validate(doc)

    async def list_submissions(self, user_id: str) -> Dict[str, Submission]:
        """The user's submissions keyed by worksheet id."""
        docs = await self.store.find(self.collection, {"userId": user_id})
        submissions = {}
        for doc in docs:
            submission = Submission.model_validate(doc)
            if submission.worksheet_id:
                submissions[submission.worksheet_id] = submission
        return submissions
