"""
Grading service - grades worksheet answers by exact match or with Gemini.
"""

import asyncio
import logging
from typing import Dict, List, Optional

from ..config.settings import settings
from ..models import GradedAnswer, GradingStrategy, Problem
from .response_parser import ParseFailed, parse_grading_response
from .strategy import select_strategy

logger = logging.getLogger(__name__)


class GradingService:
    """Grades one answer per problem; open-ended answers go to the AI backend."""

    GRADING_PROMPT = """You are an experienced teacher grading a learner's answer to an open-ended question.

**Question:**
{question}

**Model answer:**
{correct_answer}

**Explanation of the model answer:**
{explanation}

**Learner's answer:**
{user_answer}

GRADING RULES:
- Compare the meaning of the learner's answer with the model answer, not its wording
- Award partial credit for answers that are partly correct or incomplete
- Ignore spelling and grammar unless they change the meaning
- score: 0.0 (completely wrong) to 1.0 (fully correct)
- confidence: 0.0 (guessing) to 1.0 (certain of the grade)
- feedback: one or two encouraging sentences addressed to the learner
- reasoning: a short justification of the score for the teacher

Return ONLY this JSON, no other text:
{{
  "score": 0.8,
  "feedback": "Good explanation, but you missed ...",
  "reasoning": "Covers the main idea; omits ...",
  "confidence": 0.9
}}"""

    NO_ANSWER_FEEDBACK = "no answer submitted"
    FALLBACK_FEEDBACK = (
        "Automatic grading failed for this answer. "
        "A provisional score was given; please ask a teacher to review it manually."
    )

    def __init__(self, ai_backend, concurrency: int = settings.GRADING_CONCURRENCY):
        self.ai_backend = ai_backend
        self.concurrency = max(1, concurrency)
        self.pass_threshold = settings.PASS_THRESHOLD

    async def grade(self, problem: Problem, user_answer: Optional[str]) -> GradedAnswer:
        """
        Grade a learner's answer to a single problem.

        Never raises: backend and parsing failures end in the deterministic
        fallback score.
        """
        if user_answer is None or not user_answer.strip():
            return self.missing_answer(problem)

        if select_strategy(problem) is GradingStrategy.EXACT_MATCH:
            return self.grade_exact_match(problem, user_answer)

        return await self._grade_open_ended(problem, user_answer)

    async def grade_all(
        self,
        problems: List[Problem],
        answers: Dict[str, Optional[str]],
    ) -> List[GradedAnswer]:
        """
        Grade every problem, returning results in problem order.

        Calls run one at a time unless ``concurrency`` > 1, in which case a
        bounded pool is used; ordering is the same either way.
        """
        tasks = [(problem, answers.get(problem.id)) for problem in problems]

        if self.concurrency == 1:
            results = []
            for problem, answer in tasks:
                results.append(await self.grade(problem, answer))
            return results

        semaphore = asyncio.Semaphore(self.concurrency)

        async def _bounded(problem: Problem, answer: Optional[str]) -> GradedAnswer:
            async with semaphore:
                return await self.grade(problem, answer)

        return list(await asyncio.gather(*(_bounded(p, a) for p, a in tasks)))

    @staticmethod
    def missing_answer(problem: Problem) -> GradedAnswer:
        return GradedAnswer(
            problem_id=problem.id,
            answer="",
            is_correct=False,
            partial_score=0.0,
            feedback=GradingService.NO_ANSWER_FEEDBACK,
            confidence=1.0,
            grading_strategy=select_strategy(problem),
        )

    @staticmethod
    def grade_exact_match(problem: Problem, user_answer: str) -> GradedAnswer:
        """Trimmed, case-sensitive comparison with the stored correct answer."""
        is_correct = user_answer.strip() == problem.correct_answer.strip()
        if is_correct:
            feedback = "Correct!"
        else:
            feedback = f"Incorrect. The correct answer is: {problem.correct_answer.strip()}"

        return GradedAnswer(
            problem_id=problem.id,
            answer=user_answer.strip(),
            is_correct=is_correct,
            partial_score=1.0 if is_correct else 0.0,
            feedback=feedback,
            reasoning=problem.explanation or None,
            confidence=1.0,
            grading_strategy=GradingStrategy.EXACT_MATCH,
        )

    async def _grade_open_ended(self, problem: Problem, user_answer: str) -> GradedAnswer:
        prompt = self.GRADING_PROMPT.format(
            question=problem.question,
            correct_answer=problem.correct_answer,
            explanation=problem.explanation or "(none)",
            user_answer=user_answer.strip(),
        )

        try:
            response_text = await self.ai_backend.generate(
                prompt,
                temperature=settings.LLM_TEMPERATURE,
                max_output_tokens=1000,
            )
        except Exception as e:
            logger.warning(f"⚠️  Grading call failed for problem {problem.id}: {e}")
            return self.fallback_grading(problem, user_answer)

        parsed = parse_grading_response(response_text)
        if isinstance(parsed, ParseFailed):
            logger.warning(f"⚠️  Failed to parse grading response for problem {problem.id}: {parsed.reason}")
            return self.fallback_grading(problem, user_answer)

        logger.info(f"✅ Problem {problem.id}: {parsed.score:.2f} (confidence {parsed.confidence:.2f})")
        return GradedAnswer(
            problem_id=problem.id,
            answer=user_answer.strip(),
            is_correct=parsed.score >= self.pass_threshold,
            partial_score=parsed.score,
            feedback=parsed.feedback,
            reasoning=parsed.reasoning,
            confidence=parsed.confidence,
            grading_strategy=GradingStrategy.LLM_OPEN_ENDED,
        )

    def fallback_grading(self, problem: Problem, user_answer: str) -> GradedAnswer:
        """Substring heuristic used when the backend cannot be understood."""
        model_answer = problem.correct_answer.strip().lower()
        contains = bool(model_answer) and model_answer in user_answer.lower()
        score = 0.7 if contains else 0.1

        return GradedAnswer(
            problem_id=problem.id,
            answer=user_answer.strip(),
            is_correct=score >= self.pass_threshold,
            partial_score=score,
            feedback=self.FALLBACK_FEEDBACK,
            reasoning="Keyword match against the model answer (automatic grading unavailable)",
            confidence=0.3,
            grading_strategy=GradingStrategy.LLM_OPEN_ENDED,
        )
