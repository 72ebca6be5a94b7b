"""
Answer extraction service - reads handwritten answers from a scanned PDF
and grades all of them with a single Gemini call.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from ..config.settings import settings
from ..errors import InsiemeError, UpstreamUnavailable
from ..models import GradedAnswer, GradingStrategy, Problem
from ..utils import clamp_unit
from .grading import GradingService
from .response_parser import parse_json_array

logger = logging.getLogger(__name__)


class AnswerExtractionService:
    """Extracts and grades every answer on a learner's scanned answer sheet."""

    EXTRACTION_PROMPT = """You are reading a learner's HANDWRITTEN answer sheet (attached PDF) for the worksheet below.

WORKSHEET:
{problem_list}

YOUR TASK:
1. Read the handwriting on every page of the attached file
2. Find the learner's answer to each problem, using the problem number or id written on the sheet
3. Grade each answer against its model answer, awarding partial credit where deserved

RETURN EXACTLY THIS JSON ARRAY (one entry per problem you could locate):
[
  {{
    "problemNumber": 1,
    "problemId": "the id shown above",
    "extractedAnswer": "the learner's answer, transcribed exactly",
    "score": 0.8,
    "feedback": "Short feedback for the learner",
    "reasoning": "Why this score was given",
    "confidence": 0.9
  }}
]

RULES:
- For multiple-choice problems, set extractedAnswer to the chosen option text exactly as listed
- score: 0.0 (wrong) to 1.0 (fully correct)
- confidence: 0.0 (handwriting unreadable / guessing) to 1.0 (certain)
- Leave out problems whose answer you cannot find
- Return ONLY valid JSON"""

    UNREADABLE_FEEDBACK = "Your answer to this problem could not be read from the uploaded sheet."

    def __init__(self, ai_backend, file_ingestion):
        self.ai_backend = ai_backend
        self.file_ingestion = file_ingestion
        self.pass_threshold = settings.PASS_THRESHOLD

    async def grade_from_scan(
        self,
        problems: List[Problem],
        answer_pdf_bytes: bytes,
    ) -> Tuple[List[GradedAnswer], int]:
        """
        Grade a scanned answer sheet.

        Args:
            problems: Worksheet problems, in worksheet order
            answer_pdf_bytes: Raw PDF bytes of the learner's answers

        Returns:
            Tuple of (graded answers in problem order, number of answers recognized)

        Raises:
            UpstreamUnavailable: upload or AI call failed
            UpstreamParseError: the combined response was not a JSON array
        """
        logger.info(f"🔍 Extracting handwritten answers for {len(problems)} problems...")

        try:
            file_ref = await self.file_ingestion.upload_pdf(
                answer_pdf_bytes, display_name="answer-sheet.pdf"
            )
        except InsiemeError:
            raise
        except Exception as e:
            raise UpstreamUnavailable(
                "Answer sheet upload failed", details={"error": str(e)}, reason="upload_failed"
            ) from e

        try:
            prompt = self.EXTRACTION_PROMPT.format(problem_list=self.format_problem_list(problems))
            try:
                response_text = await self.ai_backend.generate(
                    prompt,
                    file_ref=file_ref,
                    temperature=settings.LLM_TEMPERATURE,
                    max_output_tokens=8000,
                )
            except InsiemeError:
                raise
            except Exception as e:
                raise UpstreamUnavailable(
                    "Answer extraction call failed", details={"error": str(e)}
                ) from e
        finally:
            await self.file_ingestion.delete(file_ref)

        entries = parse_json_array(response_text)
        matched = self.match_entries(problems, entries)

        graded = []
        recognized = 0
        for problem in problems:
            entry = matched.get(problem.id)
            extracted = self._extracted_answer(entry)
            if extracted is None:
                graded.append(self.unreadable(problem))
                continue
            recognized += 1
            graded.append(self._grade_entry(problem, extracted, entry))

        logger.info(f"✅ Recognized {recognized}/{len(problems)} answers")
        return graded, recognized

    @staticmethod
    def format_problem_list(problems: List[Problem]) -> str:
        blocks = []
        for number, problem in enumerate(problems, start=1):
            lines = [f"Problem {number} (id: {problem.id})", f"Question: {problem.question}"]
            if problem.options:
                lines.append("Options: " + " / ".join(problem.options))
            lines.append(f"Model answer: {problem.correct_answer}")
            if problem.explanation:
                lines.append(f"Explanation: {problem.explanation}")
            blocks.append("\n".join(lines))
        return "\n\n".join(blocks)

    @staticmethod
    def match_entries(
        problems: List[Problem],
        entries: List[Dict[str, Any]],
    ) -> Dict[str, Dict[str, Any]]:
        """
        Associate response entries with problems: by id first, then by
        1-based problem number. The first entry for a problem wins.
        """
        by_id = {problem.id: problem for problem in problems}
        matched: Dict[str, Dict[str, Any]] = {}

        for entry in entries:
            problem = by_id.get(str(entry.get("problemId") or "").strip())
            if problem is None:
                number = _as_int(entry.get("problemNumber"))
                if number is not None and 1 <= number <= len(problems):
                    problem = problems[number - 1]
            if problem is None:
                logger.warning(f"Unmatched extraction entry: {entry}")
                continue
            matched.setdefault(problem.id, entry)

        return matched

    @staticmethod
    def _extracted_answer(entry: Optional[Dict[str, Any]]) -> Optional[str]:
        if entry is None:
            return None
        value = entry.get("extractedAnswer")
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    def _grade_entry(self, problem: Problem, extracted: str, entry: Dict[str, Any]) -> GradedAnswer:
        # Choices that were transcribed verbatim are scored deterministically
        if problem.options and extracted in [option.strip() for option in problem.options]:
            return GradingService.grade_exact_match(problem, extracted)

        score = clamp_unit(entry.get("score"))
        feedback = entry.get("feedback")
        reasoning = entry.get("reasoning")
        return GradedAnswer(
            problem_id=problem.id,
            answer=extracted,
            is_correct=score >= self.pass_threshold,
            partial_score=score,
            feedback=str(feedback).strip() if feedback else "Graded by AI system",
            reasoning=str(reasoning).strip() if reasoning else None,
            confidence=clamp_unit(entry.get("confidence"), default=0.5),
            grading_strategy=GradingStrategy.PDF_EXTRACTION,
        )

    def unreadable(self, problem: Problem) -> GradedAnswer:
        return GradedAnswer(
            problem_id=problem.id,
            answer="",
            is_correct=False,
            partial_score=0.0,
            feedback=self.UNREADABLE_FEEDBACK,
            confidence=1.0,
            grading_strategy=GradingStrategy.PDF_EXTRACTION,
        )


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None
