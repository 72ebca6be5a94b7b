"""
Problem generation service - asks Gemini for worksheet problems on a topic
and/or an uploaded source PDF.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from ..config.settings import settings
from ..errors import InsiemeError, UpstreamParseError, UpstreamUnavailable
from ..models import GenerateProblemsRequest, Problem, ProblemType, Worksheet, WorksheetStatus, utc_now
from .response_parser import parse_json_array

logger = logging.getLogger(__name__)


class ProblemGenerationService:
    """Generates structured problems with Gemini and validates them."""

    GENERATION_PROMPT = """You are an experienced teacher creating a learning worksheet.

CREATE {num_questions} PROBLEMS:
- Subject: {subject}
- Difficulty: {difficulty}
- {source}
- Question format: {question_format}

RETURN EXACTLY THIS JSON ARRAY:
[
  {{
    "question": "The question text",
    "type": "multiple-choice",
    "options": ["option 1", "option 2", "option 3", "option 4"],
    "correctAnswer": "option 2",
    "explanation": "Why option 2 is correct"
  }},
  {{
    "question": "The question text",
    "type": "short-answer",
    "correctAnswer": "The model answer",
    "explanation": "How to arrive at the answer"
  }}
]

RULES:
- "type" is one of "multiple-choice", "short-answer", "essay"
- Only multiple-choice problems have "options"
- For multiple-choice, "correctAnswer" must be copied exactly from "options", and appear there once
- Math may use LaTeX between $...$
- Return ONLY valid JSON, no other text"""

    QUESTION_FORMATS = {
        "mixed": "a mix of multiple-choice and short-answer problems",
        "multiple-choice": "multiple-choice problems only",
        "short-answer": "short-answer problems only",
        "essay": "essay problems only",
    }

    def __init__(self, ai_backend, file_ingestion):
        self.ai_backend = ai_backend
        self.file_ingestion = file_ingestion

    async def generate(
        self,
        request: GenerateProblemsRequest,
        worksheet_id: str,
        pdf_bytes: Optional[bytes] = None,
    ) -> Tuple[List[Problem], Optional[str]]:
        """
        Generate problems for a worksheet.

        Args:
            request: Generation parameters from the client
            worksheet_id: Id the problems will belong to (used for problem ids)
            pdf_bytes: Optional source material

        Returns:
            Tuple of (validated problems, uploaded PDF reference or None)

        Raises:
            UpstreamUnavailable: upload or AI call failed
            UpstreamParseError: response unusable or no valid problems
        """
        num_questions = min(request.num_questions, settings.MAX_QUESTIONS)

        file_ref = None
        if pdf_bytes is not None:
            try:
                file_ref = await self.file_ingestion.upload_pdf(
                    pdf_bytes, display_name=f"{worksheet_id}-source.pdf"
                )
            except InsiemeError:
                raise
            except Exception as e:
                raise UpstreamUnavailable(
                    "Source PDF upload failed", details={"error": str(e)}, reason="upload_failed"
                ) from e

        prompt = self.GENERATION_PROMPT.format(
            num_questions=num_questions,
            subject=request.subject,
            difficulty=request.difficulty,
            source=self._describe_source(request.topic, file_ref is not None),
            question_format=self.QUESTION_FORMATS.get(
                request.question_type, self.QUESTION_FORMATS["mixed"]
            ),
        )

        logger.info(f"🔍 Generating {num_questions} problems for worksheet {worksheet_id}...")
        try:
            problems = await self._request_problems(prompt, file_ref, worksheet_id)
        except InsiemeError:
            # Only a worksheet that was actually generated keeps its source file
            if file_ref is not None:
                await self.file_ingestion.delete(file_ref)
            raise

        logger.info(f"✅ Generated {len(problems[:num_questions])} problems")
        return problems[:num_questions], file_ref

    async def _request_problems(
        self, prompt: str, file_ref: Optional[str], worksheet_id: str
    ) -> List[Problem]:
        try:
            response_text = await self.ai_backend.generate(
                prompt,
                file_ref=file_ref,
                temperature=settings.GENERATION_TEMPERATURE,
                max_output_tokens=8000,
            )
        except InsiemeError:
            raise
        except Exception as e:
            raise UpstreamUnavailable("Problem generation call failed", details={"error": str(e)}) from e

        items = parse_json_array(response_text)

        problems = []
        for item in items:
            problem = self.normalize_problem(item, f"{worksheet_id}_p{len(problems) + 1}")
            if problem is None:
                logger.warning(f"Dropped invalid generated problem: {str(item)[:120]}")
                continue
            problems.append(problem)

        if not problems:
            raise UpstreamParseError(
                "AI response contained no valid problems", details={"items": len(items)}
            )
        return problems

    @staticmethod
    def _describe_source(topic: Optional[str], has_pdf: bool) -> str:
        if topic and has_pdf:
            return f"Topic: {topic}, based on the content of the attached PDF"
        if has_pdf:
            return "Topic: the content of the attached PDF"
        return f"Topic: {topic}"

    @staticmethod
    def normalize_problem(item: Dict[str, Any], problem_id: str) -> Optional[Problem]:
        """
        Build a Problem from one untrusted response item.

        Returns None when the item cannot satisfy the problem invariants:
        question and answer present; options exactly when multiple-choice,
        with exactly one option equal to the correct answer.
        """
        question = str(item.get("question") or "").strip()
        correct_answer = str(item.get("correctAnswer") or "").strip()
        if not question or not correct_answer:
            return None

        options = None
        raw_options = item.get("options")
        if isinstance(raw_options, list):
            options = [str(option).strip() for option in raw_options if str(option).strip()]

        if options:
            if sum(1 for option in options if option == correct_answer) != 1:
                return None
            problem_type = ProblemType.MULTIPLE_CHOICE
        else:
            options = None
            try:
                problem_type = ProblemType(item.get("type"))
            except ValueError:
                problem_type = ProblemType.SHORT_ANSWER
            if problem_type is ProblemType.MULTIPLE_CHOICE:
                problem_type = ProblemType.SHORT_ANSWER

        return Problem(
            id=problem_id,
            question=question,
            options=options,
            correct_answer=correct_answer,
            explanation=str(item.get("explanation") or "").strip(),
            type=problem_type,
        )

    @staticmethod
    def build_worksheet(
        request: GenerateProblemsRequest,
        worksheet_id: str,
        problems: List[Problem],
        pdf_file_ref: Optional[str] = None,
    ) -> Worksheet:
        """Materialize the final, ready worksheet."""
        topic = (request.topic or "").strip()
        if topic and pdf_file_ref:
            title = f"{topic} + PDF ({request.difficulty})"
        elif pdf_file_ref:
            title = f"PDF worksheet ({request.difficulty})"
        else:
            title = f"{topic} ({request.difficulty})"

        return Worksheet(
            id=worksheet_id,
            title=title,
            description=f"{len(problems)} problems generated for {topic or 'the uploaded PDF'}",
            subject=request.subject,
            topic=topic,
            difficulty=request.difficulty,
            created_at=utc_now(),
            created_by=request.user_id,
            problems=problems,
            status=WorksheetStatus.READY,
            has_pdf=pdf_file_ref is not None,
            pdf_file_ref=pdf_file_ref,
        )
