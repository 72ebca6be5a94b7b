"""Document and request models using Pydantic for validation.

Documents are stored and exchanged in camelCase, the shape the web client
reads; Python code uses the snake_case attribute names.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_document(self) -> Dict[str, Any]:
        """JSON-safe camelCase dict, as written to the document store."""
        return self.model_dump(by_alias=True, mode="json")


# ============ ENUMS ============
class WorksheetStatus(str, Enum):
    CREATING = "creating"
    ERROR = "error"
    READY = "ready"
    SUBMITTED = "submitted"


class ProblemType(str, Enum):
    MULTIPLE_CHOICE = "multiple-choice"
    SHORT_ANSWER = "short-answer"
    ESSAY = "essay"


class GradingStrategy(str, Enum):
    EXACT_MATCH = "exact-match"
    LLM_OPEN_ENDED = "llm-open-ended"
    PDF_EXTRACTION = "pdf-extraction"


class GradingMethod(str, Enum):
    BASIC = "basic"  # every problem graded by exact match
    LLM_ASSISTED = "llm-assisted"
    PDF_EXTRACTION = "pdf-extraction"


# ============ PROBLEM ============
class Problem(CamelModel):
    id: str
    question: str
    options: Optional[List[str]] = None
    correct_answer: str
    explanation: str = ""
    type: ProblemType = ProblemType.SHORT_ANSWER

    @model_validator(mode="before")
    @classmethod
    def _infer_type(cls, data: Any) -> Any:
        # Older clients send problems without a type; options decide it.
        if isinstance(data, dict) and not data.get("type"):
            data = dict(data)
            data["type"] = (
                ProblemType.MULTIPLE_CHOICE.value
                if data.get("options")
                else ProblemType.SHORT_ANSWER.value
            )
        return data


class BankProblem(Problem):
    """A generated problem as kept in the user's problem bank."""

    worksheet_id: Optional[str] = None
    subject: str = "general"
    difficulty: str = "medium"
    topic: str = ""
    created_at: datetime = Field(default_factory=utc_now)
    created_by: str


# ============ WORKSHEET ============
class Worksheet(CamelModel):
    id: str
    title: str
    description: str = ""
    subject: str = "general"
    topic: str = ""
    difficulty: str = "medium"
    created_at: datetime = Field(default_factory=utc_now)
    created_by: str
    problems: List[Problem] = []
    status: WorksheetStatus = WorksheetStatus.CREATING
    has_pdf: bool = Field(default=False, alias="hasPDF")
    pdf_file_ref: Optional[str] = None
    error_reason: Optional[str] = None
    updated_at: Optional[datetime] = None


# ============ GRADING ============
class AnswerInput(CamelModel):
    problem_id: str
    answer: Optional[str] = None


class GradedAnswer(CamelModel):
    problem_id: str
    answer: str = ""
    is_correct: bool
    partial_score: float = Field(ge=0.0, le=1.0)
    max_score: float = 1.0
    feedback: str
    reasoning: Optional[str] = None
    confidence: float = Field(ge=0.0, le=1.0)
    grading_strategy: GradingStrategy


class GradingSummary(CamelModel):
    correct: int
    total: int
    average_confidence: float


class ExtractionDetails(CamelModel):
    recognized_answers: int
    total_problems: int


class Submission(CamelModel):
    id: str
    worksheet_id: Optional[str] = None
    user_id: str
    answers: List[GradedAnswer]
    submitted_at: datetime = Field(default_factory=utc_now)
    score: int
    total_problems: int
    partial_score: float
    percentage_score: int
    grading_method: GradingMethod
    grading_version: str
    grading_summary: GradingSummary
    extraction_details: Optional[ExtractionDetails] = None


class PracticeSubmission(CamelModel):
    """One learner's graded answer to a single bank problem."""

    id: str
    problem_id: str
    user_id: str
    answer: str
    submitted_at: datetime = Field(default_factory=utc_now)
    is_correct: bool
    result: GradedAnswer


# ============ REQUESTS ============
class GenerateProblemsRequest(CamelModel):
    subject: str = "general"
    difficulty: str = "medium"
    topic: Optional[str] = None
    num_questions: int = Field(default=5, ge=1)
    user_id: str
    temp_worksheet_id: Optional[str] = None
    pdf_data: Optional[str] = None  # base64 data URL
    question_type: str = "mixed"


class GradeAnswersRequest(CamelModel):
    problems: List[Problem] = Field(min_length=1)
    answers: List[AnswerInput] = []
    user_id: str
    worksheet_id: Optional[str] = None


class PracticeAnswerRequest(CamelModel):
    user_id: str
    answer: Optional[str] = None


class GradeAnswersPDFRequest(CamelModel):
    problems: List[Problem] = Field(min_length=1)
    answer_pdf_data: str = Field(alias="answerPDFData")
    user_id: str
    worksheet_id: Optional[str] = None


# ============ RESPONSES ============
class GenerateProblemsResponse(CamelModel):
    success: bool = True
    worksheet: Worksheet
    count: int


class GradingResponse(CamelModel):
    success: bool = True
    submission_id: str
    graded_answers: List[GradedAnswer]
    total_score: int
    max_total_score: int
    partial_score: float
    percentage_score: int
    grading_summary: GradingSummary
    extraction_details: Optional[ExtractionDetails] = None

    @classmethod
    def from_submission(cls, submission: Submission) -> "GradingResponse":
        return cls(
            submission_id=submission.id,
            graded_answers=submission.answers,
            total_score=submission.score,
            max_total_score=submission.total_problems,
            partial_score=submission.partial_score,
            percentage_score=submission.percentage_score,
            grading_summary=submission.grading_summary,
            extraction_details=submission.extraction_details,
        )
