"""Services for generating worksheets and grading submissions."""

from .ai_backend import GeminiBackend, GeminiFileIngestion
from .documents import DocumentIntakeService
from .strategy import select_strategy
from .grading import GradingService
from .answer_extraction import AnswerExtractionService
from .generation import ProblemGenerationService
from .lifecycle import GenerationFailure, WorksheetLifecycleManager
from .aggregation import SubmissionAggregator
from .problem_bank import ProblemBankService
from .orchestration import WorksheetOrchestrationService

__all__ = [
    "GeminiBackend",
    "GeminiFileIngestion",
    "DocumentIntakeService",
    "select_strategy",
    "GradingService",
    "AnswerExtractionService",
    "ProblemGenerationService",
    "GenerationFailure",
    "WorksheetLifecycleManager",
    "SubmissionAggregator",
    "ProblemBankService",
    "WorksheetOrchestrationService",
]
