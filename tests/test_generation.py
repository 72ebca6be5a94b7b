"""
Test: Problem generation, response validation and worksheet titles.
"""
import asyncio
import json

import pytest

from insieme.config.settings import settings
from insieme.errors import UpstreamParseError, UpstreamUnavailable
from insieme.models import GenerateProblemsRequest, ProblemType, WorksheetStatus
from insieme.services import ProblemGenerationService

from conftest import FakeAIBackend, FakeFileIngestion, make_pdf_bytes

normalize = ProblemGenerationService.normalize_problem

MIXED_RESPONSE = json.dumps([
    {
        "question": "Which is bigger?",
        "type": "multiple-choice",
        "options": ["1/2", "1/3"],
        "correctAnswer": "1/2",
        "explanation": "Halves are bigger than thirds.",
    },
    {"question": "Add 1/4 and 1/4", "type": "short-answer", "correctAnswer": "1/2"},
    {"question": "Explain equivalent fractions", "type": "essay", "correctAnswer": "Same value"},
])


def fractions_request(**overrides):
    fields = dict(subject="math", difficulty="easy", topic="fractions", num_questions=3, user_id="u1")
    fields.update(overrides)
    return GenerateProblemsRequest(**fields)


def run_generate(response, request=None, pdf_bytes=None, ingestion=None):
    backend = FakeAIBackend([response])
    ingestion = ingestion or FakeFileIngestion()
    service = ProblemGenerationService(backend, ingestion)
    problems, file_ref = asyncio.run(
        service.generate(request or fractions_request(), "w1", pdf_bytes)
    )
    return problems, file_ref, backend, ingestion


class TestNormalizeProblem:
    def test_multiple_choice(self):
        problem = normalize(
            {"question": " Q ", "options": ["a", " b "], "correctAnswer": "b"}, "w1_p1"
        )
        assert problem.id == "w1_p1"
        assert problem.question == "Q"
        assert problem.options == ["a", "b"]
        assert problem.type is ProblemType.MULTIPLE_CHOICE

    def test_correct_answer_missing_from_options(self):
        assert normalize({"question": "Q", "options": ["a", "b"], "correctAnswer": "c"}, "x") is None

    def test_correct_answer_listed_twice(self):
        assert normalize({"question": "Q", "options": ["a", "a"], "correctAnswer": "a"}, "x") is None

    @pytest.mark.parametrize("item", [
        {"question": "", "correctAnswer": "a"},
        {"question": "Q"},
        {"question": "Q", "correctAnswer": "   "},
    ])
    def test_incomplete_items_are_rejected(self, item):
        assert normalize(item, "x") is None

    def test_choice_type_without_options_becomes_short_answer(self):
        problem = normalize({"question": "Q", "type": "multiple-choice", "options": [], "correctAnswer": "a"}, "x")
        assert problem.options is None
        assert problem.type is ProblemType.SHORT_ANSWER

    def test_unknown_type_defaults_to_short_answer(self):
        problem = normalize({"question": "Q", "type": "riddle", "correctAnswer": "a"}, "x")
        assert problem.type is ProblemType.SHORT_ANSWER

    def test_essay_is_kept(self):
        problem = normalize({"question": "Q", "type": "essay", "correctAnswer": "a"}, "x")
        assert problem.type is ProblemType.ESSAY


class TestGenerate:
    def test_topic_only(self):
        problems, file_ref, backend, ingestion = run_generate(MIXED_RESPONSE)

        assert file_ref is None
        assert ingestion.uploads == []
        assert backend.calls[0]["file_ref"] is None
        assert "fractions" in backend.calls[0]["prompt"]
        assert [p.id for p in problems] == ["w1_p1", "w1_p2", "w1_p3"]
        assert [p.type for p in problems] == [
            ProblemType.MULTIPLE_CHOICE,
            ProblemType.SHORT_ANSWER,
            ProblemType.ESSAY,
        ]

    def test_source_pdf_is_uploaded_and_referenced(self):
        problems, file_ref, backend, ingestion = run_generate(
            MIXED_RESPONSE, pdf_bytes=make_pdf_bytes()
        )
        assert file_ref == "files/1"
        assert len(ingestion.uploads) == 1
        assert backend.calls[0]["file_ref"] == "files/1"
        assert "attached PDF" in backend.calls[0]["prompt"]

    def test_question_format_in_prompt(self):
        _, _, backend, _ = run_generate(
            MIXED_RESPONSE, request=fractions_request(question_type="multiple-choice")
        )
        assert "multiple-choice problems only" in backend.calls[0]["prompt"]

    def test_truncates_to_requested_count(self):
        problems, _, _, _ = run_generate(MIXED_RESPONSE, request=fractions_request(num_questions=2))
        assert len(problems) == 2

    def test_request_is_capped(self):
        _, _, backend, _ = run_generate(MIXED_RESPONSE, request=fractions_request(num_questions=500))
        assert f"CREATE {settings.MAX_QUESTIONS} PROBLEMS" in backend.calls[0]["prompt"]

    def test_invalid_items_are_dropped_and_ids_stay_dense(self):
        response = json.dumps([
            {"question": "bad", "options": ["x", "y"], "correctAnswer": "z"},
            {"question": "good", "correctAnswer": "ok"},
        ])
        problems, _, _, _ = run_generate(response)
        assert [(p.id, p.question) for p in problems] == [("w1_p1", "good")]

    def test_unparseable_response(self):
        with pytest.raises(UpstreamParseError):
            run_generate("Here are some great problems!")

    def test_no_valid_problems(self):
        with pytest.raises(UpstreamParseError):
            run_generate(json.dumps([{"question": "only a question"}]))

    def test_backend_failure(self):
        with pytest.raises(UpstreamUnavailable):
            run_generate(RuntimeError("quota exceeded"))

    def test_upload_failure(self):
        with pytest.raises(UpstreamUnavailable):
            run_generate(MIXED_RESPONSE, pdf_bytes=make_pdf_bytes(), ingestion=FakeFileIngestion(fail=True))

    def test_failed_generation_deletes_uploaded_source(self):
        ingestion = FakeFileIngestion()
        with pytest.raises(UpstreamParseError):
            run_generate("no problems today", pdf_bytes=make_pdf_bytes(), ingestion=ingestion)
        assert ingestion.deleted == ["files/1"]

    def test_backend_failure_deletes_uploaded_source(self):
        ingestion = FakeFileIngestion()
        with pytest.raises(UpstreamUnavailable):
            run_generate(RuntimeError("quota exceeded"), pdf_bytes=make_pdf_bytes(), ingestion=ingestion)
        assert ingestion.deleted == ["files/1"]

    def test_successful_generation_keeps_uploaded_source(self):
        _, file_ref, _, ingestion = run_generate(MIXED_RESPONSE, pdf_bytes=make_pdf_bytes())
        assert file_ref == "files/1"
        assert ingestion.deleted == []


class TestBuildWorksheet:
    def _build(self, request, file_ref=None):
        problems = [normalize({"question": "Q", "correctAnswer": "a"}, "w1_p1")]
        return ProblemGenerationService.build_worksheet(request, "w1", problems, file_ref)

    def test_topic_title(self):
        worksheet = self._build(fractions_request())
        assert worksheet.title == "fractions (easy)"
        assert worksheet.status is WorksheetStatus.READY
        assert worksheet.has_pdf is False
        assert worksheet.created_by == "u1"

    def test_pdf_only_title(self):
        worksheet = self._build(fractions_request(topic=None), file_ref="files/1")
        assert worksheet.title == "PDF worksheet (easy)"
        assert worksheet.has_pdf is True
        assert worksheet.to_document()["hasPDF"] is True

    def test_topic_and_pdf_title(self):
        worksheet = self._build(fractions_request(), file_ref="files/1")
        assert worksheet.title == "fractions + PDF (easy)"
