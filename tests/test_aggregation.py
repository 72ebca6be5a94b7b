"""
Test: Submission scoring math, summary, id policy and write ordering.
"""
import asyncio

import pytest

from insieme.config.settings import settings
from insieme.errors import PersistenceError
from insieme.models import GradedAnswer, GradingMethod, GradingStrategy, Worksheet, WorksheetStatus
from insieme.services import SubmissionAggregator, WorksheetLifecycleManager
from insieme.services.aggregation import submission_id_for
from insieme.utils import round_half_up


def graded(problem_id, score, correct=None, confidence=1.0, strategy=GradingStrategy.LLM_OPEN_ENDED):
    return GradedAnswer(
        problem_id=problem_id,
        answer="x",
        is_correct=score >= 0.7 if correct is None else correct,
        partial_score=score,
        feedback="f",
        confidence=confidence,
        grading_strategy=strategy,
    )


@pytest.fixture
def aggregator(store):
    return SubmissionAggregator(store, WorksheetLifecycleManager(store))


def store_ready_worksheet(store, worksheet_id="w1"):
    worksheet = Worksheet(id=worksheet_id, title="t", created_by="u1", status=WorksheetStatus.READY)
    asyncio.run(store.set(settings.WORKSHEETS_COLLECTION, worksheet_id, worksheet.to_document()))


class TestAggregate:
    def test_partial_scores_are_summed_and_rounded(self, aggregator):
        answers = [graded("a", 0.9), graded("b", 0.4), graded("c", 0.0)]
        submission = aggregator.aggregate("w1", "u1", answers, total_problems=3)
        assert submission.partial_score == pytest.approx(1.3)
        assert submission.score == 1
        assert submission.percentage_score == 43
        assert submission.total_problems == 3

    def test_denominator_is_problem_count(self, aggregator):
        submission = aggregator.aggregate("w1", "u1", [graded("a", 1.0)], total_problems=4)
        assert submission.percentage_score == 25

    def test_no_problems(self, aggregator):
        submission = aggregator.aggregate("w1", "u1", [], total_problems=0)
        assert submission.percentage_score == 0
        assert submission.grading_summary.average_confidence == 0.0

    def test_summary(self, aggregator):
        answers = [graded("a", 1.0, confidence=1.0), graded("b", 0.5, confidence=0.5), graded("c", 0.8, confidence=0.3)]
        summary = aggregator.aggregate("w1", "u1", answers, 3).grading_summary
        assert summary.correct == 2
        assert summary.total == 3
        assert summary.average_confidence == pytest.approx(0.6)

    def test_grading_method(self, aggregator):
        exact = [graded("a", 1.0, strategy=GradingStrategy.EXACT_MATCH)]
        mixed = exact + [graded("b", 0.5)]
        assert aggregator.aggregate("w", "u", exact, 1).grading_method is GradingMethod.BASIC
        assert aggregator.aggregate("w", "u", mixed, 2).grading_method is GradingMethod.LLM_ASSISTED
        assert aggregator.aggregate("w", "u", exact, 1).grading_version == settings.GRADING_VERSION

    def test_half_rounds_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(0.5) == 1
        assert round_half_up(2.49) == 2


class TestSubmissionId:
    def test_deterministic_per_worksheet_and_user(self):
        assert submission_id_for("w1", "u1") == "w1_u1"

    def test_fresh_without_worksheet(self):
        first, second = submission_id_for(None, "u1"), submission_id_for(None, "u1")
        assert first.startswith("adhoc_")
        assert first != second


class TestPersist:
    def test_writes_submission_then_flips_status(self, aggregator, store):
        store_ready_worksheet(store)
        store.writes.clear()
        submission = aggregator.aggregate("w1", "u1", [graded("a", 1.0)], 1)
        asyncio.run(aggregator.persist(submission))

        assert store.writes == [
            (settings.SUBMISSIONS_COLLECTION, "w1_u1"),
            (settings.WORKSHEETS_COLLECTION, "w1"),
        ]
        assert store.docs(settings.WORKSHEETS_COLLECTION)["w1"]["status"] == "submitted"

    def test_failed_submission_write_keeps_worksheet_ready(self, aggregator, store):
        store_ready_worksheet(store)
        store.failing_collections.add(settings.SUBMISSIONS_COLLECTION)
        submission = aggregator.aggregate("w1", "u1", [graded("a", 1.0)], 1)

        with pytest.raises(PersistenceError):
            asyncio.run(aggregator.persist(submission))
        assert store.docs(settings.WORKSHEETS_COLLECTION)["w1"]["status"] == "ready"

    def test_resubmission_overwrites(self, aggregator, store):
        store_ready_worksheet(store)
        asyncio.run(aggregator.persist(aggregator.aggregate("w1", "u1", [graded("a", 0.2)], 1)))
        asyncio.run(aggregator.persist(aggregator.aggregate("w1", "u1", [graded("a", 0.9)], 1)))

        submissions = store.docs(settings.SUBMISSIONS_COLLECTION)
        assert list(submissions) == ["w1_u1"]
        assert submissions["w1_u1"]["partialScore"] == pytest.approx(0.9)

    def test_status_flip_failure_does_not_fail(self, aggregator, store):
        creating = Worksheet(id="w1", title="t", created_by="u1", status=WorksheetStatus.CREATING)
        asyncio.run(store.set(settings.WORKSHEETS_COLLECTION, "w1", creating.to_document()))
        submission = aggregator.aggregate("w1", "u1", [graded("a", 1.0)], 1)
        asyncio.run(aggregator.persist(submission))
        assert "w1_u1" in store.docs(settings.SUBMISSIONS_COLLECTION)

    def test_adhoc_submission_does_not_touch_worksheets(self, aggregator, store):
        submission = aggregator.aggregate(None, "u1", [graded("a", 1.0)], 1)
        asyncio.run(aggregator.persist(submission))
        assert store.docs(settings.WORKSHEETS_COLLECTION) == {}

    def test_list_and_get(self, aggregator, store):
        store_ready_worksheet(store)
        asyncio.run(aggregator.persist(aggregator.aggregate("w1", "u1", [graded("a", 1.0)], 1)))
        listed = asyncio.run(aggregator.list_submissions("u1"))
        assert list(listed) == ["w1"]
        assert asyncio.run(aggregator.get_submission("w1", "u1")).score == 1
