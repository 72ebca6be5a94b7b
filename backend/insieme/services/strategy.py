"""Grading strategy selection."""

from ..models import GradingStrategy, Problem


def select_strategy(problem: Problem) -> GradingStrategy:
    """Exact match for problems with choices, the AI backend for everything else."""
    if problem.options:
        return GradingStrategy.EXACT_MATCH
    return GradingStrategy.LLM_OPEN_ENDED
