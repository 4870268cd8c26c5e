"""Analytics package."""

from budget_planner.analytics.summarizer import AnalyticsSummarizer

__all__ = ["AnalyticsSummarizer"]
