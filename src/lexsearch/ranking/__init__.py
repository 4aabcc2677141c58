"""Feedback-driven re-ranking of search results."""

from .feedback import FeedbackRanker, FeedbackState, RankedResult

__all__ = ["FeedbackRanker", "FeedbackState", "RankedResult"]
