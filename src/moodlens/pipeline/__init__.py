"""End-to-end batch analysis."""

from moodlens.pipeline.batch import UNASSIGNED_CONVERSATION, BatchAnalysisPipeline, BatchReport

__all__ = ["UNASSIGNED_CONVERSATION", "BatchAnalysisPipeline", "BatchReport"]
