"""Pipeline orchestrators for end-to-end workflows."""

from realmsync.pipeline.continuity_check import ContinuityChecker
from realmsync.pipeline.extraction_pipeline import ExtractionPipeline

__all__ = ["ContinuityChecker", "ExtractionPipeline"]
