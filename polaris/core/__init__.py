"""
Pipeline orchestration: router -> access gate -> specialist dispatch.
"""
from .pipeline import OutcomeKind, Pipeline, PipelineOutcome

__all__ = ["Pipeline", "PipelineOutcome", "OutcomeKind"]
