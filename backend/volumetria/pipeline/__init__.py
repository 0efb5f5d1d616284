"""
Pipeline Engine — step-based processing of volumetry uploads.

This package provides the step engine that stages uploaded extracts and
runs staged rows through the versioned rule table, exam splitting,
price resolution and period exclusions, with per-step logging, error
handling, and audit tracking.
"""

from volumetria.pipeline.engine import PipelineEngine, PipelineResult
from volumetria.pipeline.context import PipelineContext, StepResult
from volumetria.pipeline.step import PipelineStep

__all__ = ["PipelineEngine", "PipelineResult", "PipelineContext", "PipelineStep", "StepResult"]
