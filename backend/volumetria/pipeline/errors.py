"""
Exceptions raised by the pipeline, the orchestrator and the rule table.

Everything derives from PipelineError, which carries the execution id,
the step name and a details dict for structured logs. The API turns
these into HTTP responses in volumetria/main.py.

A record failing a rule is a Rejection value (pipeline/record.py), not
an exception.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Root of the volumetria exception tree."""

    def __init__(
        self,
        message: str,
        *,
        execution_id: str | None = None,
        step_name: str | None = None,
        details: dict | None = None,
    ) -> None:
        self.execution_id = execution_id
        self.step_name = step_name
        self.details = details or {}
        super().__init__(message)


class StepExecutionError(PipelineError):
    """Stage-level failure inside a step; retryable steps may try again."""
    pass


class FlowResolutionError(PipelineError):
    """No flow registered for the phase (or phase:source_type)."""
    pass


class ExtractionError(PipelineError):
    """The inbound extract could not be read or lacks required columns."""
    pass


class InvalidTransitionError(PipelineError):
    """An UploadBatch status change not allowed by the state machine."""

    def __init__(self, current: str, target: str, **kwargs) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Invalid upload transition: {current} -> {target}", **kwargs)


class UploadNotFoundError(PipelineError):
    """No UploadBatch with the given id."""
    pass


class InvalidPeriodError(PipelineError):
    """A period reference string could not be parsed."""
    pass


class RuleNotFoundError(PipelineError):
    """A per-rule invocation named an unknown rule, tier or rule group."""
    pass


class MissingScopeError(PipelineError):
    """A store-level operation was invoked without any scoping filter."""
    pass
