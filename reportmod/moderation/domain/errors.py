"""Exceptions raised by the report moderation workflow."""

from __future__ import annotations


class ModerationWorkflowError(Exception):
    """Base class for moderation workflow failures."""


class ReportNotFoundError(ModerationWorkflowError):
    pass


class TargetNotFoundError(ModerationWorkflowError):
    pass


class AlreadyReviewedError(ModerationWorkflowError):
    pass


class DuplicateReportError(ModerationWorkflowError):
    pass


class SelfReportError(ModerationWorkflowError):
    pass


class EnrichmentFailure(ModerationWorkflowError):
    """A correctness-relevant enrichment load failed; the listing is aborted."""

    def __init__(self, kind: str, message: str | None = None) -> None:
        super().__init__(message or f"enrichment_failed:{kind}")
        self.kind = kind


class EnforcementFailure(ModerationWorkflowError):
    """An enforcement executor call failed after the report state was committed."""

    def __init__(self, action: str, target_key: str, message: str | None = None) -> None:
        super().__init__(message or f"enforcement_failed:{action}:{target_key}")
        self.action = action
        self.target_key = target_key


class InvalidActionError(ModerationWorkflowError):
    """The review action does not apply to the report's target kind."""
