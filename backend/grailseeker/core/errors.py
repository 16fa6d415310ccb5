"""Exception hierarchy for GrailSeeker.

Errors below the scanner's component boundaries are caught and collapsed into
one of the three resolution outcomes (or a logged side effect). Only
configuration problems and an invalid human selection reach the caller.
"""

from __future__ import annotations


class GrailSeekerError(Exception):
    """Base class for all GrailSeeker errors."""


class ConfigurationError(GrailSeekerError):
    """Raised at startup when required configuration is missing or invalid."""


class CatalogError(GrailSeekerError):
    """Raised by the catalog client when an upstream lookup fails.

    Attributes:
        operation: Catalog operation that failed ("search_volumes", "search_issues")
        status_code: HTTP status code when the failure was an HTTP error
    """

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.operation = operation
        self.status_code = status_code


class CorrectionStoreError(GrailSeekerError):
    """Raised by the correction store when persistence fails."""


class ReportedCandidateError(GrailSeekerError):
    """Raised when a report-wrong-match flow re-selects the reported candidate."""

    def __init__(self, candidate_id: str) -> None:
        super().__init__(f"Candidate {candidate_id} was reported as a wrong match")
        self.candidate_id = candidate_id
