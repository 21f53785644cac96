"""Failure taxonomy for the rink event pipeline."""
from typing import Dict, Optional


class PipelineError(Exception):
    """Base class for pipeline failures."""


class FetchFailure(PipelineError):
    """Network, timeout, or non-2xx failure while fetching a source."""

    def __init__(self, url: str, reason: str, status_code: Optional[int] = None,
                 message: Optional[str] = None):
        self.url = url
        self.reason = reason
        self.status_code = status_code
        detail = message or reason
        if status_code is not None:
            detail = f"HTTP {status_code}: {detail}"
        super().__init__(f"Failed to fetch {url}: {detail}")

    @property
    def retryable(self) -> bool:
        """Timeouts, connection errors and 5xx/429 responses are transient."""
        if self.reason in ('timeout', 'connection'):
            return True
        return self.status_code is not None and (
            self.status_code >= 500 or self.status_code == 429
        )


class ParseFailure(PipelineError):
    """Payload does not match the structural shape its parser expects."""

    def __init__(self, parser_tag: str, message: str):
        self.parser_tag = parser_tag
        super().__init__(f"[{parser_tag}] {message}")


class ValidationFailure(PipelineError):
    """A single event is invalid and must be dropped."""


class AggregateFailure(PipelineError):
    """Every source failed in the same cycle."""

    def __init__(self, errors: Dict[str, str]):
        self.errors = errors
        super().__init__(
            f"All {len(errors)} sources failed: "
            + '; '.join(f"{source}: {message}" for source, message in errors.items())
        )
