"""
Error types for the Jira test result reporter.

Remote failures are split by whether retrying later can help:
- RemoteUnavailable: timeouts, connection errors, rate limiting, 5xx
- RemoteRejected: Jira understood the request and refused it (other 4xx)
"""
from typing import Any, Dict, List, Optional


class JiraClientError(Exception):
    """Raised when Jira API calls fail."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[List[str]] = None
    ):
        super().__init__(message)
        self.status_code = status_code
        self.details = details or []

    def describe(self, separator: str = "; ") -> str:
        """Message plus any error detail Jira returned."""
        if not self.details:
            return str(self)
        return f"{self}{separator}{separator.join(self.details)}"


class RemoteUnavailable(JiraClientError):
    """Jira could not be reached or did not answer in time."""
    pass


class RemoteRejected(JiraClientError):
    """Jira rejected the request (invalid field values, permissions, unknown issue)."""
    pass


class ConfigurationError(ValueError):
    """A configuration value could not be parsed. Always recovered with a default."""
    pass


class JobNotRegisteredError(KeyError):
    """A mapping was written for a job whose mapping table was never registered."""

    def __init__(self, job_name: str):
        super().__init__(job_name)
        self.job_name = job_name

    def __str__(self) -> str:
        return f"Job {self.job_name!r} is not registered for test-to-issue mappings"


class BuildCancelled(Exception):
    """The enclosing build was cancelled while its results were being processed."""
    pass


def extract_error_details(payload: Any) -> List[str]:
    """
    Extract human-readable messages from a Jira error response body.

    Jira answers with {"errorMessages": [...], "errors": {"field": "message"}}.

    Args:
        payload: Decoded JSON error body (anything else yields no details)

    Returns:
        List of messages, field errors formatted as "field: message"
    """
    if not isinstance(payload, dict):
        return []

    details: List[str] = []
    for message in payload.get("errorMessages") or []:
        if message:
            details.append(str(message))

    errors: Dict[str, Any] = payload.get("errors") or {}
    if isinstance(errors, dict):
        for field, message in errors.items():
            details.append(f"{field}: {message}")

    return details
