"""
Status and type enums for the application.
"""
from enum import Enum


class TestStatus(str, Enum):
    """Outcome of a single test case in one build."""
    __test__ = False

    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


class FieldKind(str, Enum):
    """How a templated value is shaped into a Jira field value."""

    STRING = "string"
    STRING_ARRAY = "string_array"
    LABELS = "labels"
    SELECT = "select"
    SELECT_ARRAY = "select_array"
    USER = "user"
    NUMBER = "number"


class IssueAction(str, Enum):
    """Lifecycle step applied to a test."""

    RAISE = "raise"
    RESOLVE = "resolve"


class Outcome(str, Enum):
    """Result of processing one test case."""

    CREATED = "created"
    ALREADY_TRACKED = "already_tracked"
    DUPLICATE_FOUND = "duplicate_found"
    DAILY_CAP_REACHED = "daily_cap_reached"
    RESOLVED = "resolved"
    ALREADY_RESOLVED = "already_resolved"
    NO_TRANSITION_FOUND = "no_transition_found"
    REMOTE_UNAVAILABLE = "remote_unavailable"
    REMOTE_REJECTED = "remote_rejected"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_error(self) -> bool:
        return self in (Outcome.REMOTE_UNAVAILABLE, Outcome.REMOTE_REJECTED, Outcome.FAILED)
