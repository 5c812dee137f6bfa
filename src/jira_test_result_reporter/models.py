"""
SQLAlchemy models for persistence.
"""
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Boolean, Index, UniqueConstraint, JSON
from datetime import datetime, timezone
from jira_test_result_reporter.db import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobConfigRecord(Base):
    """
    Issue automation configuration for one monitored job (last save wins).
    """
    __tablename__ = "job_configs"

    job_name = Column(String, primary_key=True)
    project_key = Column(String, nullable=False)
    issue_type = Column(Integer, nullable=False, default=1)
    field_templates = Column(JSON, nullable=False, default=list)  # [{"field_id", "value", "kind"}]
    auto_raise_issue = Column(Boolean, nullable=False, default=False)
    auto_resolve_issue = Column(Boolean, nullable=False, default=False)
    prevent_duplicate_issue = Column(Boolean, nullable=False, default=False)
    max_bugs_per_day = Column(Integer, nullable=True)  # NULL = unlimited
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)


class RegisteredJob(Base):
    """
    A job whose test-to-issue mapping table exists.
    """
    __tablename__ = "registered_jobs"

    job_name = Column(String, primary_key=True)
    registered_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)


class TestIssueMapping(Base):
    """
    Issue raised for a test of a job. Kept after resolution as history.
    """
    __tablename__ = "test_issue_mappings"
    __test__ = False  # not a pytest test class

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_name = Column(String, ForeignKey("registered_jobs.job_name", ondelete="CASCADE"), nullable=False)
    test_id = Column(String, nullable=False)
    issue_key = Column(String, nullable=False)  # Jira issue key (e.g., "PROJ-123")
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint('job_name', 'test_id', name='uq_test_issue_mappings_job_test'),
        Index('idx_test_issue_mappings_job_name', 'job_name'),
    )
