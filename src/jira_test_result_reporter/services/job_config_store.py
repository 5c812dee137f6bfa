"""
Per-job issue automation configuration.

One configuration exists per job; saving replaces it. Reads never fail for a
job that was never configured: they return None / False / [] instead.
Malformed numeric input is never rejected, it degrades to a default.
"""
import logging
import threading
from typing import Any, Iterable, List, Optional, Union
from sqlalchemy.orm import sessionmaker

from jira_test_result_reporter.errors import ConfigurationError
from jira_test_result_reporter.models import JobConfigRecord
from jira_test_result_reporter.schemas import DEFAULT_ISSUE_TYPE_ID, FieldTemplate, JobConfig

logger = logging.getLogger(__name__)


def parse_issue_type(value: Any) -> int:
    """
    Parse an issue type id, falling back to DEFAULT_ISSUE_TYPE_ID.

    Args:
        value: Issue type id as submitted (int or numeric string)

    Returns:
        Positive issue type id
    """
    try:
        issue_type = _parse_positive_int(value, "issue type")
    except ConfigurationError as e:
        logger.warning("%s - using default issue type %s", e, DEFAULT_ISSUE_TYPE_ID)
        return DEFAULT_ISSUE_TYPE_ID
    return issue_type if issue_type is not None else DEFAULT_ISSUE_TYPE_ID


def parse_max_bugs_per_day(value: Any) -> Optional[int]:
    """
    Parse the daily issue creation cap. Blank or malformed means unlimited (None).
    """
    try:
        return _parse_positive_int(value, "max bugs per day")
    except ConfigurationError as e:
        logger.warning("%s - no daily limit applied", e)
        return None


def _parse_positive_int(value: Any, label: str) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Invalid {label} {value!r}")
    if parsed <= 0:
        raise ConfigurationError(f"Invalid {label} {value!r}: must be positive")
    return parsed


class JobConfigStore:
    """Database-backed store of JobConfig, one row per job."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory
        self._lock = threading.RLock()

    def save_config(
        self,
        job_name: str,
        project_key: str,
        issue_type: Union[int, str, None],
        field_templates: Optional[Iterable[Union[FieldTemplate, dict]]] = None,
        auto_raise_issue: bool = False,
        auto_resolve_issue: bool = False,
        prevent_duplicate_issue: bool = False,
        max_bugs_per_day: Union[int, str, None] = None
    ) -> JobConfig:
        """
        Replace the configuration of a job.

        Args:
            job_name: Job identity
            project_key: Jira project key (e.g., "PROJ")
            issue_type: Issue type id; malformed values fall back to the default id
            field_templates: Templated fields added to every raised issue
            auto_raise_issue: Raise issues for new failures
            auto_resolve_issue: Resolve issues when their test passes again
            prevent_duplicate_issue: Search Jira for an open duplicate before raising
            max_bugs_per_day: Daily creation cap; blank or malformed means unlimited

        Returns:
            The stored JobConfig
        """
        if not job_name:
            raise ValueError("job_name is required for save_config")

        templates = [
            template if isinstance(template, FieldTemplate) else FieldTemplate(**template)
            for template in (field_templates or [])
        ]
        config = JobConfig(
            job_name=job_name,
            project_key=(project_key or "").strip(),
            issue_type=parse_issue_type(issue_type),
            field_templates=templates,
            auto_raise_issue=bool(auto_raise_issue),
            auto_resolve_issue=bool(auto_resolve_issue),
            prevent_duplicate_issue=bool(prevent_duplicate_issue),
            max_bugs_per_day=parse_max_bugs_per_day(max_bugs_per_day),
        )

        with self._lock:
            db = self._session_factory()
            try:
                record = db.query(JobConfigRecord).filter(
                    JobConfigRecord.job_name == job_name
                ).first()
                if record is None:
                    record = JobConfigRecord(job_name=job_name)
                    db.add(record)
                record.project_key = config.project_key
                record.issue_type = config.issue_type
                record.field_templates = [t.model_dump() for t in config.field_templates]
                record.auto_raise_issue = config.auto_raise_issue
                record.auto_resolve_issue = config.auto_resolve_issue
                record.prevent_duplicate_issue = config.prevent_duplicate_issue
                record.max_bugs_per_day = config.max_bugs_per_day
                db.commit()
            except Exception:
                db.rollback()
                raise
            finally:
                db.close()

        logger.info(
            "Saved issue configuration",
            extra={
                "job_name": job_name,
                "project_key": config.project_key,
                "issue_type": config.issue_type,
                "auto_raise_issue": config.auto_raise_issue,
                "auto_resolve_issue": config.auto_resolve_issue,
                "prevent_duplicate_issue": config.prevent_duplicate_issue,
            }
        )
        return config

    def get_job_config(self, job_name: str) -> Optional[JobConfig]:
        """Full configuration of a job, or None if it was never configured."""
        with self._lock:
            db = self._session_factory()
            try:
                record = db.query(JobConfigRecord).filter(
                    JobConfigRecord.job_name == job_name
                ).first()
                if record is None:
                    return None
                return JobConfig(
                    job_name=record.job_name,
                    project_key=record.project_key,
                    issue_type=record.issue_type,
                    field_templates=[FieldTemplate(**t) for t in (record.field_templates or [])],
                    auto_raise_issue=record.auto_raise_issue,
                    auto_resolve_issue=record.auto_resolve_issue,
                    prevent_duplicate_issue=record.prevent_duplicate_issue,
                    max_bugs_per_day=record.max_bugs_per_day,
                )
            finally:
                db.close()

    def get_config(self, job_name: str) -> List[FieldTemplate]:
        """Configured field templates ([] when unconfigured)."""
        config = self.get_job_config(job_name)
        return list(config.field_templates) if config else []

    def get_project_key(self, job_name: str) -> Optional[str]:
        config = self.get_job_config(job_name)
        return config.project_key if config else None

    def get_issue_type(self, job_name: str) -> Optional[int]:
        config = self.get_job_config(job_name)
        return config.issue_type if config else None

    def get_auto_raise_issue(self, job_name: str) -> bool:
        config = self.get_job_config(job_name)
        return config.auto_raise_issue if config else False

    def get_auto_resolve_issue(self, job_name: str) -> bool:
        config = self.get_job_config(job_name)
        return config.auto_resolve_issue if config else False

    def get_prevent_duplicate_issue(self, job_name: str) -> bool:
        config = self.get_job_config(job_name)
        return config.prevent_duplicate_issue if config else False

    def get_max_no_of_bugs(self, job_name: str) -> Optional[int]:
        config = self.get_job_config(job_name)
        return config.max_bugs_per_day if config else None
