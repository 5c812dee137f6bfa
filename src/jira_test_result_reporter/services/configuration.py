"""
Job configuration entry point and the checks offered while editing a configuration.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Union
from urllib.parse import urlparse

from jira_test_result_reporter.errors import JiraClientError, RemoteRejected
from jira_test_result_reporter.schemas import FieldTemplate, JobConfig
from jira_test_result_reporter.services.field_templates import build_issue_request
from jira_test_result_reporter.services.jira_client import JiraClient
from jira_test_result_reporter.services.job_config_store import JobConfigStore, parse_issue_type
from jira_test_result_reporter.services.metadata_cache import MetadataCache
from jira_test_result_reporter.services.test_mapping import TestToIssueMapping

logger = logging.getLogger(__name__)

DEFAULT_ISSUE_TYPE_NAME = "Bug"


@dataclass
class ValidationResult:
    """Outcome of a configuration check: kind is "ok", "warning" or "error"."""

    kind: str
    message: str

    @property
    def ok(self) -> bool:
        return self.kind == "ok"

    @classmethod
    def success(cls, message: str) -> "ValidationResult":
        return cls("ok", message)

    @classmethod
    def warning(cls, message: str) -> "ValidationResult":
        return cls("warning", message)

    @classmethod
    def error(cls, message: str) -> "ValidationResult":
        return cls("error", message)


def configure_job(
    config_store: JobConfigStore,
    mapping_store: TestToIssueMapping,
    metadata_cache: MetadataCache,
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
    Save a job's configuration the way the configuration page does.

    Registers the job's mapping table, stores the configuration and drops the
    cached create metadata of the saved (project key, issue type).
    """
    mapping_store.register(job_name)

    # builds that see the new configuration must not see metadata cached before it
    metadata_cache.remove_cache_entry(project_key, parse_issue_type(issue_type))
    config = config_store.save_config(
        job_name,
        project_key,
        issue_type,
        field_templates,
        auto_raise_issue,
        auto_resolve_issue,
        prevent_duplicate_issue,
        max_bugs_per_day,
    )
    metadata_cache.remove_cache_entry(config.project_key, config.issue_type)
    return config


def validate_global(jira_url: str, username: str, password: str, timeout: Optional[int] = None) -> ValidationResult:
    """
    Check a Jira URL and credentials.

    Jira offers no way to validate credentials directly, so the server info is
    fetched with them; the server title is returned on success.
    """
    parsed = urlparse(jira_url or "")
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return ValidationResult.error("Invalid URL")

    try:
        client = JiraClient(jira_url, username, password, timeout=timeout)
        server_name = client.get_server_info()
    except RemoteRejected as e:
        logger.error("Jira rejected the global configuration: %s", e.describe())
        return ValidationResult.error(f"ERROR {e.status_code}")
    except JiraClientError as e:
        logger.error("ERROR: Unknown error validating Jira server: %s", e)
        return ValidationResult.error(f"ERROR Unknown: {e}")

    return ValidationResult.success(server_name)


def validate_project_key(client: Optional[JiraClient], project_key: str) -> ValidationResult:
    """Check that a project key exists; the project name is returned on success."""
    if not project_key:
        return ValidationResult.error("Invalid Project Key")
    if client is None:
        return ValidationResult.error("No jira site configured")

    try:
        project = client.get_project_metadata(project_key)
    except JiraClientError as e:
        logger.warning("Invalid Project Key %s: %s", project_key, e)
        return ValidationResult.error("Invalid Project Key")
    return ValidationResult.success(project.get("name", ""))


def issue_type_options(client: Optional[JiraClient], project_key: str) -> List[Dict[str, Any]]:
    """
    Issue types selectable for a project, "Bug" pre-selected.

    Returns:
        List of {name, value, selected}; empty when the project cannot be read
    """
    if not project_key or client is None:
        return []

    try:
        project = client.get_project_metadata(project_key)
    except JiraClientError as e:
        logger.error("ERROR: could not list issue types of %s: %s", project_key, e)
        return []

    return [
        {
            "name": issue_type["name"],
            "value": issue_type["id"],
            "selected": issue_type["name"] == DEFAULT_ISSUE_TYPE_NAME,
        }
        for issue_type in project.get("issue_types", [])
    ]


def validate_field_configs(
    client: JiraClient,
    project_key: str,
    issue_type: Union[int, str, None],
    field_templates: Iterable[Union[FieldTemplate, dict]]
) -> ValidationResult:
    """
    Try the configured fields by creating a throw-away issue and deleting it again.

    Returns:
        ok when Jira accepted the fields, error with Jira's messages when it
        rejected them, warning when the throw-away issue could not be deleted
    """
    templates = [t if isinstance(t, FieldTemplate) else FieldTemplate(**t) for t in field_templates]
    if not templates:
        # nothing to validate
        return ValidationResult.success("OK!")

    config = JobConfig(
        job_name="field-validation",
        project_key=project_key,
        issue_type=parse_issue_type(issue_type),
        field_templates=templates,
    )
    request = build_issue_request(
        config,
        {"DEFAULT_SUMMARY": "Test summary", "DEFAULT_DESCRIPTION": "Test Description"},
    )

    try:
        issue_key = client.create_issue(request.fields)
    except JiraClientError as e:
        logger.error("Error when creating issue: %s", e.describe())
        return ValidationResult.error(e.describe(separator="\n"))

    try:
        client.delete_issue(issue_key)
    except JiraClientError as e:
        logger.error("Error when deleting issue %s: %s", issue_key, e.describe())
        return ValidationResult.warning(e.describe(separator="\n"))

    return ValidationResult.success("OK!")
