"""
Shared fixtures: in-memory stores and a mock Jira client.
"""
import itertools
import pytest
from unittest.mock import Mock

from jira_test_result_reporter.db import create_session_factory
from jira_test_result_reporter.enums import TestStatus
from jira_test_result_reporter.schemas import BuildContext, TestCaseResult, make_test_id
from jira_test_result_reporter.services.issue_lifecycle import IssueLifecycleController
from jira_test_result_reporter.services.jira_client import JiraClient
from jira_test_result_reporter.services.job_config_store import JobConfigStore
from jira_test_result_reporter.services.metadata_cache import MetadataCache
from jira_test_result_reporter.services.test_mapping import TestToIssueMapping

JOB = "nightly-regression"
PROJECT = "QA"

CREATE_METADATA = {
    "summary": {"name": "Summary", "required": True, "schema": {"type": "string", "system": "summary"}},
    "description": {"name": "Description", "required": False, "schema": {"type": "string", "system": "description"}},
    "labels": {"name": "Labels", "required": False, "schema": {"type": "array", "items": "string", "system": "labels"}},
    "customfield_10010": {
        "name": "Failure Notes",
        "required": False,
        "schema": {"type": "string", "custom": "com.atlassian.jira.plugin.system.customfieldtypes:textarea"},
    },
    "priority": {"name": "Priority", "required": False, "schema": {"type": "priority", "system": "priority"}},
}


@pytest.fixture
def session_factory():
    """Session factory bound to a fresh in-memory SQLite database."""
    return create_session_factory("sqlite:///:memory:")


@pytest.fixture
def config_store(session_factory):
    return JobConfigStore(session_factory)


@pytest.fixture
def mapping_store(session_factory):
    return TestToIssueMapping(session_factory)


@pytest.fixture
def metadata_cache():
    return MetadataCache()


@pytest.fixture
def jira_client():
    """Mock Jira client handing out sequential issue keys."""
    client = Mock(spec=JiraClient)
    client.username = "ci-bot@example.com"
    counter = itertools.count(1)
    client.create_issue.side_effect = lambda fields: f"{PROJECT}-{next(counter)}"
    client.search_issues.return_value = []
    client.count_issues_created_today.return_value = 0
    client.get_create_metadata.return_value = dict(CREATE_METADATA)
    client.get_issue.side_effect = lambda key: {
        "issue_key": key, "summary": "", "status": "Open", "status_category": "new"
    }
    client.get_transitions.return_value = [
        {"id": "11", "name": "Start Progress"},
        {"id": "21", "name": "Resolve Issue"},
        {"id": "31", "name": "Close Issue"},
    ]
    return client


@pytest.fixture
def controller(config_store, mapping_store, metadata_cache, jira_client):
    return IssueLifecycleController(config_store, mapping_store, metadata_cache, jira_client)


@pytest.fixture
def build():
    return BuildContext(
        job_name=JOB,
        build_number=42,
        build_url="https://ci.example.com/job/nightly-regression/42/",
        variables={"GIT_BRANCH": "main"},
    )


def configure(config_store, mapping_store, **overrides):
    """Register and configure the default job."""
    options = {
        "project_key": PROJECT,
        "issue_type": "1",
        "field_templates": [],
        "auto_raise_issue": True,
        "auto_resolve_issue": True,
        "prevent_duplicate_issue": False,
        "max_bugs_per_day": None,
    }
    options.update(overrides)
    job_name = options.pop("job_name", JOB)
    mapping_store.register(job_name)
    return config_store.save_config(job_name, **options)


def failing(method, previous=None, class_name="LoginTest", package="com.example.auth"):
    return TestCaseResult(
        test_id=make_test_id(package, class_name, method),
        name=method,
        class_name=class_name,
        package_name=package,
        status=TestStatus.FAILED,
        previous_status=previous,
        error_details=f"expected true but was false in {method}",
        error_stack_trace=f"java.lang.AssertionError: {method}\n\tat com.example.auth.{class_name}.{method}(LoginTest.java:42)",
    )


def passing(method, previous=TestStatus.FAILED, class_name="LoginTest", package="com.example.auth"):
    return TestCaseResult(
        test_id=make_test_id(package, class_name, method),
        name=method,
        class_name=class_name,
        package_name=package,
        status=TestStatus.PASSED,
        previous_status=previous,
    )
