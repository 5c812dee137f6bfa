"""
Tests for job configuration and the configuration checks.
"""
import json
from unittest.mock import Mock, patch

from jira_test_result_reporter.errors import RemoteRejected, RemoteUnavailable
from jira_test_result_reporter.schemas import FieldTemplate
from jira_test_result_reporter.services import configuration
from jira_test_result_reporter.services.jira_client import JiraClient

from conftest import JOB, failing

REQUEST = "jira_test_result_reporter.services.jira_client.requests.request"


def _response(status_code=200, payload=None):
    response = Mock()
    response.status_code = status_code
    response.content = json.dumps(payload).encode() if payload is not None else b""
    response.json.return_value = payload
    return response


def test_configure_job_registers_and_saves(config_store, mapping_store, metadata_cache):
    config = configuration.configure_job(
        config_store, mapping_store, metadata_cache,
        job_name=JOB,
        project_key="QA",
        issue_type="10004",
        field_templates=[{"field_id": "labels", "value": "ci", "kind": "labels"}],
        auto_raise_issue=True,
        max_bugs_per_day="5",
    )

    assert mapping_store.is_registered(JOB)
    assert config.issue_type == 10004
    assert config_store.get_max_no_of_bugs(JOB) == 5
    assert config_store.get_config(JOB) == [FieldTemplate(field_id="labels", value="ci", kind="labels")]


def test_configure_job_invalidates_cached_metadata(config_store, mapping_store, metadata_cache):
    metadata_cache.put_cache_entry("QA", 10004, {"labels": {}})
    metadata_cache.put_cache_entry("QA", 1, {"labels": {}})

    configuration.configure_job(config_store, mapping_store, metadata_cache, JOB, "QA", 10004)

    assert metadata_cache.get_cache_entry("QA", 10004) is None
    assert metadata_cache.get_cache_entry("QA", 1) is not None


def test_reconfiguration_refetches_metadata(controller, config_store, mapping_store, metadata_cache, jira_client, build):
    configuration.configure_job(
        config_store, mapping_store, metadata_cache, JOB, "QA", 1, auto_raise_issue=True
    )
    controller.process_build(build, [failing("testA")])

    configuration.configure_job(
        config_store, mapping_store, metadata_cache, JOB, "QA", 1, auto_raise_issue=True
    )
    controller.process_build(build, [failing("testB")])

    assert jira_client.get_create_metadata.call_count == 2


def test_validate_global_rejects_bad_url():
    result = configuration.validate_global("not a url", "user", "token")

    assert result.kind == "error"
    assert result.message == "Invalid URL"


@patch(REQUEST)
def test_validate_global_returns_server_title(mock_request):
    mock_request.return_value = _response(200, {"serverTitle": "Example Jira"})

    result = configuration.validate_global("https://example.atlassian.net", "user", "token")

    assert result.ok
    assert result.message == "Example Jira"


@patch(REQUEST)
def test_validate_global_reports_status(mock_request):
    mock_request.return_value = _response(401, {"errorMessages": ["Unauthorized"]})

    result = configuration.validate_global("https://example.atlassian.net", "user", "bad")

    assert result.kind == "error"
    assert result.message == "ERROR 401"


@patch(REQUEST)
def test_validate_global_unknown_error(mock_request):
    mock_request.return_value = _response(503, {})

    result = configuration.validate_global("https://example.atlassian.net", "user", "token")

    assert result.message.startswith("ERROR Unknown: ")


def test_validate_project_key():
    client = Mock(spec=JiraClient)
    client.get_project_metadata.return_value = {"key": "QA", "name": "Quality", "issue_types": []}

    assert configuration.validate_project_key(client, "QA").message == "Quality"
    assert configuration.validate_project_key(client, "").message == "Invalid Project Key"
    assert configuration.validate_project_key(None, "QA").message == "No jira site configured"

    client.get_project_metadata.side_effect = RemoteRejected("HTTP 404", status_code=404)
    assert configuration.validate_project_key(client, "NOPE").message == "Invalid Project Key"


def test_issue_type_options_preselect_bug():
    client = Mock(spec=JiraClient)
    client.get_project_metadata.return_value = {
        "key": "QA",
        "name": "Quality",
        "issue_types": [{"id": "3", "name": "Task"}, {"id": "1", "name": "Bug"}],
    }

    options = configuration.issue_type_options(client, "QA")

    assert options == [
        {"name": "Task", "value": "3", "selected": False},
        {"name": "Bug", "value": "1", "selected": True},
    ]


def test_issue_type_options_empty_on_error():
    client = Mock(spec=JiraClient)
    client.get_project_metadata.side_effect = RemoteUnavailable("timed out")

    assert configuration.issue_type_options(client, "QA") == []
    assert configuration.issue_type_options(client, "") == []


def test_validate_field_configs_creates_and_deletes():
    client = Mock(spec=JiraClient)
    client.create_issue.return_value = "QA-99"

    result = configuration.validate_field_configs(
        client, "QA", "1", [{"field_id": "labels", "value": "ci", "kind": "labels"}]
    )

    assert result.ok
    assert result.message == "OK!"
    fields = client.create_issue.call_args[0][0]
    assert fields["summary"] == "Test summary"
    assert fields["labels"] == ["ci"]
    client.delete_issue.assert_called_once_with("QA-99")


def test_validate_field_configs_without_templates():
    client = Mock(spec=JiraClient)

    result = configuration.validate_field_configs(client, "QA", "1", [])

    assert result.message == "OK!"
    client.create_issue.assert_not_called()


def test_validate_field_configs_reports_rejection():
    client = Mock(spec=JiraClient)
    client.create_issue.side_effect = RemoteRejected(
        "Jira API returned HTTP 400", status_code=400, details=["priority: Specify a valid value"]
    )

    result = configuration.validate_field_configs(
        client, "QA", "1", [FieldTemplate(field_id="priority", value="Urgent", kind="select")]
    )

    assert result.kind == "error"
    assert result.message == "Jira API returned HTTP 400\npriority: Specify a valid value"


def test_validate_field_configs_warns_when_delete_fails():
    client = Mock(spec=JiraClient)
    client.create_issue.return_value = "QA-99"
    client.delete_issue.side_effect = RemoteRejected("Jira API returned HTTP 403", status_code=403)

    result = configuration.validate_field_configs(
        client, "QA", "1", [FieldTemplate(field_id="labels", value="ci", kind="labels")]
    )

    assert result.kind == "warning"
