"""
Tests for placeholder expansion and issue request rendering.
"""
from jira_test_result_reporter.config import DEFAULT_DESCRIPTION, DEFAULT_SUMMARY
from jira_test_result_reporter.schemas import BuildContext, FieldTemplate, JobConfig
from jira_test_result_reporter.services.field_templates import (
    SUMMARY_MAX_LENGTH,
    build_duplicate_query,
    build_issue_request,
    build_placeholder_context,
    expand,
    field_kinds,
    register_field_kind,
)
from jira_test_result_reporter.services.metadata_cache import CacheEntry

from conftest import CREATE_METADATA, failing

BUILD = BuildContext(
    job_name="nightly",
    build_number=42,
    build_url="https://ci.example.com/job/nightly/42/",
    variables={"GIT_BRANCH": "main", "BUILD_URL": "ignored"},
)


def _config(*templates):
    return JobConfig(job_name="nightly", project_key="QA", issue_type=10004, field_templates=list(templates))


def _context(test=None):
    return build_placeholder_context(BUILD, test or failing("testLogin"), DEFAULT_SUMMARY, DEFAULT_DESCRIPTION)


def _paragraph_texts(adf):
    return [
        "".join(node["text"] for node in paragraph["content"])
        for paragraph in adf["content"]
    ]


def test_expand_leaves_unknown_placeholders():
    assert expand("${A}-${B}", {"A": "1"}) == "1-${B}"
    assert expand("", {"A": "1"}) == ""
    assert expand(None, {}) == ""


def test_context_contains_build_and_test_variables():
    variables = _context()

    assert variables["GIT_BRANCH"] == "main"
    assert variables["BUILD_URL"] == "https://ci.example.com/job/nightly/42/"
    assert variables["BUILD_NUMBER"] == "42"
    assert variables["TEST_FULL_NAME"] == "com.example.auth.LoginTest.testLogin"
    assert variables["DEFAULT_SUMMARY"] == (
        "com.example.auth.LoginTest.testLogin : expected true but was false in testLogin"
    )
    assert variables["DEFAULT_DESCRIPTION"].startswith("https://ci.example.com/job/nightly/42/\njava.lang.AssertionError")


def test_default_request_shape():
    request = build_issue_request(_config(), _context())

    assert request.fields["project"] == {"key": "QA"}
    assert request.fields["issuetype"] == {"id": "10004"}
    assert request.fields["summary"] == request.summary
    assert request.fields["description"]["type"] == "doc"
    assert _paragraph_texts(request.fields["description"])[0] == "https://ci.example.com/job/nightly/42/"


def test_summary_and_description_templates_override_defaults():
    request = build_issue_request(
        _config(
            FieldTemplate(field_id="summary", value="[${GIT_BRANCH}] ${TEST_NAME} failed"),
            FieldTemplate(field_id="description", value="${DEFAULT_DESCRIPTION}${CRLF}Branch: ${GIT_BRANCH}"),
        ),
        _context(),
    )

    assert request.summary == "[main] testLogin failed"
    assert _paragraph_texts(request.fields["description"])[-1] == "Branch: main"


def test_field_kinds_shape_values():
    request = build_issue_request(
        _config(
            FieldTemplate(field_id="labels", value="auto raised, ${GIT_BRANCH}", kind="labels"),
            FieldTemplate(field_id="customfield_1", value="a, b", kind="string_array"),
            FieldTemplate(field_id="priority", value="High", kind="select"),
            FieldTemplate(field_id="customfield_2", value="x,y", kind="select_array"),
            FieldTemplate(field_id="assignee", value="5b10ac8d82e05b22cc7d4ef5", kind="user"),
            FieldTemplate(field_id="customfield_3", value="${BUILD_NUMBER}", kind="number"),
        ),
        _context(),
    )

    assert request.fields["labels"] == ["auto_raised", "main"]
    assert request.fields["customfield_1"] == ["a", "b"]
    assert request.fields["priority"] == {"value": "High"}
    assert request.fields["customfield_2"] == [{"value": "x"}, {"value": "y"}]
    assert request.fields["assignee"] == {"accountId": "5b10ac8d82e05b22cc7d4ef5"}
    assert request.fields["customfield_3"] == 42


def test_unbuildable_and_unknown_kinds_are_skipped():
    request = build_issue_request(
        _config(
            FieldTemplate(field_id="customfield_3", value="not a number", kind="number"),
            FieldTemplate(field_id="customfield_4", value="x", kind="cascading"),
        ),
        _context(),
    )

    assert "customfield_3" not in request.fields
    assert "customfield_4" not in request.fields


def test_fields_missing_from_create_screen_are_dropped():
    metadata = CacheEntry(project_key="QA", issue_type="10004", fields=CREATE_METADATA)
    request = build_issue_request(
        _config(
            FieldTemplate(field_id="labels", value="ci", kind="labels"),
            FieldTemplate(field_id="customfield_99999", value="gone"),
            FieldTemplate(field_id="customfield_10010", value="${TEST_STACK_TRACE}"),
        ),
        _context(),
        metadata,
    )

    assert request.fields["labels"] == ["ci"]
    assert "customfield_99999" not in request.fields
    # text area custom fields are sent as ADF
    assert request.fields["customfield_10010"]["type"] == "doc"


def test_summary_is_single_line_and_bounded():
    test = failing("testLogin").model_copy(update={"error_details": "line one\nline two " + "x" * 400})
    request = build_issue_request(_config(), _context(test))

    assert "\n" not in request.summary
    assert len(request.summary) <= SUMMARY_MAX_LENGTH
    assert request.summary.endswith("...")


def test_register_field_kind():
    register_field_kind("upper", lambda value: value.upper())
    try:
        request = build_issue_request(
            _config(FieldTemplate(field_id="customfield_5", value="${GIT_BRANCH}", kind="upper")),
            _context(),
        )
        assert "upper" in field_kinds()
        assert request.fields["customfield_5"] == "MAIN"
    finally:
        from jira_test_result_reporter.services import field_templates
        field_templates._FIELD_BUILDERS.pop("upper", None)


def test_duplicate_query_searches_summary_phrase():
    query = build_duplicate_query("QA", 'com.example.LoginTest.testLogin : expected "ok" [1]')

    assert query == (
        'project = "QA" AND resolution = Unresolved '
        'AND summary ~ "\\"com.example.LoginTest.testLogin expected ok 1\\""'
    )
