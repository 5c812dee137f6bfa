"""
Rendering of issue-creation requests from templated fields.

Templates use ${VAR} placeholders resolved against the build variables and the
failing test. Each configured field carries a kind that shapes the rendered
string into the value Jira expects; new kinds can be added with
register_field_kind().
"""
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

from jira_test_result_reporter.enums import FieldKind
from jira_test_result_reporter.schemas import BuildContext, JobConfig, TestCaseResult
from jira_test_result_reporter.services.jira_client import escape_jql_string, text_to_adf
from jira_test_result_reporter.services.metadata_cache import CacheEntry

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"\$\{([A-Za-z0-9_.\-]+)\}")

# Jira rejects summaries longer than this
SUMMARY_MAX_LENGTH = 255

FieldBuilder = Callable[[str], Any]


def _split_values(value: str) -> List[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


def _build_labels(value: str) -> List[str]:
    # labels cannot contain spaces
    return [re.sub(r"\s+", "_", label) for label in _split_values(value)]


def _build_number(value: str) -> Any:
    number = float(value.strip())
    return int(number) if number.is_integer() else number


_FIELD_BUILDERS: Dict[str, FieldBuilder] = {
    FieldKind.STRING.value: lambda value: value,
    FieldKind.STRING_ARRAY.value: _split_values,
    FieldKind.LABELS.value: _build_labels,
    FieldKind.SELECT.value: lambda value: {"value": value.strip()},
    FieldKind.SELECT_ARRAY.value: lambda value: [{"value": v} for v in _split_values(value)],
    FieldKind.USER.value: lambda value: {"accountId": value.strip()},
    FieldKind.NUMBER.value: _build_number,
}


def register_field_kind(kind: str, builder: FieldBuilder) -> None:
    """
    Register how a new field kind turns a rendered template into a Jira value.

    Args:
        kind: Kind name used in FieldTemplate.kind
        builder: Callable taking the rendered string; raise ValueError to skip the field
    """
    _FIELD_BUILDERS[kind] = builder


def field_kinds() -> List[str]:
    return sorted(_FIELD_BUILDERS)


def expand(template: Optional[str], variables: Mapping[str, str]) -> str:
    """Replace ${VAR} placeholders; unknown placeholders are left as they are."""
    if not template:
        return ""

    def _replace(match: "re.Match[str]") -> str:
        name = match.group(1)
        value = variables.get(name)
        return match.group(0) if value is None else str(value)

    return PLACEHOLDER_PATTERN.sub(_replace, template)


def build_placeholder_context(
    build: BuildContext,
    test: TestCaseResult,
    summary_template: str,
    description_template: str
) -> Dict[str, str]:
    """
    Variables available to field templates for one failing test.

    Build variables come first so the values derived here win over them.
    """
    variables: Dict[str, str] = dict(build.variables)
    variables.update({
        "BUILD_URL": build.build_url or variables.get("BUILD_URL", ""),
        "BUILD_NUMBER": str(build.build_number) if build.build_number is not None else variables.get("BUILD_NUMBER", ""),
        "JOB_NAME": build.job_name,
        "CRLF": "\n",
        "TEST_ID": test.test_id,
        "TEST_NAME": test.name,
        "TEST_FULL_NAME": test.full_name,
        "TEST_CLASS_NAME": test.class_name,
        "TEST_PACKAGE_NAME": test.package_name,
        "TEST_ERROR_DETAILS": test.error_details or "",
        "TEST_STACK_TRACE": test.error_stack_trace or "",
    })
    variables["DEFAULT_SUMMARY"] = expand(summary_template, variables)
    variables["DEFAULT_DESCRIPTION"] = expand(description_template, variables)
    return variables


def _single_line(text: str) -> str:
    summary = " ".join(text.split())
    if len(summary) > SUMMARY_MAX_LENGTH:
        summary = summary[:SUMMARY_MAX_LENGTH - 3].rstrip() + "..."
    return summary


@dataclass
class IssueRequest:
    """Fields payload for issue creation plus the plain texts used for duplicate search."""

    fields: Dict[str, Any]
    summary: str
    description: str


def build_issue_request(
    config: JobConfig,
    variables: Mapping[str, str],
    metadata: Optional[CacheEntry] = None
) -> IssueRequest:
    """
    Render the issue-creation request of a failing test.

    Summary and description default to ${DEFAULT_SUMMARY} / ${DEFAULT_DESCRIPTION}
    and can be overridden by templates named "summary" / "description". When the
    create-screen metadata is known, fields missing from it are dropped.

    Args:
        config: Job configuration (project, issue type, field templates)
        variables: Placeholder context from build_placeholder_context
        metadata: Create-screen metadata for (project, issue type), if known
    """
    summary = variables.get("DEFAULT_SUMMARY", "")
    description = variables.get("DEFAULT_DESCRIPTION", "")
    extra_fields: Dict[str, Any] = {}

    for template in config.field_templates:
        field_id = template.field_id
        rendered = expand(template.value, variables)

        if field_id == "summary":
            summary = rendered
            continue
        if field_id == "description":
            description = rendered
            continue

        if metadata is not None and not metadata.has_field(field_id):
            logger.warning(
                "Skipping field %s: not on the create screen of %s/%s",
                field_id, config.project_key, config.issue_type,
            )
            continue

        builder = _FIELD_BUILDERS.get(template.kind)
        if builder is None:
            logger.warning("Skipping field %s: unknown field kind %r", field_id, template.kind)
            continue

        try:
            value = builder(rendered)
        except (TypeError, ValueError) as e:
            logger.warning("Skipping field %s: cannot build %s value from %r (%s)", field_id, template.kind, rendered, e)
            continue

        if template.kind == FieldKind.STRING.value and metadata is not None and metadata.is_text_area(field_id):
            value = text_to_adf(value)
        extra_fields[field_id] = value

    summary = _single_line(summary)
    fields: Dict[str, Any] = {
        "project": {"key": config.project_key},
        "issuetype": {"id": str(config.issue_type)},
        "summary": summary,
        "description": text_to_adf(description),
    }
    fields.update(extra_fields)
    return IssueRequest(fields=fields, summary=summary, description=description)


_TEXT_SEARCH_SPECIAL = re.compile(r'[+\-&|!(){}\[\]^~*?\\:"/]')


def build_duplicate_query(project_key: str, summary: str) -> str:
    """
    JQL finding unresolved issues of the project whose summary contains the
    rendered summary as a phrase.

    Text-search operators in the summary are replaced by spaces.
    """
    phrase = " ".join(_TEXT_SEARCH_SPECIAL.sub(" ", summary or "").split())
    return (
        f'project = "{escape_jql_string(project_key)}" '
        f'AND resolution = Unresolved '
        f'AND summary ~ "\\"{escape_jql_string(phrase)}\\""'
    )
