"""
Data models exchanged between the stores, the lifecycle controller and the API.
"""
from pydantic import BaseModel, Field
from typing import Dict, Iterable, List, Optional
from jira_test_result_reporter.enums import FieldKind, IssueAction, Outcome, TestStatus

# Jira's default "Bug" issue type id; used when a configured id cannot be parsed
DEFAULT_ISSUE_TYPE_ID = 1


def make_test_id(package_name: str, class_name: str, method_name: str) -> str:
    """Stable identity of a test case within a job: package/Class/method."""
    return "/".join(part for part in (package_name, class_name, method_name) if part)


class FieldTemplate(BaseModel):
    """
    A Jira field whose value is rendered from a ${VAR} template.

    kind selects the value shape (see FieldKind); kinds registered through
    field_templates.register_field_kind are accepted as well.
    """

    field_id: str = Field(..., description="Jira field id, e.g. 'labels' or 'customfield_10010'")
    value: str = Field(default="", description="Templated value")
    kind: str = Field(default=FieldKind.STRING.value, description="Value shape")


class JobConfig(BaseModel):
    """Issue automation settings of one job."""

    job_name: str
    project_key: str
    issue_type: int = DEFAULT_ISSUE_TYPE_ID
    field_templates: List[FieldTemplate] = Field(default_factory=list)
    auto_raise_issue: bool = False
    auto_resolve_issue: bool = False
    prevent_duplicate_issue: bool = False
    max_bugs_per_day: Optional[int] = Field(default=None, description="None means unlimited")


class TestCaseResult(BaseModel):
    """Result of one test case in one build (read-only to the controller)."""
    __test__ = False

    test_id: str
    name: str
    class_name: str = ""
    package_name: str = ""
    full_display_name: Optional[str] = None
    status: TestStatus
    previous_status: Optional[TestStatus] = None
    error_details: Optional[str] = None
    error_stack_trace: Optional[str] = None

    @property
    def full_name(self) -> str:
        if self.full_display_name:
            return self.full_display_name
        prefix = ".".join(part for part in (self.package_name, self.class_name) if part)
        return f"{prefix}.{self.name}" if prefix else self.name

    @property
    def is_failed(self) -> bool:
        return self.status == TestStatus.FAILED

    @property
    def is_passed(self) -> bool:
        return self.status == TestStatus.PASSED

    @property
    def was_failing(self) -> bool:
        return self.previous_status == TestStatus.FAILED


class ClassResult(BaseModel):
    name: str
    cases: List[TestCaseResult] = Field(default_factory=list)


class PackageResult(BaseModel):
    name: str
    classes: List[ClassResult] = Field(default_factory=list)


def flatten_results(packages: Iterable[PackageResult]) -> List[TestCaseResult]:
    """Flatten package -> class -> case results, keeping report order."""
    results: List[TestCaseResult] = []
    for package in packages:
        for class_result in package.classes:
            results.extend(class_result.cases)
    return results


class BuildContext(BaseModel):
    """
    The build whose results are processed.

    Child executions of a matrix/parallel job carry parent_job_name; configuration
    and mappings are then owned by the parent.
    """

    job_name: str
    parent_job_name: Optional[str] = None
    build_number: Optional[int] = None
    build_url: Optional[str] = None
    variables: Dict[str, str] = Field(default_factory=dict, description="Build environment variables")

    @property
    def owner_job(self) -> str:
        return self.parent_job_name or self.job_name


class TestReport(BaseModel):
    """What happened to one test case."""
    __test__ = False

    test_id: str
    display_name: str
    action: IssueAction
    outcome: Outcome
    issue_key: Optional[str] = None
    message: str = ""


class BuildReport(BaseModel):
    """Per-test reports for one build, in processing order."""

    job_name: str
    build_number: Optional[int] = None
    reports: List[TestReport] = Field(default_factory=list)
    cancelled: bool = False

    def with_outcome(self, outcome: Outcome) -> List[TestReport]:
        return [report for report in self.reports if report.outcome == outcome]

    @property
    def created_issue_keys(self) -> List[str]:
        return [r.issue_key for r in self.with_outcome(Outcome.CREATED) if r.issue_key]

    @property
    def has_errors(self) -> bool:
        return any(report.outcome.is_error for report in self.reports)
