"""
Reporter API: job configuration, configuration checks and build result submission.
"""
import io
import logging
from typing import Any, Dict, List, Optional, Union
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from jira_test_result_reporter.api.dependencies import Services, get_services
from jira_test_result_reporter.api.internal_auth import verify_internal_service_key
from jira_test_result_reporter.schemas import (
    BuildContext,
    BuildReport,
    FieldTemplate,
    JobConfig,
    PackageResult,
    TestCaseResult,
    flatten_results,
)
from jira_test_result_reporter.services import configuration

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", dependencies=[Depends(verify_internal_service_key)])


class JobConfigRequest(BaseModel):
    """Job configuration as submitted by the configuration page."""

    project_key: str = Field(..., description="Jira project key")
    issue_type: Optional[Union[int, str]] = Field(default=None, description="Issue type id")
    field_templates: List[FieldTemplate] = Field(default_factory=list)
    auto_raise_issue: bool = False
    auto_resolve_issue: bool = False
    prevent_duplicate_issue: bool = False
    max_bugs_per_day: Optional[Union[int, str]] = Field(default=None, description="Blank means unlimited")


class JobConfigResponse(BaseModel):
    configured: bool
    config: Optional[JobConfig] = None


class BuildResultsRequest(BaseModel):
    """
    Results of one build: either already flattened in results, or nested in
    packages (flattened in package/class order).
    """

    build_number: Optional[int] = None
    build_url: Optional[str] = None
    parent_job_name: Optional[str] = None
    variables: Dict[str, str] = Field(default_factory=dict)
    results: List[TestCaseResult] = Field(default_factory=list)
    packages: List[PackageResult] = Field(default_factory=list)


class BuildResultsResponse(BaseModel):
    report: BuildReport
    console: List[str] = Field(default_factory=list)


class GlobalValidationRequest(BaseModel):
    jira_url: str
    username: str
    password: str


class FieldValidationRequest(BaseModel):
    project_key: str
    issue_type: Optional[Union[int, str]] = None
    field_templates: List[FieldTemplate] = Field(default_factory=list)


class ValidationResponse(BaseModel):
    kind: str
    message: str


@router.put("/jobs/{job_name}/config", response_model=JobConfigResponse)
def save_job_config(job_name: str, body: JobConfigRequest, services: Services = Depends(get_services)):
    """Save a job's configuration (registers the job and invalidates cached metadata)."""
    config = configuration.configure_job(
        services.config_store,
        services.mapping_store,
        services.metadata_cache,
        job_name=job_name,
        project_key=body.project_key,
        issue_type=body.issue_type,
        field_templates=body.field_templates,
        auto_raise_issue=body.auto_raise_issue,
        auto_resolve_issue=body.auto_resolve_issue,
        prevent_duplicate_issue=body.prevent_duplicate_issue,
        max_bugs_per_day=body.max_bugs_per_day,
    )
    return JobConfigResponse(configured=True, config=config)


@router.get("/jobs/{job_name}/config", response_model=JobConfigResponse)
def get_job_config(job_name: str, services: Services = Depends(get_services)):
    config = services.config_store.get_job_config(job_name)
    return JobConfigResponse(configured=config is not None, config=config)


@router.get("/jobs/{job_name}/mappings")
def get_job_mappings(job_name: str, services: Services = Depends(get_services)) -> Dict[str, Any]:
    return {
        "job_name": job_name,
        "registered": services.mapping_store.is_registered(job_name),
        "mappings": services.mapping_store.get_mappings(job_name),
    }


@router.post("/jobs/{job_name}/builds", response_model=BuildResultsResponse)
def submit_build_results(job_name: str, body: BuildResultsRequest, services: Services = Depends(get_services)):
    """Raise/resolve issues for one build's test results."""
    controller = services.controller()
    build = BuildContext(
        job_name=job_name,
        parent_job_name=body.parent_job_name,
        build_number=body.build_number,
        build_url=body.build_url,
        variables=body.variables,
    )
    results = list(body.results) + flatten_results(body.packages)

    console = io.StringIO()
    report = controller.process_build(build, results, console=console)
    return BuildResultsResponse(report=report, console=console.getvalue().splitlines())


@router.post("/validate/global", response_model=ValidationResponse)
def validate_global(body: GlobalValidationRequest, services: Services = Depends(get_services)):
    result = configuration.validate_global(
        body.jira_url, body.username, body.password, timeout=services.settings.jira_api_timeout
    )
    return ValidationResponse(kind=result.kind, message=result.message)


@router.get("/projects/{project_key}/validate", response_model=ValidationResponse)
def validate_project_key(project_key: str, services: Services = Depends(get_services)):
    result = configuration.validate_project_key(services.jira_client, project_key)
    return ValidationResponse(kind=result.kind, message=result.message)


@router.get("/projects/{project_key}/issue-types")
def list_issue_types(project_key: str, services: Services = Depends(get_services)) -> List[Dict[str, Any]]:
    return configuration.issue_type_options(services.jira_client, project_key)


@router.post("/jobs/{job_name}/validate-fields", response_model=ValidationResponse)
def validate_fields(job_name: str, body: FieldValidationRequest, services: Services = Depends(get_services)):
    if services.jira_client is None:
        return ValidationResponse(kind="error", message="No jira site configured")
    result = configuration.validate_field_configs(
        services.jira_client, body.project_key, body.issue_type, body.field_templates
    )
    logger.info("Field validation for job %s: %s", job_name, result.kind)
    return ValidationResponse(kind=result.kind, message=result.message)
