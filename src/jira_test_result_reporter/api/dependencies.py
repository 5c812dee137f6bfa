"""
Wiring of the stores, cache, Jira client and lifecycle controller.
"""
import logging
from dataclasses import dataclass
from typing import Optional
from fastapi import HTTPException, Request

from jira_test_result_reporter.config import Settings
from jira_test_result_reporter.db import create_session_factory
from jira_test_result_reporter.errors import JiraClientError
from jira_test_result_reporter.services.issue_lifecycle import IssueLifecycleController
from jira_test_result_reporter.services.jira_client import JiraClient
from jira_test_result_reporter.services.job_config_store import JobConfigStore
from jira_test_result_reporter.services.metadata_cache import MetadataCache
from jira_test_result_reporter.services.test_mapping import TestToIssueMapping

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    config_store: JobConfigStore
    mapping_store: TestToIssueMapping
    metadata_cache: MetadataCache
    jira_client: Optional[JiraClient]

    def controller(self) -> IssueLifecycleController:
        if self.jira_client is None:
            raise HTTPException(status_code=503, detail="No jira site configured")
        return IssueLifecycleController(
            self.config_store,
            self.mapping_store,
            self.metadata_cache,
            self.jira_client,
            summary_template=self.settings.summary_template,
            description_template=self.settings.description_template,
        )


def build_jira_client(settings: Settings) -> Optional[JiraClient]:
    """Jira client from settings, or None when Jira is not configured yet."""
    try:
        base_url, username, api_token = settings.jira_credentials()
        return JiraClient(base_url, username, api_token, timeout=settings.jira_api_timeout)
    except (ValueError, JiraClientError) as e:
        logger.warning("Jira client not configured: %s", e)
        return None


def build_services(settings: Settings) -> Services:
    session_factory = create_session_factory(settings.database_url)
    return Services(
        settings=settings,
        config_store=JobConfigStore(session_factory),
        mapping_store=TestToIssueMapping(session_factory),
        metadata_cache=MetadataCache(),
        jira_client=build_jira_client(settings),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services
