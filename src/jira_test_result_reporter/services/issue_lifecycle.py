"""
Issue lifecycle for test results: raise issues for new failures, resolve them
when the tests pass again.

Decisions for one (job, test id) are serialized through the mapping store's
per-test lock, so concurrent builds of the same job never raise two issues for
the same test. Each test is processed independently: a Jira failure is reported
for that test and processing continues with the next one.
"""
import logging
import threading
from typing import Callable, Iterable, List, Optional, TextIO

from jira_test_result_reporter.config import DEFAULT_DESCRIPTION, DEFAULT_SUMMARY
from jira_test_result_reporter.enums import IssueAction, Outcome
from jira_test_result_reporter.errors import (
    BuildCancelled,
    JiraClientError,
    RemoteRejected,
    RemoteUnavailable,
)
from jira_test_result_reporter.schemas import (
    BuildContext,
    BuildReport,
    JobConfig,
    TestCaseResult,
    TestReport,
)
from jira_test_result_reporter.services.field_templates import (
    build_duplicate_query,
    build_issue_request,
    build_placeholder_context,
)
from jira_test_result_reporter.services.jira_client import JiraClient
from jira_test_result_reporter.services.job_config_store import JobConfigStore
from jira_test_result_reporter.services.metadata_cache import CacheEntry, MetadataCache
from jira_test_result_reporter.services.test_mapping import TestToIssueMapping

logger = logging.getLogger(__name__)

RESOLVE_TRANSITION_MARKER = "resolve"
DONE_STATUS_CATEGORY = "done"


class IssueLifecycleController:
    """Applies raise/resolve decisions to the results of one build at a time."""

    def __init__(
        self,
        config_store: JobConfigStore,
        mapping_store: TestToIssueMapping,
        metadata_cache: MetadataCache,
        jira_client: JiraClient,
        summary_template: str = DEFAULT_SUMMARY,
        description_template: str = DEFAULT_DESCRIPTION,
        reporter: Optional[str] = None,
        lock_timeout: Optional[float] = None
    ):
        """
        Args:
            config_store: Job configuration store
            mapping_store: Test-to-issue mapping store (also provides the per-test lock)
            metadata_cache: Create-screen metadata cache
            jira_client: Jira client
            summary_template: Template behind ${DEFAULT_SUMMARY}
            description_template: Template behind ${DEFAULT_DESCRIPTION}
            reporter: Reporting identity for the daily cap (default: the client's username)
            lock_timeout: Seconds to wait for a per-test lock (None waits indefinitely)
        """
        self._config_store = config_store
        self._mapping = mapping_store
        self._metadata_cache = metadata_cache
        self._client = jira_client
        self._summary_template = summary_template or DEFAULT_SUMMARY
        self._description_template = description_template or DEFAULT_DESCRIPTION
        self._reporter = reporter or getattr(jira_client, "username", None)
        self._lock_timeout = lock_timeout

    def process_build(
        self,
        build: BuildContext,
        results: Iterable[TestCaseResult],
        console: Optional[TextIO] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> BuildReport:
        """
        Raise and/or resolve issues for the results of one build.

        Args:
            build: The build (job, number, URL, environment variables)
            results: Flattened test case results of the build
            console: Build output stream; every decision is written to it
            cancel_event: Set when the build is cancelled

        Returns:
            BuildReport with one TestReport per test that was acted upon
        """
        results = list(results)
        report = BuildReport(job_name=build.job_name, build_number=build.build_number)
        try:
            config = self._config_store.get_job_config(build.owner_job)
            if config is not None and config.auto_raise_issue:
                # a configured job always has a mapping table before any issue is created
                self._mapping.register(build.owner_job)
        except Exception as e:
            logger.exception("Could not prepare issue configuration of job %s", build.owner_job)
            _say(console, f"Could not prepare issue configuration of job {build.owner_job}: {e}")
            return report
        if config is None:
            logger.info("No issue configuration for job %s - nothing to do", build.owner_job)
            return report

        try:
            if config.auto_raise_issue:
                report.reports.extend(self.raise_issues(build, config, results, console, cancel_event))
            if config.auto_resolve_issue:
                report.reports.extend(self.resolve_issues(build, config, results, console, cancel_event))
        except _Cancelled as cancelled:
            report.reports.extend(cancelled.reports)
            report.cancelled = True
            _say(console, "Build cancelled - stopped processing test results")

        logger.info(
            "Processed test results",
            extra={
                "job_name": build.job_name,
                "build_number": build.build_number,
                "reports": len(report.reports),
                "created": len(report.created_issue_keys),
                "cancelled": report.cancelled,
            }
        )
        return report

    def raise_issues(
        self,
        build: BuildContext,
        config: JobConfig,
        results: List[TestCaseResult],
        console: Optional[TextIO] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> List[TestReport]:
        """Raise an issue for every failing test that has none yet."""
        job_name = build.owner_job
        candidates = [test for test in results if test.is_failed]
        return self._run_phase(
            IssueAction.RAISE,
            candidates,
            lambda test: (
                self._already_tracked(job_name, test)
                or self._raise_issue(build, config, job_name, test, console, cancel_event)
            ),
            console,
            cancel_event,
        )

    def resolve_issues(
        self,
        build: BuildContext,
        config: JobConfig,
        results: List[TestCaseResult],
        console: Optional[TextIO] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> List[TestReport]:
        """Resolve the issue of every test that failed last build, passes now and has a mapping."""
        job_name = build.owner_job
        candidates = [test for test in results if test.is_passed and test.was_failing]
        return self._run_phase(
            IssueAction.RESOLVE,
            candidates,
            lambda test: self._resolve_issue(job_name, test, console, cancel_event),
            console,
            cancel_event,
        )

    def _run_phase(
        self,
        action: IssueAction,
        candidates: List[TestCaseResult],
        handle: Callable[[TestCaseResult], Optional[TestReport]],
        console: Optional[TextIO],
        cancel_event: Optional[threading.Event]
    ) -> List[TestReport]:
        reports: List[TestReport] = []
        for index, test in enumerate(candidates):
            try:
                _check_cancelled(cancel_event)
                test_report = self._guarded(action, test, handle, console)
            except BuildCancelled:
                for remaining in candidates[index:]:
                    reports.append(_report(action, remaining, Outcome.CANCELLED, message="Build cancelled"))
                raise _Cancelled(reports)
            if test_report is not None:
                reports.append(test_report)
        return reports

    def _guarded(
        self,
        action: IssueAction,
        test: TestCaseResult,
        handle: Callable[[TestCaseResult], Optional[TestReport]],
        console: Optional[TextIO]
    ) -> Optional[TestReport]:
        """Run one test's step; any failure becomes that test's report."""
        verb = "create" if action == IssueAction.RAISE else "resolve"
        try:
            return handle(test)
        except BuildCancelled:
            raise
        except RemoteUnavailable as e:
            message = f"Could not {verb} issue for test {test.full_name}: {e.describe()}"
            logger.warning(message)
            _say(console, message)
            return _report(action, test, Outcome.REMOTE_UNAVAILABLE, message=e.describe())
        except RemoteRejected as e:
            message = f"Could not {verb} issue for test {test.full_name}: {e.describe()}"
            logger.warning(message)
            _say(console, message)
            return _report(action, test, Outcome.REMOTE_REJECTED, message=e.describe())
        except (JiraClientError, TimeoutError) as e:
            message = f"Could not {verb} issue for test {test.full_name}: {e}"
            logger.warning(message)
            _say(console, message)
            return _report(action, test, Outcome.FAILED, message=str(e))
        except Exception as e:
            logger.exception("Unexpected error processing test %s", test.test_id)
            _say(console, f"Could not {verb} issue for test {test.full_name}: {e}")
            return _report(action, test, Outcome.FAILED, message=str(e))

    def _already_tracked(self, job_name: str, test: TestCaseResult) -> Optional[TestReport]:
        issue_key = self._mapping.get_test_issue_key(job_name, test.test_id)
        if issue_key is None:
            return None
        logger.debug("Test %s already tracked by %s", test.test_id, issue_key)
        return _report(IssueAction.RAISE, test, Outcome.ALREADY_TRACKED, issue_key=issue_key)

    def _raise_issue(
        self,
        build: BuildContext,
        config: JobConfig,
        job_name: str,
        test: TestCaseResult,
        console: Optional[TextIO],
        cancel_event: Optional[threading.Event]
    ) -> TestReport:
        with self._mapping.lock(job_name, test.test_id, timeout=self._lock_timeout):
            issue_key = self._mapping.get_test_issue_key(job_name, test.test_id)
            if issue_key is not None:
                _say(console, "Ignoring creating issue as it would be a duplicate. (from local cache)")
                return _report(IssueAction.RAISE, test, Outcome.ALREADY_TRACKED, issue_key=issue_key)

            if config.max_bugs_per_day is not None:
                created_today = self._client.count_issues_created_today(self._reporter, config.project_key)
                if created_today >= config.max_bugs_per_day:
                    message = (
                        f"Max Number of Bugs already logged for the day : {config.max_bugs_per_day} "
                        f"hence ignoring creating issue"
                    )
                    _say(console, message)
                    return _report(IssueAction.RAISE, test, Outcome.DAILY_CAP_REACHED, message=message)

            _check_cancelled(cancel_event)
            variables = build_placeholder_context(build, test, self._summary_template, self._description_template)
            request = build_issue_request(config, variables, self._metadata_for(config))

            if config.prevent_duplicate_issue:
                _check_cancelled(cancel_event)
                duplicates = self._client.search_issues(build_duplicate_query(config.project_key, request.summary))
                if duplicates:
                    for duplicate in duplicates:
                        _say(console, f"Duplicate Issue which currently exists:{duplicate['issue_key']}")
                    _say(console, "Ignoring creating issue as it would be a duplicate. (from JIRA server)")
                    # the remote search stays the source of truth: nothing is cached locally
                    return _report(
                        IssueAction.RAISE, test, Outcome.DUPLICATE_FOUND,
                        issue_key=duplicates[0]["issue_key"],
                        message="Open issue with the same summary exists",
                    )

            _check_cancelled(cancel_event)
            issue_key = self._client.create_issue(request.fields)
            # TODO: decide whether issues created with duplicate prevention on should be mapped too
            if not config.prevent_duplicate_issue:
                self._mapping.add_test_to_issue_mapping(job_name, test.test_id, issue_key)

        _say(console, f"Created issue {issue_key} for test {test.full_name}")
        return _report(IssueAction.RAISE, test, Outcome.CREATED, issue_key=issue_key)

    def _resolve_issue(
        self,
        job_name: str,
        test: TestCaseResult,
        console: Optional[TextIO],
        cancel_event: Optional[threading.Event]
    ) -> Optional[TestReport]:
        if self._mapping.get_test_issue_key(job_name, test.test_id) is None:
            return None

        with self._mapping.lock(job_name, test.test_id, timeout=self._lock_timeout):
            issue_key = self._mapping.get_test_issue_key(job_name, test.test_id)

            issue = self._client.get_issue(issue_key)
            if issue.get("status_category") == DONE_STATUS_CATEGORY:
                return _report(
                    IssueAction.RESOLVE, test, Outcome.ALREADY_RESOLVED,
                    issue_key=issue_key, message=f"Issue is already {issue.get('status', 'done')}",
                )

            _check_cancelled(cancel_event)
            transition = _find_resolve_transition(self._client.get_transitions(issue_key))
            if transition is None:
                message = f"Could not find transition to resolve issue {issue_key}"
                _say(console, message)
                return _report(IssueAction.RESOLVE, test, Outcome.NO_TRANSITION_FOUND, issue_key=issue_key, message=message)

            _check_cancelled(cancel_event)
            self._client.execute_transition(issue_key, transition["id"])

        _say(console, f"Resolved issue {issue_key} ({transition['name']}) for test {test.full_name}")
        return _report(IssueAction.RESOLVE, test, Outcome.RESOLVED, issue_key=issue_key, message=transition["name"])

    def _metadata_for(self, config: JobConfig) -> Optional[CacheEntry]:
        """Create-screen metadata, fetched and cached on a miss. None if Jira cannot tell."""
        entry = self._metadata_cache.get_cache_entry(config.project_key, config.issue_type)
        if entry is not None:
            return entry

        generation = self._metadata_cache.generation(config.project_key, config.issue_type)
        try:
            fields = self._client.get_create_metadata(config.project_key, config.issue_type)
        except JiraClientError as e:
            logger.warning(
                "Could not fetch create metadata for %s/%s, fields are sent unchecked: %s",
                config.project_key, config.issue_type, e,
            )
            return None
        if not fields:
            logger.warning("Jira returned no create metadata for %s/%s", config.project_key, config.issue_type)
            return None
        return self._metadata_cache.put_cache_entry(config.project_key, config.issue_type, fields, generation=generation)


class _Cancelled(Exception):
    """Carries the reports of a phase interrupted by cancellation."""

    def __init__(self, reports: List[TestReport]):
        super().__init__("cancelled")
        self.reports = reports


def _find_resolve_transition(transitions: List[dict]) -> Optional[dict]:
    for transition in transitions:
        if RESOLVE_TRANSITION_MARKER in (transition.get("name") or "").lower():
            return transition
    return None


def _check_cancelled(cancel_event: Optional[threading.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise BuildCancelled()


def _report(
    action: IssueAction,
    test: TestCaseResult,
    outcome: Outcome,
    issue_key: Optional[str] = None,
    message: str = ""
) -> TestReport:
    return TestReport(
        test_id=test.test_id,
        display_name=test.full_name,
        action=action,
        outcome=outcome,
        issue_key=issue_key,
        message=message,
    )


def _say(console: Optional[TextIO], message: str) -> None:
    if console is not None:
        console.write(message + "\n")
