"""
Jira client for raising, searching and resolving issues for failing tests.

Every request is bounded by a timeout. Failures are raised as
RemoteUnavailable (timeouts, connection errors, 429, 5xx) or RemoteRejected
(other 4xx, with Jira's error messages attached).
"""
from typing import Dict, Any, Optional, List
import requests
from requests.auth import HTTPBasicAuth
import json
import os

from jira_test_result_reporter.errors import (
    JiraClientError,
    RemoteRejected,
    RemoteUnavailable,
    extract_error_details,
)


def text_to_adf(text: str) -> Dict[str, Any]:
    """
    Convert plain text to Jira ADF (Atlassian Document Format).

    One paragraph per line so stack traces keep their shape; empty lines become
    empty paragraphs.
    """
    content = []
    for line in (text or "").split("\n"):
        line = line.rstrip("\r")
        if line.strip():
            content.append({
                "type": "paragraph",
                "content": [{"type": "text", "text": line}]
            })
        else:
            content.append({"type": "paragraph", "content": []})

    return {
        "type": "doc",
        "version": 1,
        "content": content
    }


class JiraClient:
    """Client for the Jira REST API used by the issue lifecycle."""

    def __init__(self, base_url: str, username: str, api_token: str, timeout: Optional[int] = None):
        """
        Initialize Jira client.

        Args:
            base_url: Jira instance URL (e.g., "https://yourcompany.atlassian.net")
            username: Jira user email for authentication (also the reporting identity)
            api_token: Jira API token for authentication
            timeout: Request timeout in seconds (default: 90, or JIRA_API_TIMEOUT env var)
        """
        self.jira_url = (base_url or "").rstrip("/")
        self.username = username
        self.api_token = api_token
        # Default timeout: 90 seconds (Jira can be slow), configurable via env var
        self.timeout = timeout or int(os.getenv("JIRA_API_TIMEOUT", "90"))

        if not self.jira_url:
            raise JiraClientError("JIRA_BASE_URL cannot be empty")
        if not self.username:
            raise JiraClientError("JIRA_USERNAME cannot be empty")
        if not self.api_token:
            raise JiraClientError("JIRA_API_TOKEN cannot be empty")

    def _make_request(
        self,
        endpoint: str,
        method: str = "GET",
        data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None
    ) -> Any:
        """
        Make authenticated request to Jira API.

        Args:
            endpoint: API endpoint (e.g., "/rest/api/3/issue/KEY-123")
            method: HTTP method (GET, POST, PUT, DELETE)
            data: Optional request body data
            params: Optional query parameters

        Returns:
            Decoded JSON response ({} for empty bodies)

        Raises:
            RemoteUnavailable: Timeout, connection failure, 429 or 5xx
            RemoteRejected: Any other 4xx
        """
        if method not in ("GET", "POST", "PUT", "DELETE"):
            raise JiraClientError(f"Unsupported HTTP method: {method}")

        url = f"{self.jira_url}{endpoint}"
        auth = HTTPBasicAuth(self.username, self.api_token)
        headers = {"Accept": "application/json", "Content-Type": "application/json"}

        try:
            response = requests.request(
                method,
                url,
                auth=auth,
                headers=headers,
                params=params,
                data=json.dumps(data) if data is not None else None,
                timeout=self.timeout
            )
        except requests.exceptions.Timeout:
            raise RemoteUnavailable(
                f"Jira API request timed out after {self.timeout} seconds. "
                f"This may indicate Jira is slow or experiencing issues."
            )
        except requests.exceptions.RequestException as e:
            raise RemoteUnavailable(f"Jira API request failed: {str(e)}")

        if response.status_code >= 400:
            try:
                details = extract_error_details(response.json())
            except ValueError:
                details = []
            message = f"Jira API returned HTTP {response.status_code} for {method} {endpoint}"
            if response.status_code == 429 or response.status_code >= 500:
                raise RemoteUnavailable(message, status_code=response.status_code, details=details)
            raise RemoteRejected(message, status_code=response.status_code, details=details)

        # Some responses may be empty (204 No Content)
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise JiraClientError(f"Jira API returned invalid JSON for {method} {endpoint}: {str(e)}")

    def create_issue(self, fields: Dict[str, Any]) -> str:
        """
        Create a new Jira issue.

        Args:
            fields: Complete "fields" payload (project, issuetype, summary, ...)

        Returns:
            Key of the created issue (e.g., "PROJ-123")
        """
        response = self._make_request("/rest/api/3/issue", method="POST", data={"fields": fields})
        issue_key = response.get("key") if isinstance(response, dict) else None
        if not issue_key:
            raise JiraClientError("Jira did not return a key for the created issue")
        return issue_key

    def delete_issue(self, issue_key: str) -> None:
        self._make_request(f"/rest/api/3/issue/{issue_key}", method="DELETE")

    def search_issues(
        self,
        jql: str,
        fields: Optional[List[str]] = None,
        max_results: int = 50
    ) -> List[Dict[str, Any]]:
        """
        Search for Jira issues using JQL.

        Args:
            jql: JQL query string
            fields: Fields to return (default: key, summary, status)
            max_results: Maximum number of issues

        Returns:
            List of issue dictionaries with keys: issue_key, summary, status, id
        """
        response = self._make_request(
            "/rest/api/3/search",
            params={
                "jql": jql,
                "fields": ",".join(fields or ["summary", "status"]),
                "maxResults": max_results,
            }
        )

        issues = []
        for issue in response.get("issues", []):
            issue_fields = issue.get("fields", {})
            issues.append({
                "issue_key": issue.get("key"),
                "summary": issue_fields.get("summary", ""),
                "status": (issue_fields.get("status") or {}).get("name", ""),
                "id": issue.get("id")
            })
        return issues

    def count_issues(self, jql: str) -> int:
        """Number of issues matching a JQL query."""
        response = self._make_request(
            "/rest/api/3/search",
            params={"jql": jql, "fields": "key", "maxResults": 0}
        )
        return int(response.get("total", 0))

    def count_issues_created_today(self, reporter: Optional[str], project_key: str) -> int:
        """
        Number of issues reported by a user in a project since the start of the day.

        Args:
            reporter: Reporting identity; None or the authenticated user become
                currentUser() (Jira Cloud may reject email-based user clauses)
            project_key: Jira project key
        """
        if not reporter or reporter == self.username:
            reporter_clause = "currentUser()"
        else:
            reporter_clause = f'"{escape_jql_string(reporter)}"'
        jql = (
            f'project = "{escape_jql_string(project_key)}" '
            f'AND reporter = {reporter_clause} '
            f'AND created >= startOfDay()'
        )
        return self.count_issues(jql)

    def get_issue(self, issue_key: str) -> Dict[str, Any]:
        """
        Fetch a Jira issue.

        Returns:
            Dictionary containing:
            - issue_key, summary
            - status: Status name
            - status_category: Status category key ("new", "indeterminate", "done")
        """
        issue = self._make_request(
            f"/rest/api/3/issue/{issue_key}",
            params={"fields": "summary,status"}
        )
        fields_data = issue.get("fields", {})
        status = fields_data.get("status") or {}
        return {
            "issue_key": issue.get("key", issue_key),
            "summary": fields_data.get("summary", ""),
            "status": status.get("name", ""),
            "status_category": (status.get("statusCategory") or {}).get("key", ""),
        }

    def get_transitions(self, issue_key: str) -> List[Dict[str, str]]:
        """Workflow transitions currently available on an issue, as {id, name}."""
        response = self._make_request(f"/rest/api/3/issue/{issue_key}/transitions")
        return [
            {"id": str(transition.get("id", "")), "name": transition.get("name", "")}
            for transition in response.get("transitions", [])
        ]

    def execute_transition(self, issue_key: str, transition_id: str) -> None:
        self._make_request(
            f"/rest/api/3/issue/{issue_key}/transitions",
            method="POST",
            data={"transition": {"id": str(transition_id)}}
        )

    def get_project_metadata(self, project_key: str) -> Dict[str, Any]:
        """
        Get a project with its issue types.

        Returns:
            Dictionary with 'key', 'name' and 'issue_types' (list of {id, name})
        """
        project = self._make_request(f"/rest/api/3/project/{project_key}")
        return {
            "key": project.get("key", project_key),
            "name": project.get("name", ""),
            "issue_types": [
                {"id": str(issue_type.get("id", "")), "name": issue_type.get("name", "")}
                for issue_type in project.get("issueTypes", [])
            ],
        }

    def get_create_metadata(self, project_key: str, issue_type: int) -> Dict[str, Dict[str, Any]]:
        """
        Fields available on the create screen of a project/issue type.

        Returns:
            Mapping of field id to {name, required, schema, allowed_values}
        """
        fields: Dict[str, Dict[str, Any]] = {}
        start_at = 0
        while True:
            response = self._make_request(
                f"/rest/api/3/issue/createmeta/{project_key}/issuetypes/{issue_type}",
                params={"startAt": start_at, "maxResults": 50}
            )
            values = response.get("fields") or response.get("values") or []
            for field in values:
                field_id = field.get("fieldId") or field.get("key")
                if not field_id:
                    continue
                fields[field_id] = {
                    "name": field.get("name", field_id),
                    "required": bool(field.get("required", False)),
                    "schema": field.get("schema") or {},
                    "allowed_values": field.get("allowedValues") or [],
                }
            start_at += len(values)
            total = response.get("total")
            if not values or total is None or start_at >= total:
                break
        return fields

    def get_server_info(self) -> str:
        """Server title; used to check that URL and credentials work."""
        response = self._make_request("/rest/api/3/serverInfo")
        return response.get("serverTitle", "")


_JQL_RESERVED = set('"\\')


def escape_jql_string(value: str) -> str:
    """Escape a value for use inside a double-quoted JQL string."""
    return "".join(f"\\{ch}" if ch in _JQL_RESERVED else ch for ch in (value or ""))
