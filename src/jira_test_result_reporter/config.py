"""
Environment configuration and constants.
"""
from typing import Optional, Tuple
from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file at module import time
load_dotenv()

DEFAULT_SUMMARY = "${TEST_FULL_NAME} : ${TEST_ERROR_DETAILS}"
DEFAULT_DESCRIPTION = "${BUILD_URL}${CRLF}${TEST_STACK_TRACE}"
DEFAULT_DATABASE_URL = "sqlite:///./jira_test_result_reporter.db"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Configuration
    api_title: str = "Jira Test Result Reporter"
    api_version: str = "1.0.0"
    internal_service_key: Optional[str] = None

    # Jira Configuration
    jira_base_url: Optional[str] = None
    jira_username: Optional[str] = None
    jira_email: Optional[str] = None
    jira_api_token: Optional[str] = None
    jira_api_timeout: int = 90

    # Issue templates used when a job does not override summary/description
    default_summary: str = DEFAULT_SUMMARY
    default_description: str = DEFAULT_DESCRIPTION

    # Persistence
    database_url: str = DEFAULT_DATABASE_URL

    # Application Configuration
    debug: bool = False
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra environment variables that aren't defined in the model
    )

    @property
    def summary_template(self) -> str:
        return self.default_summary or DEFAULT_SUMMARY

    @property
    def description_template(self) -> str:
        return self.default_description or DEFAULT_DESCRIPTION

    def jira_credentials(self) -> Tuple[str, str, str]:
        """
        Return (base_url, username, api_token) for the Jira client.

        Supports both JIRA_USERNAME and JIRA_EMAIL (common convention).

        Raises:
            ValueError: If a required Jira variable is missing
        """
        username = self.jira_username or self.jira_email
        if not self.jira_base_url:
            raise ValueError("JIRA_BASE_URL environment variable is required")
        if not username:
            raise ValueError("JIRA_USERNAME or JIRA_EMAIL environment variable is required")
        if not self.jira_api_token:
            raise ValueError("JIRA_API_TOKEN environment variable is required")
        return self.jira_base_url, username, self.jira_api_token


# Global settings instance
settings = Settings()
