"""
Azure DevOps pull request client (REST API over requests).
"""

from __future__ import annotations

import logging
from typing import Optional

import requests

from ..models import ProviderConfigurationError
from .base import DEFAULT_DESCRIPTION, DEFAULT_HTTP_TIMEOUT, PullRequestProvider, require_token


logger = logging.getLogger(__name__)


TOKEN_ENV_VAR = "AZURE_DEVOPS_PERSONAL_ACCESS_TOKEN"
API_VERSION = "7.1-preview.1"


class AzureDevOpsClient(PullRequestProvider):
    """Creates pull requests through the Azure DevOps Git REST API."""

    def __init__(
        self,
        organization: Optional[str],
        project: Optional[str],
        host: Optional[str],
        token: Optional[str] = None,
        timeout: int = DEFAULT_HTTP_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        missing = [k for k, v in (("organization", organization), ("project", project), ("host", host)) if not v]
        if missing:
            raise ProviderConfigurationError(f"AzureDevOps provider is missing: {', '.join(missing)}")
        self.organization = organization
        self.project = project
        self.host = host.rstrip("/")
        self.token = token or require_token(TOKEN_ENV_VAR)
        self.timeout = timeout
        self.session = session or requests.Session()
        # Basic auth with an empty user name and the PAT as password
        self.session.auth = ("", self.token)

    @property
    def base_url(self) -> str:
        return f"{self.host}/{self.organization}/{self.project}"

    def _panel_link(self, data: dict) -> Optional[str]:
        repository = data.get("repository") or {}
        pr_id = data.get("pullRequestId")
        if not repository.get("name") or pr_id is None:
            return None
        return f"{self.base_url}/_git/{repository['name']}/pullrequest/{pr_id}"

    def create_pull_request(
        self,
        repository_id: str,
        source_branch: str,
        target_branch: str,
        title: str,
        description: str = DEFAULT_DESCRIPTION,
    ) -> Optional[str]:
        url = f"{self.base_url}/_apis/git/repositories/{repository_id}/pullrequests"
        body = {
            "sourceRefName": f"refs/heads/{source_branch}",
            "targetRefName": f"refs/heads/{target_branch}",
            "title": title,
            "description": description,
        }
        try:
            response = self.session.post(
                url, params={"api-version": API_VERSION}, json=body, timeout=self.timeout
            )
            response.raise_for_status()
        except requests.RequestException as e:
            message = e
            if e.response is not None:
                try:
                    message = e.response.json().get("message", e)
                except ValueError:
                    pass
            logger.error(f"Error creating Azure DevOps pull request for repository {repository_id}: {message}")
            raise
        return self._panel_link(response.json())
