"""
GitLab merge request client (python-gitlab).
"""

from __future__ import annotations

import logging
from typing import Optional

import gitlab
from gitlab.exceptions import GitlabError

from ..models import ProviderConfigurationError
from .base import DEFAULT_DESCRIPTION, DEFAULT_HTTP_TIMEOUT, PullRequestProvider, require_token


logger = logging.getLogger(__name__)


TOKEN_ENV_VAR = "GITLAB_PERSONAL_ACCESS_TOKEN"


class GitlabClient(PullRequestProvider):
    """Creates squash merge requests that remove their source branch."""

    def __init__(
        self,
        host: Optional[str],
        token: Optional[str] = None,
        timeout: int = DEFAULT_HTTP_TIMEOUT,
        api: Optional[gitlab.Gitlab] = None,
    ) -> None:
        if not host and api is None:
            raise ProviderConfigurationError("Gitlab provider is missing: host")
        self.host = host
        self.api = api or gitlab.Gitlab(host, private_token=token or require_token(TOKEN_ENV_VAR), timeout=timeout)

    def create_pull_request(
        self,
        repository_id: str,
        source_branch: str,
        target_branch: str,
        title: str,
        description: str = DEFAULT_DESCRIPTION,
    ) -> Optional[str]:
        try:
            project = self.api.projects.get(repository_id, lazy=True)
            mr = project.mergerequests.create(
                {
                    "source_branch": source_branch,
                    "target_branch": target_branch,
                    "title": title,
                    "description": description,
                    "squash": True,
                    "remove_source_branch": True,
                }
            )
        except GitlabError as e:
            logger.error(f"Error creating GitLab merge request for project {repository_id}: {e}")
            raise
        return getattr(mr, "web_url", None)
