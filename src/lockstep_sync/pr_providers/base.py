"""
Contract implemented by every pull/merge request provider.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from typing import Optional

from ..models import ProviderConfigurationError


DEFAULT_HTTP_TIMEOUT = 30
DEFAULT_DESCRIPTION = "Update submodules"


class PullRequestProvider(ABC):
    """Creates a pull/merge request and returns its URL."""

    @abstractmethod
    def create_pull_request(
        self,
        repository_id: str,
        source_branch: str,
        target_branch: str,
        title: str,
        description: str = DEFAULT_DESCRIPTION,
    ) -> Optional[str]:
        """
        Create a pull/merge request.

        Args:
            repository_id: Provider-side identifier of the repository
            source_branch: Branch holding the changes
            target_branch: Branch to merge into
            title: Title of the request
            description: Body of the request

        Returns:
            The URL of the created request, or None if it could not be determined
        """
        pass


def require_token(env_var: str) -> str:
    """Read a personal access token from the environment."""
    token = os.environ.get(env_var)
    if not token:
        raise ProviderConfigurationError(f"{env_var} is not set")
    return token
