"""
Provider-agnostic access to pull/merge request creation.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from .config import ProviderSettings
from .models import PendingPullRequest, PrCreationError, ProviderConfigurationError
from .pr_providers import AzureDevOpsClient, GitlabClient, PullRequestProvider


logger = logging.getLogger(__name__)


class ProviderKind(Enum):
    """Provider names accepted in the ``prProviders`` configuration."""

    AZURE_DEVOPS = "AzureDevOps"
    GITLAB = "Gitlab"


ProviderFactory = Callable[[ProviderSettings], PullRequestProvider]


def _azure_devops(settings: ProviderSettings) -> PullRequestProvider:
    return AzureDevOpsClient(settings.organization, settings.project, settings.host)


def _gitlab(settings: ProviderSettings) -> PullRequestProvider:
    return GitlabClient(settings.host)


DEFAULT_FACTORIES: Dict[str, ProviderFactory] = {
    ProviderKind.AZURE_DEVOPS.value: _azure_devops,
    ProviderKind.GITLAB.value: _gitlab,
}


class PullRequestGateway:
    """Selects a configured provider by name and creates pull requests through it.

    A returned URL is the only success signal; nothing else from the provider
    response reaches the caller.
    """

    def __init__(
        self,
        providers: Sequence[ProviderSettings],
        factories: Optional[Mapping[str, ProviderFactory]] = None,
    ) -> None:
        self.providers = list(providers)
        self.factories = dict(factories if factories is not None else DEFAULT_FACTORIES)
        self._instances: Dict[str, PullRequestProvider] = {}

    def provider_names(self) -> List[str]:
        return [p.provider for p in self.providers]

    def get_provider(self, name: str) -> PullRequestProvider:
        """Instantiate (once) and return the provider configured under name.

        Raises:
            ProviderConfigurationError: name is not configured, unknown, or incomplete
        """
        if name in self._instances:
            return self._instances[name]
        settings = next((p for p in self.providers if p.provider == name), None)
        if settings is None:
            raise ProviderConfigurationError(f"No PR provider named '{name}' is configured")
        factory = self.factories.get(name)
        if factory is None:
            raise ProviderConfigurationError(f"Unsupported PR provider: {name}")
        provider = factory(settings)
        self._instances[name] = provider
        logger.debug(f"Instantiated PR provider {name}")
        return provider

    def create_pull_request(self, provider_name: str, pending: PendingPullRequest) -> Optional[str]:
        """
        Create the pull request and return its URL (None when the provider gave none).

        Raises:
            ProviderConfigurationError: the provider cannot be used
            PrCreationError: the provider failed to create the request
        """
        provider = self.get_provider(provider_name)
        try:
            return provider.create_pull_request(
                pending.repository_id,
                pending.source_branch,
                pending.target_branch,
                pending.title,
                pending.description,
            )
        except Exception as e:
            raise PrCreationError(
                f"{provider_name} failed to create a pull request for {pending.repository_id}: {e}"
            ) from e
