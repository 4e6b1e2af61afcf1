"""
Pull/merge request providers.
"""

from .azure_devops_client import AzureDevOpsClient
from .base import DEFAULT_DESCRIPTION, PullRequestProvider
from .gitlab_client import GitlabClient

__all__ = ["AzureDevOpsClient", "GitlabClient", "PullRequestProvider", "DEFAULT_DESCRIPTION"]
