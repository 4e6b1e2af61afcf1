"""
Configuration loading, validation and persistence.

The configuration is a JSON document of the form::

    {
      "prProviders": [{"provider": "AzureDevOps", "organization": "...", "project": "...", "host": "..."}],
      "projects": [
        {
          "name": "api", "repositoryId": "...", "path": "../api",
          "baseBranch": "main", "remoteName": "origin", "remoteUrl": "...",
          "submodules": [{"name": "shared", "baseBranch": "main", "remoteName": "origin"}]
        }
      ]
    }
"""

from __future__ import annotations

import json
import logging
import os
import shutil
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, model_validator

from .models import ConfigurationError, ProjectNode


logger = logging.getLogger(__name__)


DEFAULT_CONFIG_PATH = Path("config.json")
CONFIG_ENV_VAR = "LOCKSTEP_SYNC_CONFIG"


class _Settings(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ProviderSettings(_Settings):
    provider: str
    project: Optional[str] = None
    organization: Optional[str] = None
    host: Optional[str] = None


class SubmoduleSettings(_Settings):
    name: str = Field(min_length=1)
    base_branch: str = Field(alias="baseBranch", min_length=1)
    remote_name: str = Field(
        default="origin",
        validation_alias=AliasChoices("remoteName", "remote"),
        serialization_alias="remoteName",
    )
    remote_url: Optional[str] = Field(default=None, alias="remoteUrl")
    repository_id: Optional[str] = Field(default=None, alias="repositoryId")
    # Gitlink path inside the parent; defaults to the submodule name
    path: Optional[str] = None


class ProjectSettings(_Settings):
    name: str = Field(min_length=1)
    repository_id: str = Field(alias="repositoryId")
    path: str = Field(min_length=1)
    base_branch: str = Field(alias="baseBranch", min_length=1)
    remote_name: str = Field(
        default="origin",
        validation_alias=AliasChoices("remoteName", "remote"),
        serialization_alias="remoteName",
    )
    remote_url: Optional[str] = Field(default=None, alias="remoteUrl")
    submodules: List[SubmoduleSettings] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_submodules(self) -> "ProjectSettings":
        seen = set()
        for submodule in self.submodules:
            if submodule.name in seen:
                raise ValueError(f"duplicate submodule '{submodule.name}' in project '{self.name}'")
            seen.add(submodule.name)
        return self


class SyncSettings(_Settings):
    pr_providers: List[ProviderSettings] = Field(default_factory=list, alias="prProviders")
    projects: List[ProjectSettings] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_projects(self) -> "SyncSettings":
        seen = set()
        for project in self.projects:
            if project.name in seen:
                raise ValueError(f"duplicate project name '{project.name}'")
            seen.add(project.name)
        return self

    def provider(self, name: str) -> Optional[ProviderSettings]:
        for provider in self.pr_providers:
            if provider.provider == name:
                return provider
        return None


def resolve_config_path(path: Optional[Path] = None) -> Path:
    """Pick the config path: explicit argument, environment, then ./config.json."""
    if path:
        return Path(path).expanduser()
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path).expanduser()
    return DEFAULT_CONFIG_PATH


def parse_config(raw: str, source: str = "<string>") -> SyncSettings:
    """Parse and validate raw JSON configuration text."""
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {source}: {e}") from e
    try:
        return SyncSettings.model_validate(data)
    except ValidationError as e:
        logger.error(f"Error validating config {source}: {e}")
        raise ConfigurationError(f"Invalid configuration in {source}: {e}") from e


def load_config(path: Path) -> SyncSettings:
    """Read and validate the configuration file at path."""
    try:
        raw = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot read configuration file {path}: {e}") from e
    settings = parse_config(raw, source=str(path))
    logger.info(f"Loaded {len(settings.projects)} project(s) from {path}")
    return settings


def projects_to_settings(projects: Iterable[ProjectNode]) -> List[ProjectSettings]:
    """Convert project snapshots back into their configuration form."""
    result: List[ProjectSettings] = []
    for project in projects:
        repo = project.repository
        result.append(
            ProjectSettings(
                name=repo.name,
                repository_id=repo.repository_id or "",
                path=str(repo.path),
                base_branch=repo.base_branch,
                remote_name=repo.remote_name,
                remote_url=repo.remote_url,
                submodules=[
                    SubmoduleSettings(
                        name=sub.name,
                        base_branch=sub.base_branch,
                        remote_name=sub.remote_name,
                        remote_url=sub.remote_url,
                        repository_id=sub.repository_id,
                        path=sub.relative_path if sub.relative_path != sub.name else None,
                    )
                    for sub in project.submodules
                ],
            )
        )
    return result


def _dump_projects(projects: Iterable[ProjectNode]) -> list:
    return [
        p.model_dump(by_alias=True, exclude_none=True) for p in projects_to_settings(projects)
    ]


def render_projects(projects: Iterable[ProjectNode]) -> str:
    """Return the `projects` section as indented JSON text."""
    return json.dumps({"projects": _dump_projects(projects)}, indent=2)


def backup_config_file(path: Path) -> Optional[Path]:
    """Copy the config file next to itself with a timestamped suffix."""
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    backup_path = Path(f"{path}.backup_{timestamp}.json")
    try:
        shutil.copyfile(path, backup_path)
        logger.info(f"Backup of the configuration file saved to {backup_path}")
        return backup_path
    except OSError as e:
        logger.error(f"Failed to back up configuration file {path}: {e}")
        return None


def save_projects(path: Path, projects: Iterable[ProjectNode]) -> Optional[Path]:
    """Write the projects section back into the config file, keeping other keys.

    Returns the backup path (None when no backup could be made).
    """
    path = Path(path)
    backup = backup_config_file(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot re-read configuration file {path}: {e}") from e
    data["projects"] = _dump_projects(projects)
    try:
        path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Failed to write configuration to {path}: {e}") from e
    logger.info(f"Projects configuration updated in {path}")
    return backup
