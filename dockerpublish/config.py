from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .credentials import RegistryEndpoint, ServerEndpoint
from .models import DockerPublishError

try:  # pragma: no cover - tomllib is stdlib from 3.11 onwards
    import tomllib  # type: ignore
except ModuleNotFoundError:  # pragma: no cover - fallback for 3.10
    import tomli as tomllib  # type: ignore

logger = logging.getLogger(__name__)

CONFIG_VERSION = 2

# Field names of version 1 (legacy) saved settings.
_LEGACY_KEYS = {
    "repoName": "repo_name",
    "repoTag": "repo_tag",
    "skipBuild": "skip_build",
    "skipPush": "skip_push",
    "skipDecorate": "skip_decorate",
    "skipTagLatest": "skip_tag_latest",
    "noCache": "no_cache",
    "forcePull": "force_pull",
    "forceTag": "force_tag",
    "createFingerprint": "create_fingerprint",
    "buildContext": "build_context",
    "dockerfilePath": "dockerfile_path",
    "buildAdditionalArgs": "build_additional_args",
    "dockerToolName": "docker_tool",
    "pushRetries": "push_retries",
}


class ConfigError(DockerPublishError):
    """Raised when the step configuration cannot be parsed."""


def _fix_empty_and_trim(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


@dataclass
class StepConfig:
    """Settings of one docker build-and-publish step."""

    repo_name: str
    repo_tag: Optional[str] = None
    skip_build: bool = False
    skip_push: bool = True
    skip_decorate: bool = False
    skip_tag_latest: bool = False
    no_cache: bool = False
    force_pull: bool = False
    force_tag: bool = False
    create_fingerprint: bool = True
    build_context: Optional[str] = None
    dockerfile_path: Optional[str] = None
    build_additional_args: str = ""
    push_retries: Any = 0
    docker_tool: Optional[str] = None
    registry: RegistryEndpoint = field(default_factory=RegistryEndpoint)
    server: Optional[ServerEndpoint] = field(default_factory=ServerEndpoint)

    def __post_init__(self) -> None:
        self.build_context = _fix_empty_and_trim(self.build_context)
        self.dockerfile_path = _fix_empty_and_trim(self.dockerfile_path)
        if self.build_additional_args is None:
            self.build_additional_args = ""

    @property
    def repo(self) -> str:
        """Repository name qualified with the registry host."""

        return self.registry.image_name(self.repo_name)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StepConfig":
        data = migrate_config(data)
        if not data.get("repo_name"):
            raise ConfigError("Configuration must set 'repo_name'")
        server = data.get("server")
        return cls(
            repo_name=data["repo_name"],
            repo_tag=data.get("repo_tag"),
            skip_build=bool(data.get("skip_build", False)),
            skip_push=bool(data.get("skip_push", True)),
            skip_decorate=bool(data.get("skip_decorate", False)),
            skip_tag_latest=bool(data.get("skip_tag_latest", False)),
            no_cache=bool(data.get("no_cache", False)),
            force_pull=bool(data.get("force_pull", False)),
            force_tag=bool(data.get("force_tag", False)),
            create_fingerprint=bool(data.get("create_fingerprint", True)),
            build_context=data.get("build_context"),
            dockerfile_path=data.get("dockerfile_path"),
            build_additional_args=data.get("build_additional_args", ""),
            push_retries=data.get("push_retries", 0),
            docker_tool=data.get("docker_tool"),
            registry=RegistryEndpoint.from_dict(data.get("registry") or {}),
            server=ServerEndpoint.from_dict(server) if server is not None else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": CONFIG_VERSION,
            "repo_name": self.repo_name,
            "repo_tag": self.repo_tag,
            "skip_build": self.skip_build,
            "skip_push": self.skip_push,
            "skip_decorate": self.skip_decorate,
            "skip_tag_latest": self.skip_tag_latest,
            "no_cache": self.no_cache,
            "force_pull": self.force_pull,
            "force_tag": self.force_tag,
            "create_fingerprint": self.create_fingerprint,
            "build_context": self.build_context,
            "dockerfile_path": self.dockerfile_path,
            "build_additional_args": self.build_additional_args,
            "push_retries": self.push_retries,
            "docker_tool": self.docker_tool,
            "registry": self.registry.to_dict(),
            "server": self.server.to_dict() if self.server is not None else None,
        }


def migrate_config(data: Dict[str, Any]) -> Dict[str, Any]:
    """Bring a raw configuration mapping up to the current schema version.

    Version 1 settings use the legacy camelCase field names and may
    carry the registry host inside the repository name.
    """

    data = dict(data)
    version = data.get("version", 1)
    if version not in (1, CONFIG_VERSION):
        raise ConfigError(f"Unsupported configuration version: {version}")

    if version == 1:
        for legacy, current in _LEGACY_KEYS.items():
            if legacy in data:
                data.setdefault(current, data.pop(legacy))

    if data.get("registry") is None and data.get("repo_name"):
        registry, repo_name = RegistryEndpoint.from_image_name(data["repo_name"])
        if registry.url is not None:
            logger.warning(
                "Using Docker registry from old configuration field, you may need to configure "
                "credentials in the build step: %s %s",
                registry.url,
                repo_name,
            )
        data["registry"] = registry.to_dict()
        data["repo_name"] = repo_name

    data["version"] = CONFIG_VERSION
    return data


def load_config(path: str | Path) -> StepConfig:
    """Load step settings from a JSON, TOML or YAML file."""

    path = Path(path)
    raw_text = path.read_text()
    if path.suffix == ".toml":
        try:
            raw_data = tomllib.loads(raw_text)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"Invalid TOML in {path}: {exc}") from exc
    else:
        try:
            raw_data = json.loads(raw_text)
        except json.JSONDecodeError:
            try:
                raw_data = yaml.safe_load(raw_text)
            except yaml.YAMLError as exc:
                raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(raw_data, dict):
        raise ConfigError("Configuration must be a mapping of settings")
    return StepConfig.from_dict(raw_data)
