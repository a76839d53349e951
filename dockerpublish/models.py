from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

IMAGE_BUILT_PATTERN = re.compile(r"Successfully built ([0-9a-f]{12,})")


class DockerPublishError(RuntimeError):
    """Base class for errors that abort the publish step."""


class MacroEvaluationError(DockerPublishError):
    """Raised when a macro in a configured string cannot be resolved."""


class CommandLaunchError(DockerPublishError):
    """Raised when the docker executable cannot be started at all."""

    def __init__(self, command: List[str], cause: OSError) -> None:
        self.command = list(command)
        super().__init__(f"Unable to launch {' '.join(command)}: {cause}")


class CredentialsError(DockerPublishError):
    """Raised when configured credentials cannot be materialized."""


class BuildInterrupted(DockerPublishError):
    """Raised when the host asks the running step to stop."""


def image_built_from_stdout(stdout: str) -> Optional[str]:
    """Return the image id named by the last ``Successfully built`` line."""

    last_match: Optional[str] = None
    for match in IMAGE_BUILT_PATTERN.finditer(stdout or ""):
        last_match = match.group(1)
    return last_match


@dataclass(frozen=True)
class ImageTag:
    """Repository name with an optional tag suffix."""

    name: str
    tag: Optional[str] = None

    def __str__(self) -> str:
        if self.tag is None:
            return self.name
        return f"{self.name}:{self.tag}"


@dataclass
class BuildOutcome:
    """Result of one docker command."""

    succeeded: bool = True
    stdout: str = ""
    stderr: str = ""

    @property
    def image_id(self) -> Optional[str]:
        return image_built_from_stdout(self.stdout)


@dataclass(frozen=True)
class FastPath:
    """The first build named its image, so the other tags are applied to it."""

    image_id: str


@dataclass(frozen=True)
class FallbackRebuild:
    """The built image is unknown, so every remaining tag is rebuilt."""


BuildResolution = Union[FastPath, FallbackRebuild]


def resolve_build(outcome: BuildOutcome) -> BuildResolution:
    image_id = outcome.image_id
    if image_id is None:
        return FallbackRebuild()
    return FastPath(image_id)


@dataclass(frozen=True)
class JobInvocation:
    """Identity of the job run that produced an image."""

    job_name: str
    build_number: int

    def to_dict(self) -> Dict[str, Any]:
        return {"job": self.job_name, "build": self.build_number}


@dataclass(frozen=True)
class ImageLineage:
    """Full image id and the id of its parent image, if any."""

    image_id: str
    parent_id: Optional[str] = None


@dataclass
class StageResult:
    """Summary emitted by a pipeline stage."""

    name: str
    status: str
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"stage": self.name, "status": self.status, "details": self.details}
