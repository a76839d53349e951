"""Build, tag, push and fingerprint docker images as one CI build step."""

from .config import StepConfig, load_config
from .context import BuildListener, JobContext
from .models import BuildOutcome, ImageTag
from .pipeline import DockerPublishPipeline, Stage
from .tags import resolve_tags

__all__ = [
    "BuildListener",
    "BuildOutcome",
    "DockerPublishPipeline",
    "ImageTag",
    "JobContext",
    "Stage",
    "StepConfig",
    "load_config",
    "resolve_tags",
]
