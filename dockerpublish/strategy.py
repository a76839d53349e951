from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

from .context import BuildListener
from .executor import DockerCommandExecutor
from .fingerprints import FingerprintRecorder
from .models import BuildOutcome, FallbackRebuild, FastPath, ImageTag, resolve_build
from .tags import defined

logger = logging.getLogger(__name__)


@dataclass
class BuildOptions:
    """Macro-expanded arguments shared by every build command of one run."""

    context: Path
    dockerfile_path: Optional[str] = None
    no_cache: bool = False
    force_pull: bool = False
    force_tag: bool = False
    extra_args: List[str] = field(default_factory=list)


def build_context(configured: Optional[str], workspace: Path) -> Path:
    if defined(configured):
        return Path(configured)
    return workspace


def build_command(tag: ImageTag, options: BuildOptions) -> List[str]:
    command = ["build", *options.extra_args, "-t", str(tag)]
    if options.no_cache:
        command.append("--no-cache=true")
    if options.force_pull:
        command.append("--pull=true")
    if defined(options.dockerfile_path):
        command.append(f"--file={options.dockerfile_path}")
    command.append(str(options.context))
    return command


def tag_command(source: str, tag: ImageTag, force: bool) -> List[str]:
    command = ["tag"]
    if force:
        command.append("--force=true")
    command.extend([source, str(tag)])
    return command


def build_and_tag(
    executor: DockerCommandExecutor,
    tags: Sequence[ImageTag],
    options: BuildOptions,
    recorder: Optional[FingerprintRecorder] = None,
) -> BuildOutcome:
    """Build the first tag, then re-tag its image or rebuild for the others.

    When the build log names the produced image, the remaining tags point at
    it with ``docker tag``. Otherwise each remaining tag gets its own build.
    """

    remaining = iter(tags)
    first = next(remaining, None)
    if first is None:
        return BuildOutcome()

    last = executor.execute(build_command(first, options))
    if not last.succeeded:
        return last

    resolution = resolve_build(last)
    if isinstance(resolution, FastPath):
        for tag in remaining:
            last = executor.execute(tag_command(resolution.image_id, tag, options.force_tag))
            if not last.succeeded:
                break
        if recorder is not None:
            recorder.record(resolution.image_id)
    elif isinstance(resolution, FallbackRebuild):
        logger.debug("No image id in build output of %s, rebuilding for every tag", first)
        for tag in remaining:
            last = executor.execute(build_command(tag, options))
            if not last.succeeded:
                break
            if recorder is not None:
                recorder.record_from_stdout(last.stdout)
    return last


def tag_only(
    executor: DockerCommandExecutor,
    listener: BuildListener,
    repo: str,
    tags: Sequence[ImageTag],
    has_tag_expression: bool,
    force: bool,
) -> bool:
    """Apply tags to an image built elsewhere, without building."""

    if not has_tag_expression:
        listener.info("Nothing to build or tag")
        return True
    return executor.execute_all(tag_command(repo, tag, force) for tag in tags)
