from __future__ import annotations

import logging
import shlex
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Callable, Dict, Iterable, List, Optional

from .config import ConfigError, StepConfig
from .context import JobContext
from .credentials import EnvCredentialsProvider
from .executor import DockerCommandExecutor, resolve_docker_tool
from .fingerprints import FingerprintRecorder, FingerprintStore, JsonFingerprintStore
from .macros import EnvMacroExpander
from .models import DockerPublishError, ImageTag, StageResult
from .push import parse_retry_count, push_with_retry
from .strategy import BuildOptions, build_and_tag, build_context, tag_only
from .tags import defined, resolve_tags

logger = logging.getLogger(__name__)


class Stage(Enum):
    INIT = auto()
    DECORATE = auto()
    BUILD_OR_TAG = auto()
    PUSH = auto()
    DONE = auto()
    FAILED = auto()

    @classmethod
    def ordered(cls) -> Iterable["Stage"]:
        return (
            cls.DECORATE,
            cls.BUILD_OR_TAG,
            cls.PUSH,
        )


@dataclass
class PipelineResult:
    state: Stage = Stage.INIT
    stages: List[StageResult] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state is Stage.DONE

    def to_dict(self) -> Dict[str, object]:
        return {
            "state": self.state.name.lower(),
            "stages": [stage.to_dict() for stage in self.stages],
        }


class DockerPublishPipeline:
    """Decorate, build or tag, then push, stopping at the first failure."""

    def __init__(
        self,
        config: StepConfig,
        context: JobContext,
        *,
        executor: Optional[DockerCommandExecutor] = None,
        fingerprint_store: Optional[FingerprintStore] = None,
        expander: Optional[Callable[[Optional[str]], Optional[str]]] = None,
    ) -> None:
        self.config = config
        self.context = context
        if executor is None:
            provider = EnvCredentialsProvider(context.env)
            key_material = config.registry.key_material_factory(provider).plus(
                config.server.key_material_factory(provider) if config.server is not None else None
            )
            executor = DockerCommandExecutor(context, key_material, resolve_docker_tool(config.docker_tool))
        self.executor = executor
        if fingerprint_store is None:
            fingerprint_store = JsonFingerprintStore(context.workspace / ".dockerpublish" / "fingerprints.json")
        self.fingerprint_store = fingerprint_store
        self.expand = expander or EnvMacroExpander(context.macro_variables())
        self.result = PipelineResult()
        self._handlers: Dict[Stage, Callable[[], StageResult]] = {
            Stage.DECORATE: self._stage_decorate,
            Stage.BUILD_OR_TAG: self._stage_build_or_tag,
            Stage.PUSH: self._stage_push,
        }

    def image_tags(self) -> List[ImageTag]:
        return resolve_tags(
            self.config.repo,
            self.config.repo_tag,
            self.config.skip_tag_latest,
            self.expand,
        )

    def _stage_decorate(self) -> StageResult:
        if self.config.skip_decorate:
            return StageResult("decorate", "skipped")
        tags = self.image_tags()
        for tag in tags:
            self.context.display_name = f"{self.context.display_name} {tag}"
        return StageResult("decorate", "completed", {"display_name": self.context.display_name})

    def _build_options(self) -> BuildOptions:
        extra_args = self.expand(self.config.build_additional_args) or ""
        try:
            split_args = shlex.split(extra_args)
        except ValueError as exc:
            raise ConfigError(f"Invalid additional build arguments {extra_args!r}: {exc}") from exc
        return BuildOptions(
            context=build_context(self.expand(self.config.build_context), self.context.workspace),
            dockerfile_path=self.expand(self.config.dockerfile_path),
            no_cache=self.config.no_cache,
            force_pull=self.config.force_pull,
            force_tag=self.config.force_tag,
            extra_args=split_args,
        )

    def _stage_build_or_tag(self) -> StageResult:
        if self.config.skip_build:
            succeeded = tag_only(
                self.executor,
                self.context.listener,
                self.expand(self.config.repo),
                self.image_tags(),
                defined(self.config.repo_tag),
                self.config.force_tag,
            )
            return StageResult("tag", "completed" if succeeded else "failed")

        recorder = FingerprintRecorder(
            self.executor,
            self.fingerprint_store,
            self.context.invocation,
            enabled=self.config.create_fingerprint,
        )
        options = self._build_options()
        tags = self.image_tags()
        outcome = build_and_tag(self.executor, tags, options, recorder)
        details: Dict[str, object] = {"tags": [str(tag) for tag in tags], "context": str(options.context)}
        if outcome.image_id:
            details["image_id"] = outcome.image_id
        return StageResult("build", "completed" if outcome.succeeded else "failed", details)

    def _stage_push(self) -> StageResult:
        if self.config.skip_push:
            return StageResult("push", "skipped")
        retries = parse_retry_count(self.config.push_retries, self.context.listener)
        tags = self.image_tags()
        succeeded = push_with_retry(self.executor, tags, retries, self.context.listener)
        return StageResult(
            "push",
            "completed" if succeeded else "failed",
            {"tags": [str(tag) for tag in tags], "retries": retries},
        )

    def run(self) -> bool:
        """Run every enabled stage and report whether all of them succeeded.

        Errors and interruptions are written to the job log and turned into a
        failed result; nothing is raised to the caller.
        """

        self.result = PipelineResult()
        try:
            for stage in Stage.ordered():
                self.result.state = stage
                stage_result = self._handlers[stage]()
                self.result.stages.append(stage_result)
                if stage_result.status == "failed":
                    self.result.state = Stage.FAILED
                    return False
        except (DockerPublishError, OSError, KeyboardInterrupt) as exc:
            logger.debug("Publish step failed in %s", self.result.state.name, exc_info=True)
            self.context.listener.error(str(exc))
            self.context.listener.print_exception(exc)
            self.result.state = Stage.FAILED
            return False
        self.result.state = Stage.DONE
        return True
