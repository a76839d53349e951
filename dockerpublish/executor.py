from __future__ import annotations

import logging
import shutil
from typing import Iterable, List, Optional, Sequence

from .context import JobContext
from .credentials import KeyMaterialFactory
from .models import BuildOutcome, CommandLaunchError
from .utils import decode_output, run_command

logger = logging.getLogger(__name__)

DEFAULT_DOCKER_TOOL = "docker"


def resolve_docker_tool(tool_name: Optional[str]) -> str:
    """Find the configured docker executable, falling back to plain ``docker``."""

    if not tool_name:
        return DEFAULT_DOCKER_TOOL
    executable = shutil.which(tool_name)
    if executable is None:
        logger.warning("Docker tool %s not found, using %s", tool_name, DEFAULT_DOCKER_TOOL)
        return DEFAULT_DOCKER_TOOL
    return executable


class DockerCommandExecutor:
    """Runs docker CLI subcommands inside the job workspace.

    Credentials are materialized for each command and released before
    ``execute`` returns, whether the command succeeded, failed, could not be
    launched or was interrupted.
    """

    def __init__(
        self,
        context: JobContext,
        key_material: Optional[KeyMaterialFactory] = None,
        tool: str = DEFAULT_DOCKER_TOOL,
    ) -> None:
        self.context = context
        self.key_material = key_material or KeyMaterialFactory()
        self.tool = tool

    def execute(
        self,
        args: Sequence[str],
        *,
        log_stdout: bool = True,
        log_stderr: bool = True,
    ) -> BuildOutcome:
        listener = self.context.listener
        command: List[str] = [self.tool, *args]
        with self.key_material.materialize() as keys:
            env = dict(self.context.env)
            env.update(keys.env())
            logger.debug("Executing: %s", " ".join(command))
            try:
                output = run_command(
                    command,
                    cwd=self.context.workspace,
                    env=env,
                    stdout_sink=listener.sink(self.context.charset) if log_stdout else None,
                    stderr_sink=listener.sink(self.context.charset) if log_stderr else None,
                )
            except OSError as exc:
                raise CommandLaunchError(command, exc) from exc

        return BuildOutcome(
            succeeded=output.returncode == 0,
            stdout=decode_output(output.stdout, self.context.charset),
            stderr=decode_output(output.stderr, self.context.charset),
        )

    def execute_all(self, commands: Iterable[Sequence[str]]) -> bool:
        """Run commands in order, stopping at the first failure."""

        for args in commands:
            if not self.execute(args).succeeded:
                return False
        return True
