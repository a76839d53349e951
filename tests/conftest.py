from __future__ import annotations

import io
from pathlib import Path
from typing import Callable, List, Optional, Sequence

import pytest

from dockerpublish.context import BuildListener, JobContext
from dockerpublish.executor import DockerCommandExecutor
from dockerpublish.models import BuildOutcome

Responder = Callable[[List[str]], BuildOutcome]


class FakeExecutor(DockerCommandExecutor):
    """Records docker subcommands instead of running them."""

    def __init__(self, responder: Optional[Responder] = None) -> None:
        self.commands: List[List[str]] = []
        self.streamed: List[bool] = []
        self.responder = responder or (lambda args: BuildOutcome())

    def execute(self, args: Sequence[str], *, log_stdout: bool = True, log_stderr: bool = True) -> BuildOutcome:
        self.commands.append(list(args))
        self.streamed.append(log_stdout)
        return self.responder(list(args))

    def subcommands(self) -> List[str]:
        return [command[0] for command in self.commands]


class MemoryFingerprintStore:
    def __init__(self) -> None:
        self.records: list = []

    def add_from_facet(self, parent_id, image_id, job) -> None:
        self.records.append((parent_id, image_id, job))


@pytest.fixture
def console() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def job_context(tmp_path: Path, console: io.StringIO) -> JobContext:
    return JobContext(
        workspace=tmp_path,
        display_name="#7",
        env={"PATH": "/usr/bin:/bin", "GIT_COMMIT": "abc1234"},
        job_name="app",
        build_number=7,
        listener=BuildListener(console),
    )
