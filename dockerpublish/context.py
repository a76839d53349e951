from __future__ import annotations

import codecs
import os
import sys
import traceback
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, TextIO

from .models import JobInvocation
from .utils import DEFAULT_CHARSET, OutputSink


class BuildListener:
    """Console log of the running job."""

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self.stream = stream if stream is not None else sys.stdout

    def info(self, message: str) -> None:
        self.stream.write(message + "\n")
        self.stream.flush()

    def error(self, message: str) -> None:
        self.info(f"ERROR: {message}")

    def print_exception(self, exc: BaseException) -> None:
        traceback.print_exception(type(exc), exc, exc.__traceback__, file=self.stream)
        self.stream.flush()

    def sink(self, charset: Optional[str] = None) -> OutputSink:
        """Return a callable that mirrors raw process output into the log."""

        try:
            factory = codecs.getincrementaldecoder(charset or DEFAULT_CHARSET)
        except LookupError:
            factory = codecs.getincrementaldecoder(DEFAULT_CHARSET)
        decoder = factory(errors="replace")

        def _write(chunk: bytes) -> None:
            self.stream.write(decoder.decode(chunk))
            self.stream.flush()

        return _write


@dataclass
class JobContext:
    """What the hosting CI job provides to the publish step."""

    workspace: Path
    display_name: str = ""
    env: Dict[str, str] = field(default_factory=lambda: dict(os.environ))
    charset: Optional[str] = None
    job_name: str = "local"
    build_number: int = 0
    listener: BuildListener = field(default_factory=BuildListener)

    def __post_init__(self) -> None:
        self.workspace = Path(self.workspace)

    @property
    def invocation(self) -> JobInvocation:
        return JobInvocation(self.job_name, self.build_number)

    def macro_variables(self) -> Dict[str, str]:
        variables = dict(self.env)
        variables.setdefault("BUILD_NUMBER", str(self.build_number))
        variables.setdefault("JOB_NAME", self.job_name)
        variables.setdefault("WORKSPACE", str(self.workspace))
        return variables
