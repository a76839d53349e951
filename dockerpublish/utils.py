from __future__ import annotations

import json
import logging
import os
import selectors
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Mapping, Optional, Sequence

logger = logging.getLogger(__name__)

DEFAULT_CHARSET = "utf-8"

OutputSink = Callable[[bytes], None]


@dataclass
class ProcessOutput:
    returncode: int
    stdout: bytes
    stderr: bytes


def run_command(
    command: Sequence[str],
    *,
    cwd: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    stdout_sink: Optional[OutputSink] = None,
    stderr_sink: Optional[OutputSink] = None,
) -> ProcessOutput:
    """Run a subprocess, feeding its output to the sinks while buffering it.

    Both pipes are multiplexed on the calling thread. If the caller is
    interrupted while waiting, the child is killed before the exception
    propagates. ``OSError`` from starting the process is not caught here.
    """

    process_env = os.environ.copy()
    if env:
        process_env.update(env)

    process = subprocess.Popen(
        list(command),
        cwd=str(cwd) if cwd else None,
        env=process_env,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
    )
    buffers = {process.stdout: bytearray(), process.stderr: bytearray()}
    sinks = {process.stdout: stdout_sink, process.stderr: stderr_sink}
    try:
        with selectors.DefaultSelector() as selector:
            for stream in buffers:
                selector.register(stream, selectors.EVENT_READ)
            while selector.get_map():
                for key, _ in selector.select():
                    chunk = os.read(key.fd, 32768)
                    if not chunk:
                        selector.unregister(key.fileobj)
                        continue
                    buffers[key.fileobj].extend(chunk)
                    sink = sinks[key.fileobj]
                    if sink is not None:
                        sink(chunk)
        returncode = process.wait()
    finally:
        if process.poll() is None:
            process.kill()
            process.wait()
        process.stdout.close()
        process.stderr.close()

    return ProcessOutput(returncode, bytes(buffers[process.stdout]), bytes(buffers[process.stderr]))


def decode_output(data: bytes, charset: Optional[str] = None) -> str:
    """Decode captured output, returning an empty string when that is impossible."""

    try:
        return data.decode(charset or DEFAULT_CHARSET)
    except (LookupError, UnicodeDecodeError) as exc:
        logger.debug("Unable to decode command output as %s: %s", charset or DEFAULT_CHARSET, exc)
        return ""


def dump_json(path: str | Path, payload: Mapping[str, object], *, indent: int = 2) -> None:
    """Write structured JSON to disk with a trailing newline for readability."""

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=indent, sort_keys=True) + "\n")
