from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

from .executor import DockerCommandExecutor
from .models import ImageLineage, JobInvocation, image_built_from_stdout
from .utils import dump_json

logger = logging.getLogger(__name__)


class FingerprintStore(Protocol):
    def add_from_facet(self, parent_id: Optional[str], image_id: str, job: JobInvocation) -> None: ...


def parse_inspect_response(stdout: str) -> Optional[ImageLineage]:
    """Read the image id and parent id from ``docker inspect`` output.

    Returns ``None`` when the output is not a non-empty JSON array whose first
    element carries string ``Id`` and ``Parent`` fields.
    """

    try:
        payload = json.loads(stdout)
    except (TypeError, ValueError):
        return None
    if not isinstance(payload, list) or not payload or not isinstance(payload[0], dict):
        return None
    image_id = payload[0].get("Id")
    parent_id = payload[0].get("Parent")
    if not isinstance(image_id, str) or not isinstance(parent_id, str):
        return None
    return ImageLineage(image_id=image_id, parent_id=parent_id or None)


class JsonFingerprintStore:
    """Fingerprint database kept in a single JSON document."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        return json.loads(self.path.read_text())

    def add_from_facet(self, parent_id: Optional[str], image_id: str, job: JobInvocation) -> None:
        records = self.load()
        record = records.setdefault(image_id, {"parent": None, "jobs": []})
        record["parent"] = parent_id
        if job.to_dict() not in record["jobs"]:
            record["jobs"].append(job.to_dict())
        dump_json(self.path, records)


class FingerprintRecorder:
    """Registers the lineage of built images with a fingerprint store."""

    def __init__(
        self,
        executor: DockerCommandExecutor,
        store: FingerprintStore,
        job: JobInvocation,
        enabled: bool = True,
    ) -> None:
        self.executor = executor
        self.store = store
        self.job = job
        self.enabled = enabled

    def record(self, image_id: str) -> None:
        if not self.enabled:
            return

        response = self.executor.execute(["inspect", image_id], log_stdout=False, log_stderr=True)
        if not response.succeeded:
            return
        logger.debug("Inspect image %s: %s", image_id, response.stdout)
        lineage = parse_inspect_response(response.stdout)
        if lineage is None:
            return

        try:
            self.store.add_from_facet(lineage.parent_id, lineage.image_id, self.job)
        except (OSError, ValueError) as exc:
            logger.warning("Unable to record fingerprint of %s: %s", lineage.image_id, exc)

    def record_from_stdout(self, stdout: str) -> None:
        if not self.enabled:
            return
        image_id = image_built_from_stdout(stdout)
        if image_id is None:
            return
        self.record(image_id)
