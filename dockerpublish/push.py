from __future__ import annotations

import logging
from typing import Optional, Sequence

from .context import BuildListener
from .executor import DockerCommandExecutor
from .models import ImageTag

logger = logging.getLogger(__name__)


def parse_retry_count(value: object, listener: Optional[BuildListener] = None) -> int:
    """Number of extra push attempts; anything unusable counts as zero."""

    if value is None or (isinstance(value, str) and not value.strip()):
        return 0
    try:
        retries = int(str(value).strip())
    except ValueError:
        retries = -1
    if retries < 0:
        message = f"Ignoring push retry count {value!r}, it is not a non-negative number"
        logger.warning(message)
        if listener is not None:
            listener.info(message)
        return 0
    return retries


def push_with_retry(
    executor: DockerCommandExecutor,
    tags: Sequence[ImageTag],
    max_retries: int,
    listener: Optional[BuildListener] = None,
) -> bool:
    """Push every tag, retrying the whole batch when any push fails."""

    attempts = max(max_retries, 0) + 1
    for attempt in range(1, attempts + 1):
        if executor.execute_all(["push", str(tag)] for tag in tags):
            return True
        if attempt < attempts and listener is not None:
            listener.info(f"Push failed, retrying ({attempt}/{max_retries})")
    return False
