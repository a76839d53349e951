from __future__ import annotations

from typing import Callable, List, Optional

from .models import ImageTag

Expander = Callable[[Optional[str]], Optional[str]]


def defined(value: Optional[str]) -> bool:
    return value is not None and value.strip() != ""


def _identity(value: Optional[str]) -> Optional[str]:
    return value


def resolve_tags(
    repo_name: str,
    tag_expression: Optional[str],
    skip_latest: bool,
    expand: Expander = _identity,
) -> List[ImageTag]:
    """Turn a repository name and a comma separated tag list into image tags.

    Without a tag expression the bare repository name is the only tag and no
    ``latest`` tag is added. Empty pieces such as the middle of ``"a,,b"`` are
    kept and render as ``repo:``; docker rejects them when they are used.
    Every value goes through ``expand`` on each call, so callers should resolve
    tags again wherever they need them instead of caching the list.
    """

    if not defined(tag_expression):
        return [ImageTag(expand(repo_name))]

    tags: List[ImageTag] = []
    for piece in expand(tag_expression).strip().split(","):
        tags.append(ImageTag(expand(repo_name), expand(piece.strip())))
    if not skip_latest:
        tags.append(ImageTag(expand(repo_name), "latest"))
    return tags
