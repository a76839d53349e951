from __future__ import annotations

import pytest

from dockerpublish.macros import EnvMacroExpander
from dockerpublish.models import ImageTag, MacroEvaluationError
from dockerpublish.tags import resolve_tags


def _render(tags):
    return [str(tag) for tag in tags]


def test_no_tag_expression_yields_bare_repo() -> None:
    assert _render(resolve_tags("acme/app", None, False)) == ["acme/app"]
    assert _render(resolve_tags("acme/app", "   ", False)) == ["acme/app"]


def test_tag_expression_keeps_order_and_appends_latest() -> None:
    tags = resolve_tags("acme/app", "a, b", False)
    assert _render(tags) == ["acme/app:a", "acme/app:b", "acme/app:latest"]


def test_skip_latest_drops_trailing_latest() -> None:
    assert _render(resolve_tags("acme/app", "1.0,2.0", True)) == ["acme/app:1.0", "acme/app:2.0"]


def test_blank_pieces_and_duplicates_are_kept() -> None:
    tags = resolve_tags("acme/app", "a,,a", True)
    assert _render(tags) == ["acme/app:a", "acme/app:", "acme/app:a"]


def test_image_tag_string_form() -> None:
    assert str(ImageTag("registry.local:5000/app")) == "registry.local:5000/app"
    assert str(ImageTag("registry.local:5000/app", "1.0")) == "registry.local:5000/app:1.0"
    assert ImageTag("app", "1") == ImageTag("app", "1")


def test_macros_are_expanded_per_piece() -> None:
    expander = EnvMacroExpander({"BUILD_NUMBER": "42", "OWNER": "acme"})
    tags = resolve_tags("${OWNER}/app", "$BUILD_NUMBER,build-${BUILD_NUMBER}", True, expander)
    assert _render(tags) == ["acme/app:42", "acme/app:build-42"]


def test_expansion_is_repeated_on_every_call() -> None:
    values = iter(["1", "2"])
    calls = []

    def expand(text):
        calls.append(text)
        return next(values) if text == "$N" else text

    assert _render(resolve_tags("app", "$N", True, expand)) == ["app:1"]
    assert _render(resolve_tags("app", "$N", True, expand)) == ["app:2"]


def test_unknown_macro_raises() -> None:
    expander = EnvMacroExpander({})
    with pytest.raises(MacroEvaluationError):
        resolve_tags("app", "${MISSING}", True, expander)


def test_dollar_escape() -> None:
    assert EnvMacroExpander({}).expand("cost$$") == "cost$"
    assert EnvMacroExpander({}).expand(None) is None
