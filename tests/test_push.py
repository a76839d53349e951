from __future__ import annotations

import io

from dockerpublish.context import BuildListener
from dockerpublish.models import BuildOutcome
from dockerpublish.push import parse_retry_count, push_with_retry
from dockerpublish.tags import resolve_tags

from conftest import FakeExecutor


def test_push_every_tag_in_order() -> None:
    executor = FakeExecutor()
    assert push_with_retry(executor, resolve_tags("acme/app", "1.0", False), 0)
    assert executor.commands == [["push", "acme/app:1.0"], ["push", "acme/app:latest"]]


def test_push_succeeds_on_third_attempt() -> None:
    failures = {"left": 2}

    def respond(args):
        if args[1].endswith(":latest") and failures["left"]:
            failures["left"] -= 1
            return BuildOutcome(succeeded=False)
        return BuildOutcome()

    executor = FakeExecutor(respond)
    console = io.StringIO()
    tags = resolve_tags("acme/app", "1.0", False)
    assert push_with_retry(executor, tags, 2, BuildListener(console))
    assert executor.commands.count(["push", "acme/app:1.0"]) == 3
    assert executor.commands.count(["push", "acme/app:latest"]) == 3
    assert "retrying (2/2)" in console.getvalue()


def test_push_gives_up_after_retries() -> None:
    executor = FakeExecutor(lambda args: BuildOutcome(succeeded=False))
    tags = resolve_tags("acme/app", "1.0", False)
    assert not push_with_retry(executor, tags, 2)
    # the first push fails, so each batch stops before pushing latest
    assert executor.commands == [["push", "acme/app:1.0"]] * 3


def test_no_retries_means_single_attempt() -> None:
    executor = FakeExecutor(lambda args: BuildOutcome(succeeded=False))
    assert not push_with_retry(executor, resolve_tags("acme/app", None, False), 0)
    assert executor.commands == [["push", "acme/app"]]


def test_parse_retry_count() -> None:
    assert parse_retry_count(3) == 3
    assert parse_retry_count(" 2 ") == 2
    assert parse_retry_count(None) == 0
    assert parse_retry_count("") == 0


def test_parse_retry_count_rejects_garbage() -> None:
    console = io.StringIO()
    assert parse_retry_count("three", BuildListener(console)) == 0
    assert parse_retry_count("-1") == 0
    assert "Ignoring push retry count 'three'" in console.getvalue()
