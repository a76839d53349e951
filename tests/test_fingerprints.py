from __future__ import annotations

import json
from pathlib import Path

from dockerpublish.fingerprints import FingerprintRecorder, JsonFingerprintStore, parse_inspect_response
from dockerpublish.models import BuildOutcome, ImageLineage, JobInvocation

from conftest import FakeExecutor, MemoryFingerprintStore


def test_parse_inspect_response() -> None:
    lineage = parse_inspect_response('[{"Id": "sha256:aaa", "Parent": "sha256:bbb", "Size": 1}]')
    assert lineage == ImageLineage("sha256:aaa", "sha256:bbb")


def test_parse_inspect_response_empty_parent() -> None:
    assert parse_inspect_response('[{"Id": "sha256:aaa", "Parent": ""}]') == ImageLineage("sha256:aaa", None)


def test_parse_inspect_response_rejects_unexpected_shapes() -> None:
    assert parse_inspect_response("") is None
    assert parse_inspect_response("not json") is None
    assert parse_inspect_response("[]") is None
    assert parse_inspect_response('{"Id": "x", "Parent": ""}') is None
    assert parse_inspect_response('[{"Id": "x"}]') is None
    assert parse_inspect_response('[{"Id": 1, "Parent": ""}]') is None


def test_failed_inspect_is_ignored() -> None:
    executor = FakeExecutor(lambda args: BuildOutcome(succeeded=False))
    store = MemoryFingerprintStore()
    FingerprintRecorder(executor, store, JobInvocation("app", 1)).record("abc123def456")
    assert executor.commands == [["inspect", "abc123def456"]]
    assert store.records == []


def test_unparsable_inspect_is_ignored() -> None:
    executor = FakeExecutor(lambda args: BuildOutcome(stdout="garbage"))
    store = MemoryFingerprintStore()
    FingerprintRecorder(executor, store, JobInvocation("app", 1)).record("abc123def456")
    assert store.records == []


def test_record_from_stdout_without_image_does_nothing() -> None:
    executor = FakeExecutor()
    FingerprintRecorder(executor, MemoryFingerprintStore(), JobInvocation("app", 1)).record_from_stdout("done")
    assert executor.commands == []


def test_json_store_accumulates_jobs(tmp_path: Path) -> None:
    store = JsonFingerprintStore(tmp_path / "db" / "fingerprints.json")
    store.add_from_facet("sha256:p", "sha256:i", JobInvocation("app", 1))
    store.add_from_facet("sha256:p", "sha256:i", JobInvocation("app", 2))
    store.add_from_facet("sha256:p", "sha256:i", JobInvocation("app", 2))

    data = json.loads((tmp_path / "db" / "fingerprints.json").read_text())
    assert data == {
        "sha256:i": {
            "parent": "sha256:p",
            "jobs": [{"job": "app", "build": 1}, {"job": "app", "build": 2}],
        }
    }


def test_unwritable_store_is_ignored(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("")
    executor = FakeExecutor(lambda args: BuildOutcome(stdout='[{"Id": "sha256:aaa", "Parent": ""}]'))
    store = JsonFingerprintStore(blocker / "fingerprints.json")

    FingerprintRecorder(executor, store, JobInvocation("app", 1)).record("abc123def456")
    assert executor.commands == [["inspect", "abc123def456"]]
