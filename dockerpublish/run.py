from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
from pathlib import Path

from .config import load_config, migrate_config
from .context import JobContext
from .fingerprints import JsonFingerprintStore
from .models import BuildInterrupted
from .pipeline import DockerPublishPipeline


def _interrupt(signum: int, frame: object) -> None:
    raise BuildInterrupted(f"Interrupted by signal {signum}")


def _load_pipeline(args: argparse.Namespace) -> DockerPublishPipeline:
    config = load_config(args.config)
    workspace = Path(args.workspace).resolve()
    context = JobContext(
        workspace=workspace,
        display_name=args.display_name or f"#{args.build_number}",
        job_name=args.job_name,
        build_number=args.build_number,
    )
    store = JsonFingerprintStore(args.fingerprints) if args.fingerprints else None
    return DockerPublishPipeline(config, context, fingerprint_store=store)


def cmd_run(args: argparse.Namespace) -> int:
    pipeline = _load_pipeline(args)
    previous = signal.signal(signal.SIGTERM, _interrupt)
    try:
        succeeded = pipeline.run()
    finally:
        signal.signal(signal.SIGTERM, previous)
    summary = pipeline.result.to_dict()
    summary["display_name"] = pipeline.context.display_name
    print(json.dumps(summary, indent=2))
    return 0 if succeeded else 1


def cmd_tags(args: argparse.Namespace) -> int:
    pipeline = _load_pipeline(args)
    for tag in pipeline.image_tags():
        print(tag)
    return 0


def cmd_migrate(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    print(json.dumps(migrate_config(config.to_dict()), indent=2, sort_keys=True))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Build, tag and publish docker images")
    parser.add_argument(
        "--config",
        default="docker-publish.yaml",
        help="Path to the step configuration (JSON, TOML or YAML).",
    )
    parser.add_argument(
        "--workspace",
        default=".",
        help="Job workspace; commands run here and it is the default build context.",
    )
    parser.add_argument("--display-name", default="", help="Current display name of the job run.")
    parser.add_argument("--job-name", default="local", help="Job the fingerprints are recorded against.")
    parser.add_argument("--build-number", type=int, default=0, help="Build number of the job run.")
    parser.add_argument(
        "--fingerprints",
        default=None,
        help="Fingerprint database file (defaults to .dockerpublish/fingerprints.json in the workspace).",
    )
    parser.add_argument("--verbose", action="store_true", help="Log debug diagnostics to stderr.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Build, tag and push the image")
    run_parser.set_defaults(func=cmd_run)

    tags_parser = subparsers.add_parser("tags", help="Print the image tags the step would use")
    tags_parser.set_defaults(func=cmd_tags)

    migrate_parser = subparsers.add_parser("migrate", help="Print the configuration in the current schema")
    migrate_parser.set_defaults(func=cmd_migrate)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
