"""
packagebug CLI entrypoint.

Subcommands:
- `run`: start the queue-draining dispatcher (SIGINT/SIGTERM stop it gracefully)
- `rate`: print the current GitHub rate budget
- `fetch`: refresh one package synchronously (useful for debugging a single repo)
- `init-db`: create the token table
"""

from __future__ import annotations

import argparse
import json
import logging
import signal
from typing import Any

from pydantic import ValidationError

from packagebug.config.settings import Settings, get_settings
from packagebug.core.logging import configure_logging
from packagebug.domain.models import WorkItem
from packagebug.errors import PackageBugError
from packagebug.ingestion.github_client import GithubClient
from packagebug.ingestion.rate_budget import RateBudget
from packagebug.queue.sqs import SqsQueue
from packagebug.storage.token_store import TokenStore
from packagebug.worker.dispatcher import Dispatcher
from packagebug.worker.fetch_worker import FetchWorker

logger = logging.getLogger(__name__)


def _apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    """Apply runtime CLI overrides (not persisted).

    The merged values are validated again, so out-of-range overrides raise
    `pydantic.ValidationError` just like bad values in YAML or env.
    """
    data = settings.model_dump()
    changed = False
    if getattr(args, "wait_seconds", None) is not None:
        data["queue"]["wait_seconds"] = int(args.wait_seconds)
        changed = True
    if getattr(args, "max_concurrency", None) is not None:
        data["worker"]["max_concurrency"] = int(args.max_concurrency)
        changed = True
    return Settings.model_validate(data) if changed else settings


def build_dispatcher(settings: Settings) -> Dispatcher:
    """Wire queue, rate budget, token store and worker from settings.

    Startup fails fast (raises) when the queue or the token store is unreachable or
    unconfigured.
    """
    store = TokenStore.from_settings(settings)
    store.ping()
    client = GithubClient(settings)
    return Dispatcher(
        SqsQueue.from_settings(settings),
        RateBudget(client),
        FetchWorker(client, store),
        max_concurrency=settings.worker.max_concurrency,
        wait_seconds=settings.queue.wait_seconds,
    )


def _cmd_run(args: argparse.Namespace) -> int:
    try:
        settings = _apply_overrides(get_settings(), args)
    except ValidationError as exc:
        print(f"invalid run options: {exc}")
        return 2
    dispatcher = build_dispatcher(settings)

    def _handle_signal(signum: int, _frame: Any) -> None:
        logger.info("received signal %s; stopping after in-flight fetches", signum)
        dispatcher.stop()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    logger.info("service started ...")
    dispatcher.run()
    return 0


def _cmd_rate(_: argparse.Namespace) -> int:
    settings = get_settings()
    try:
        state = RateBudget(GithubClient(settings)).check()
    except PackageBugError as exc:
        print(f"rate check failed: {exc}")
        return 1
    print(json.dumps({"remaining": state.remaining, "reset_at": state.reset_at}))
    return 0


def _parse_path(value: str) -> WorkItem:
    parts = value.strip("/").split("/")
    if len(parts) != 3:
        raise argparse.ArgumentTypeError(f"expected HOST/OWNER/REPO, got {value!r}")
    host, owner, repo = parts
    return WorkItem(id="cli", host=host, owner=owner, repo=repo)


def _cmd_fetch(args: argparse.Namespace) -> int:
    settings = get_settings()
    worker = FetchWorker(GithubClient(settings), TokenStore.from_settings(settings))
    try:
        outcome = worker.run(args.package)
    except PackageBugError as exc:
        print(f"{args.package.path}: failed: {exc}")
        return 1
    print(f"{args.package.path}: {outcome.value}")
    return 0


def _cmd_init_db(_: argparse.Namespace) -> int:
    settings = get_settings()
    TokenStore.from_settings(settings).create_schema()
    print(f"table {settings.store.table!r} ready")
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the packagebug CLI."""
    parser = argparse.ArgumentParser(prog="packagebug")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Drain the package queue and refresh bug issues.")
    run.add_argument("--max-concurrency", type=int, default=None, help="Override worker.max_concurrency.")
    run.add_argument("--wait-seconds", type=int, default=None, help="Override queue.wait_seconds (0..20).")
    run.set_defaults(func=_cmd_run)

    rate = sub.add_parser("rate", help="Print the current GitHub rate budget.")
    rate.set_defaults(func=_cmd_rate)

    fetch = sub.add_parser("fetch", help="Refresh the bug issues of one package.")
    fetch.add_argument("package", type=_parse_path, help="Package path, e.g. github.com/pyk/byten")
    fetch.set_defaults(func=_cmd_fetch)

    init_db = sub.add_parser("init-db", help="Create the token table if it does not exist.")
    init_db.set_defaults(func=_cmd_init_db)
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint callable used by `python -m packagebug.cli`."""
    configure_logging()
    parser = build_parser()
    args = parser.parse_args(argv)
    func: Any = getattr(args, "func")
    return int(func(args))


if __name__ == "__main__":
    raise SystemExit(main())
