"""Entry point: python -m peerstate <command>

- session-start: Hook mode — read the host payload on stdin, print context
- put:           Write this session's state record (from --file or stdin)
- show:          Print one session's state record
- list:          List session records in the project, most recent first
- reap:          Delete records past the retention window
- namespace:     Print the namespace the working directory maps to
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from collections.abc import Sequence
from pathlib import Path

from peerstate.config import PeerStateConfig, load_config, setup_logging
from peerstate.namespace import resolve_namespace
from peerstate.state import session_start
from peerstate.state.context import format_age
from peerstate.state.fields import extract_activity, extract_branch
from peerstate.state.ranking import top_peers
from peerstate.state.store import InvalidKeyError, RecordStore, StoreUnavailableError

logger = logging.getLogger("peerstate")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="peerstate",
        description="Per-session working state shared between concurrent agent sessions.",
    )
    parser.add_argument("--config", type=Path, default=None, help="Path to peerstate.toml.")
    sub = parser.add_subparsers(dest="command", metavar="command")

    start = sub.add_parser("session-start", help="Session-start hook (payload on stdin).")
    start.add_argument("--session-id", default=None)
    start.add_argument("--cwd", default=None)
    start.add_argument("--source", default=None, help="startup | resume | clear | compact")

    put = sub.add_parser("put", help="Write this session's state record.")
    put.add_argument("--session-id", required=True)
    put.add_argument("--cwd", default=None)
    put.add_argument("--file", type=Path, default=None, help="Read body from file (default: stdin).")

    show = sub.add_parser("show", help="Print one session's state record.")
    show.add_argument("--session-id", required=True)
    show.add_argument("--cwd", default=None)

    ls = sub.add_parser("list", help="List session records, most recent first.")
    ls.add_argument("--cwd", default=None)

    reap = sub.add_parser("reap", help="Delete records past the retention window.")
    reap.add_argument("--cwd", default=None)

    ns = sub.add_parser("namespace", help="Print the namespace for a directory.")
    ns.add_argument("--cwd", default=None)
    return parser


def _namespace(config: PeerStateConfig, cwd: str | None) -> str:
    return resolve_namespace(cwd, mode=config.store.namespace_mode)


def _cmd_put(config: PeerStateConfig, args: argparse.Namespace) -> int:
    body = args.file.read_text(encoding="utf-8") if args.file else sys.stdin.read()
    store = RecordStore(config.store.root)
    record = store.put(_namespace(config, args.cwd), args.session_id, body)
    print(f"{record.namespace}/{record.session_key} ({len(body)} chars)")
    return 0


def _cmd_show(config: PeerStateConfig, args: argparse.Namespace) -> int:
    store = RecordStore(config.store.root)
    record = store.get(_namespace(config, args.cwd), args.session_id)
    if record is None:
        return 1
    print(record.body, end="" if record.body.endswith("\n") else "\n")
    return 0


def _cmd_list(config: PeerStateConfig, args: argparse.Namespace) -> int:
    store = RecordStore(config.store.root)
    namespace = _namespace(config, args.cwd)
    records = store.list(namespace)
    now = time.time()
    for record in top_peers(records, exclude_key=None, limit=len(records)):
        age = format_age(record.age_seconds(now) / 60)
        activity = extract_activity(record.body) or "-"
        branch = extract_branch(record.body) or "-"
        print(f"{record.session_key}\t{age}\t{branch}\t{activity}")
    return 0


def _cmd_reap(config: PeerStateConfig, args: argparse.Namespace) -> int:
    store = RecordStore(config.store.root)
    removed = store.reap(_namespace(config, args.cwd), max_age=config.store.max_age)
    print(removed)
    return 0


def _cmd_namespace(config: PeerStateConfig, args: argparse.Namespace) -> int:
    print(_namespace(config, args.cwd))
    return 0


def _cmd_session_start(config: PeerStateConfig, args: argparse.Namespace) -> int:
    overrides = session_start.HookInput(
        session_id=args.session_id, cwd=args.cwd, source=args.source
    )
    return session_start.main(overrides=overrides, config=config)


_COMMANDS = {
    "session-start": _cmd_session_start,
    "put": _cmd_put,
    "show": _cmd_show,
    "list": _cmd_list,
    "reap": _cmd_reap,
    "namespace": _cmd_namespace,
}


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    if args.command not in _COMMANDS:
        parser.print_usage()
        return 1

    try:
        config = load_config(args.config)
    except ValueError as e:
        # TOMLDecodeError is a ValueError too
        setup_logging("WARNING")
        logger.error("Invalid peerstate configuration: %s", e)
        # session-start exits 0 short of an unusable state root
        return session_start.EXIT_OK if args.command == "session-start" else 1
    setup_logging(config.log_level)

    try:
        return _COMMANDS[args.command](config, args)
    except StoreUnavailableError as e:
        logger.error("Session state unavailable: %s", e)
        return session_start.EXIT_UNAVAILABLE
    except InvalidKeyError as e:
        print(f"Invalid key: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
