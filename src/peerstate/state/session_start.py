"""Session-start hook entry point — inject own state and peer awareness.

Usage (agent session-start hook):
    python -m peerstate.state.session_start

Reads the hook payload from stdin ({"session_id", "cwd", "source"}), prints
the assembled context to stdout, or nothing. Must complete within a few
seconds; the host drops the output if it does not.

Exit status is 0 in every case except an unusable state root (69); an
invalid configuration is logged to stderr and produces no output.
"""

from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass
from typing import TextIO

from peerstate.config import PeerStateConfig, load_config, setup_logging
from peerstate.namespace import resolve_namespace
from peerstate.state.context import build_context, mode_for_signal
from peerstate.state.store import InvalidKeyError, RecordStore, StoreUnavailableError

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_UNAVAILABLE = 69  # sysexits EX_UNAVAILABLE


@dataclass
class HookInput:
    """Fields of the session-start payload this hook uses."""

    session_id: str | None = None
    cwd: str | None = None
    source: str | None = None


def parse_hook_input(raw: str) -> HookInput:
    """Parse the stdin payload. Empty or malformed input yields empty fields."""
    if not raw.strip():
        return HookInput()
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Session-start payload is not valid JSON, ignoring it")
        return HookInput()
    if not isinstance(data, dict):
        return HookInput()

    def _str(key: str) -> str | None:
        value = data.get(key)
        return value if isinstance(value, str) and value else None

    return HookInput(session_id=_str("session_id"), cwd=_str("cwd"), source=_str("source"))


def run(hook: HookInput, config: PeerStateConfig) -> str:
    """Assemble the session-start context for ``hook``.

    Raises StoreUnavailableError when the state root cannot be used.
    """
    if not hook.session_id:
        logger.debug("No session id, nothing to do")
        return ""

    namespace = resolve_namespace(hook.cwd, mode=config.store.namespace_mode)
    mode = mode_for_signal(hook.source)
    store = RecordStore(config.store.root)
    store.check_available()

    try:
        return build_context(
            store,
            namespace,
            hook.session_id,
            mode,
            peer_limit=config.store.peer_limit,
            max_age=config.store.max_age,
        )
    except InvalidKeyError as e:
        logger.warning("Ignoring session-start for unusable key: %s", e)
        return ""


def main(
    stdin: TextIO | None = None,
    stdout: TextIO | None = None,
    overrides: HookInput | None = None,
    config: PeerStateConfig | None = None,
) -> int:
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout
    if config is None:
        # Run directly as a module; `python -m peerstate` passes its own config
        try:
            config = load_config()
        except ValueError as e:
            setup_logging("WARNING")
            logger.error("Invalid peerstate configuration, skipping session context: %s", e)
            return EXIT_OK
        setup_logging(config.log_level)

    # Run by hand from a terminal: flags only, don't block on stdin
    hook = parse_hook_input("" if stdin.isatty() else stdin.read())
    if overrides:
        hook = HookInput(
            session_id=overrides.session_id or hook.session_id,
            cwd=overrides.cwd or hook.cwd,
            source=overrides.source or hook.source,
        )

    try:
        context = run(hook, config)
    except StoreUnavailableError as e:
        logger.error("Session state unavailable: %s", e)
        return EXIT_UNAVAILABLE

    if context:
        stdout.write(context + "\n")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
