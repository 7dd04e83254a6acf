"""Session-start context assembly: own state recovery + peer awareness.

Two modes, picked once per invocation from the session-start ``source``:

- RECOVERY  (``compact``): the session lost its context window. Emit only its
  own record so it can pick up where it left off; peers are never read.
- AWARENESS (everything else): own record if present, plus a short summary of
  the most recent other sessions in the same project.

Nothing to show means an empty string, never a bare heading.
"""

from __future__ import annotations

import enum
import logging
import time
from datetime import timedelta

from peerstate.state.fields import extract_activity, extract_branch
from peerstate.state.ranking import DEFAULT_PEER_LIMIT, top_peers
from peerstate.state.store import DEFAULT_MAX_AGE, RecordStore, StoreError

logger = logging.getLogger(__name__)

RESUME_HEADING = "## Resuming session state"
PEERS_HEADING = "## Other active sessions ({namespace})"
NO_ACTIVITY = "(no activity noted)"
SHORT_KEY_LENGTH = 8


class Mode(enum.Enum):
    RECOVERY = "recovery"
    AWARENESS = "awareness"


# Session-start sources as sent by the agent host
_SIGNAL_MODES = {
    "compact": Mode.RECOVERY,
    "startup": Mode.AWARENESS,
    "resume": Mode.AWARENESS,
    "clear": Mode.AWARENESS,
}


def mode_for_signal(signal: str | None) -> Mode:
    """Map a session-start source to a mode. Unknown values mean AWARENESS."""
    if not isinstance(signal, str):
        return Mode.AWARENESS
    return _SIGNAL_MODES.get(signal.strip().lower(), Mode.AWARENESS)


def format_age(elapsed_minutes: float) -> str:
    """'45 min ago' under an hour, whole hours ('2h ago') after that."""
    minutes = max(0, int(elapsed_minutes // 1))
    if minutes < 60:
        return f"{minutes} min ago"
    return f"{minutes // 60}h ago"


def _short_key(session_key: str) -> str:
    return session_key[:SHORT_KEY_LENGTH]


def _format_peer(body: str, session_key: str, elapsed_minutes: float) -> str:
    activity = extract_activity(body) or NO_ACTIVITY
    branch = extract_branch(body)
    line = f"- {format_age(elapsed_minutes)} · {activity}"
    if branch:
        line += f" [branch: {branch}]"
    return line + f" (session {_short_key(session_key)})"


def build_context(
    store: RecordStore,
    namespace: str,
    session_key: str,
    mode: Mode,
    *,
    peer_limit: int = DEFAULT_PEER_LIMIT,
    max_age: timedelta = DEFAULT_MAX_AGE,
    now: float | None = None,
) -> str:
    """Compose the text block injected at session start ("" if nothing to show).

    StoreUnavailableError from reading own state or listing peers propagates;
    a failed reap does not.
    """
    now = time.time() if now is None else now
    parts: list[str] = []

    try:
        store.reap(namespace, max_age=max_age, now=now)
    except StoreError as e:
        logger.warning("Reap of %s failed, continuing: %s", namespace, e)

    own = store.get(namespace, session_key)
    if own is not None and own.body.strip():
        parts.append(f"{RESUME_HEADING}\n\n{own.body.strip()}")

    if mode is Mode.AWARENESS:
        peers = top_peers(store.list(namespace), exclude_key=session_key, limit=peer_limit)
        logger.debug("%d peer session(s) in %s", len(peers), namespace)
        if peers:
            lines = [PEERS_HEADING.format(namespace=namespace), ""]
            for peer in peers:
                elapsed = (now - peer.modified_at) / 60
                lines.append(_format_peer(peer.body, peer.session_key, elapsed))
            parts.append("\n".join(lines))

    return "\n\n".join(parts)
