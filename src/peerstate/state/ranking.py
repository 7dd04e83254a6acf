"""Recency ranking of peer session records."""

from __future__ import annotations

from collections.abc import Iterable

from peerstate.state.store import Record

DEFAULT_PEER_LIMIT = 3


def top_peers(
    records: Iterable[Record],
    exclude_key: str | None,
    limit: int = DEFAULT_PEER_LIMIT,
) -> list[Record]:
    """Most recently modified records first, without ``exclude_key``, at most ``limit``.

    Ties on mtime are broken by session key so the order is stable.
    """
    if limit <= 0:
        return []
    peers = [r for r in records if r.session_key != exclude_key]
    peers.sort(key=lambda r: (-r.modified_at, r.session_key))
    return peers[:limit]
