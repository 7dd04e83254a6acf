"""Configuration loading from environment variables and peerstate.toml."""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field
from datetime import timedelta

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pathlib import Path

_DEFAULT_STATE_DIR = Path.home() / ".peerstate" / "sessions"
_CONFIG_FILENAME = "peerstate.toml"

NAMESPACE_MODES = ("basename", "hashed")


@dataclass
class StoreConfig:
    """Session state store configuration."""

    root: Path = _DEFAULT_STATE_DIR
    ttl_hours: float = 48
    peer_limit: int = 3
    namespace_mode: str = "basename"

    @property
    def max_age(self) -> timedelta:
        return timedelta(hours=self.ttl_hours)


@dataclass
class PeerStateConfig:
    """Top-level peerstate configuration."""

    store: StoreConfig = field(default_factory=StoreConfig)
    log_level: str = "WARNING"


def load_config(config_path: Path | None = None) -> PeerStateConfig:
    """Load configuration from environment variables and optional peerstate.toml.

    Priority: environment variables > peerstate.toml > defaults.
    """
    file_data: dict = {}
    if config_path and config_path.exists():
        file_data = tomllib.loads(config_path.read_text())
    else:
        # Search current dir and ~/.peerstate/
        for candidate in [
            Path.cwd() / _CONFIG_FILENAME,
            Path.home() / ".peerstate" / _CONFIG_FILENAME,
        ]:
            if candidate.exists():
                file_data = tomllib.loads(candidate.read_text())
                break

    store_data = file_data.get("store", {})

    namespace_mode = os.getenv(
        "PEERSTATE_NAMESPACE_MODE", store_data.get("namespace_mode", "basename")
    )
    if namespace_mode not in NAMESPACE_MODES:
        raise ValueError(
            f"namespace_mode must be one of {', '.join(NAMESPACE_MODES)}, got {namespace_mode!r}"
        )

    root = os.getenv("PEERSTATE_DIR", store_data.get("root", str(_DEFAULT_STATE_DIR)))

    config = PeerStateConfig(
        store=StoreConfig(
            root=Path(root).expanduser(),
            ttl_hours=float(os.getenv("PEERSTATE_TTL_HOURS", store_data.get("ttl_hours", 48))),
            peer_limit=int(os.getenv("PEERSTATE_PEER_LIMIT", store_data.get("peer_limit", 3))),
            namespace_mode=namespace_mode,
        ),
        log_level=os.getenv("PEERSTATE_LOG_LEVEL", file_data.get("log_level", "WARNING")),
    )
    return config


def setup_logging(level: str) -> None:
    # stdout carries hook output; diagnostics go to stderr only
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )
