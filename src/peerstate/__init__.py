"""peerstate — per-session working state shared across concurrent agent sessions."""

__version__ = "0.1.0"
