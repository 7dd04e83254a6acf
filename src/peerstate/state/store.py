"""Session state store — one markdown record per (namespace, session key).

Every session writes only its own file, so concurrent writers never contend
and nothing needs a lock. Readers tolerate files appearing or vanishing while
a namespace is being scanned. Records carry no timestamp of their own: the
file mtime is both the recency signal and the retention clock.
"""

from __future__ import annotations

import errno
import hashlib
import logging
import os
import tempfile
import time
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

logger = logging.getLogger(__name__)

RECORD_SUFFIX = ".md"
TEMP_PREFIX = ".tmp-"
DEFAULT_MAX_AGE = timedelta(hours=48)

_FORBIDDEN_CHARS = ("/", "\\", "\x00")
# Longest single path component on common filesystems (NAME_MAX)
_MAX_NAME_BYTES = 255
MAX_KEY_BYTES = _MAX_NAME_BYTES - len(RECORD_SUFFIX)


class StoreError(Exception):
    """Base class for session store errors."""


class StoreUnavailableError(StoreError):
    """The storage root (or a namespace directory) cannot be read or written."""


class InvalidKeyError(StoreError, ValueError):
    """A namespace or session key would address a path outside its own slot."""


@dataclass(frozen=True)
class Record:
    """One session's current state document."""

    namespace: str
    session_key: str
    body: str
    modified_at: float

    def age_seconds(self, now: float | None = None) -> float:
        return (time.time() if now is None else now) - self.modified_at


def _validate(kind: str, value: str, *, allow_dot_prefix: bool, max_bytes: int) -> str:
    if not isinstance(value, str) or not value:
        raise InvalidKeyError(f"{kind} must be a non-empty string")
    if value in (".", ".."):
        raise InvalidKeyError(f"{kind} {value!r} is not allowed")
    if any(c in value for c in _FORBIDDEN_CHARS):
        raise InvalidKeyError(f"{kind} {value!r} contains a path separator or NUL")
    if len(value.encode("utf-8", errors="surrogatepass")) > max_bytes:
        raise InvalidKeyError(f"{kind} is longer than {max_bytes} bytes")
    if not allow_dot_prefix and value.startswith("."):
        raise InvalidKeyError(f"{kind} {value!r} must not start with '.'")
    return value


def _validate_key(session_key: str) -> str:
    return _validate("session key", session_key, allow_dot_prefix=False, max_bytes=MAX_KEY_BYTES)


def _key_digest(session_key: str) -> str:
    # Temp names stay short whatever the key length
    return hashlib.sha256(session_key.encode("utf-8", errors="surrogatepass")).hexdigest()[:8]


class RecordStore:
    """Filesystem-backed keyed store: ``root / namespace / <session_key>.md``."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    # ── Paths ─────────────────────────────────────────────────

    def _namespace_dir(self, namespace: str) -> Path:
        return self.root / _validate(
            "namespace", namespace, allow_dot_prefix=True, max_bytes=_MAX_NAME_BYTES
        )

    def _record_path(self, namespace: str, session_key: str) -> Path:
        key = _validate_key(session_key)
        return self._namespace_dir(namespace) / f"{key}{RECORD_SUFFIX}"

    def check_available(self) -> None:
        """Raise StoreUnavailableError if the root exists but cannot be used.

        A root that does not exist yet is fine: the first put creates it.
        """
        try:
            self.root.stat()
        except FileNotFoundError:
            return
        except OSError as e:
            raise StoreUnavailableError(f"State root {self.root} is not accessible: {e}") from e
        if not self.root.is_dir():
            raise StoreUnavailableError(f"State root {self.root} is not a directory")
        if not os.access(self.root, os.R_OK | os.W_OK | os.X_OK):
            raise StoreUnavailableError(f"State root {self.root} is not readable/writable")

    # ── Read / write primitives ───────────────────────────────

    def _read(self, namespace: str, session_key: str, path: Path) -> Record:
        """Read body and mtime from the same open file handle."""
        with open(path, "rb") as f:
            data = f.read()
            mtime = os.fstat(f.fileno()).st_mtime
        return Record(
            namespace=namespace,
            session_key=session_key,
            body=data.decode("utf-8", errors="replace"),
            modified_at=mtime,
        )

    def put(self, namespace: str, session_key: str, body: str) -> Record:
        """Create or overwrite a session's record (atomic temp file + rename)."""
        path = self._record_path(namespace, session_key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(
                dir=str(path.parent),
                prefix=f"{TEMP_PREFIX}{_key_digest(session_key)}-",
                suffix=RECORD_SUFFIX,
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
                    handle.write(body)
                os.replace(temp_path, path)
            except Exception:
                try:
                    os.unlink(temp_path)
                except OSError:
                    pass
                raise
            mtime = path.stat().st_mtime
        except OSError as e:
            raise StoreUnavailableError(f"Cannot write {path}: {e}") from e

        logger.info("Wrote session state %s/%s (%d chars)", namespace, session_key, len(body))
        return Record(namespace=namespace, session_key=session_key, body=body, modified_at=mtime)

    def get(self, namespace: str, session_key: str) -> Record | None:
        """Read one record. A missing record is a normal outcome, not an error."""
        path = self._record_path(namespace, session_key)
        try:
            return self._read(namespace, session_key, path)
        except (FileNotFoundError, NotADirectoryError):
            return None
        except IsADirectoryError:
            logger.warning("Session state path %s is a directory, ignoring", path)
            return None
        except PermissionError as e:
            # Unreadable namespace directory is a store problem; one unreadable file is not
            if not os.access(path.parent, os.R_OK | os.X_OK):
                raise StoreUnavailableError(f"Cannot read {path}: {e}") from e
            logger.warning("Skipping unreadable session state %s: %s", path, e)
            return None
        except OSError as e:
            if e.errno == errno.ENAMETOOLONG:
                logger.warning("Skipping session state %s: %s", path, e)
                return None
            raise StoreUnavailableError(f"Cannot read {path}: {e}") from e

    def list(self, namespace: str) -> list[Record]:
        """All records currently present in ``namespace``, in no particular order.

        Files that disappear between listing and reading are skipped, as are
        individual files that cannot be read.
        """
        records: list[Record] = []
        for name, path in self._scan(namespace):
            if name.startswith(".") or not name.endswith(RECORD_SUFFIX):
                continue
            session_key = name[: -len(RECORD_SUFFIX)]
            try:
                _validate_key(session_key)
            except InvalidKeyError:
                continue
            try:
                records.append(self._read(namespace, session_key, Path(path)))
            except FileNotFoundError:
                logger.debug("Session state %s vanished during scan", path)
            except OSError as e:
                logger.warning("Skipping unreadable session state %s: %s", path, e)
        return records

    def delete(self, namespace: str, session_key: str) -> bool:
        """Remove a record. Returns False if it was already gone."""
        path = self._record_path(namespace, session_key)
        try:
            path.unlink()
        except (FileNotFoundError, NotADirectoryError):
            return False
        except OSError as e:
            raise StoreUnavailableError(f"Cannot delete {path}: {e}") from e
        logger.info("Deleted session state %s/%s", namespace, session_key)
        return True

    def _scan(self, namespace: str) -> list[tuple[str, str]]:
        """(name, path) of every entry in the namespace directory."""
        ns_dir = self._namespace_dir(namespace)
        try:
            with os.scandir(ns_dir) as it:
                return [(entry.name, entry.path) for entry in it]
        except FileNotFoundError:
            return []
        except OSError as e:
            raise StoreUnavailableError(f"Cannot list {ns_dir}: {e}") from e

    # ── Retention ─────────────────────────────────────────────

    def reap(
        self,
        namespace: str,
        max_age: timedelta = DEFAULT_MAX_AGE,
        now: float | None = None,
    ) -> int:
        """Delete records (and abandoned temp files) older than ``max_age``.

        Returns the number of records removed. Failures on individual files
        are logged and skipped; only an unreadable namespace directory raises.
        Safe to run from many sessions at once.
        """
        cutoff = (time.time() if now is None else now) - max_age.total_seconds()
        removed = 0
        for name, path in self._scan(namespace):
            if not name.endswith(RECORD_SUFFIX):
                continue
            is_temp = name.startswith(TEMP_PREFIX)
            if name.startswith(".") and not is_temp:
                continue
            try:
                if os.stat(path).st_mtime >= cutoff:
                    continue
                os.unlink(path)
            except FileNotFoundError:
                # Reaped concurrently by another session
                continue
            except OSError as e:
                logger.warning("Could not reap %s: %s", path, e)
                continue
            if is_temp:
                logger.debug("Removed abandoned temp file %s", path)
            else:
                removed += 1

        if removed:
            logger.info("Reaped %d stale session state(s) in %s", removed, namespace)
        return removed
