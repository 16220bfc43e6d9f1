"""
Per-store processing lock.

One marker file per store, `reprocessing_{dbName}.lock`, holding the owning
process id and a token unique to the acquisition. The marker doubles as the
cooperative stop signal: a run polls `is_held` between products and stops
cleanly once the marker is gone.

The lock is advisory. Two processes racing through `acquire` on a shared
filesystem are serialized by O_EXCL, but nothing prevents a process from
ignoring the marker.
"""

import errno
import logging
import os
import tempfile
import uuid
from typing import Dict, Optional, Set, Tuple

from catalog_enrichment.errors import LockAcquisitionError

logger = logging.getLogger(__name__)

# Tokens of the markers this process currently holds, across LockManager instances
_ACTIVE_TOKENS: Set[str] = set()


def _pid_alive(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Process exists but belongs to another user
        return True
    except OSError:
        return False
    return True


class LockManager:

    def __init__(self, lock_dir: Optional[str] = None):
        self.lock_dir = lock_dir or tempfile.gettempdir()
        self._tokens: Dict[str, str] = {}

    def lock_path(self, db_name: str) -> str:
        return os.path.join(self.lock_dir, f"reprocessing_{db_name}.lock")

    def _read_marker(self, db_name: str) -> Tuple[Optional[int], Optional[str]]:
        """(pid, token) written in the marker; (None, None) when missing or unreadable."""
        try:
            with open(self.lock_path(db_name), "r") as f:
                parts = f.read().split()
        except OSError:
            return None, None
        if not parts:
            return None, None
        try:
            pid = int(parts[0]) or None
        except ValueError:
            return None, None
        return pid, parts[1] if len(parts) > 1 else None

    def owner_pid(self, db_name: str) -> Optional[int]:
        """PID written in the marker, or None when missing/unreadable."""
        return self._read_marker(db_name)[0]

    def _held_elsewhere(self, pid: Optional[int], token: Optional[str]) -> bool:
        if pid is None:
            return False
        if pid == os.getpid():
            # Same pid: held only when a run in this process owns the marker
            return token is not None and token in _ACTIVE_TOKENS
        return _pid_alive(pid)

    def acquire(self, db_name: str) -> str:
        """
        Create the marker for this acquisition.

        A marker left behind by a dead process is replaced. Raises
        LockAcquisitionError when another live process, or another run in
        this process, owns the store, or when the marker cannot be written.
        """
        path = self.lock_path(db_name)
        for _ in range(2):
            try:
                os.makedirs(self.lock_dir, exist_ok=True)
                fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError:
                owner, token = self._read_marker(db_name)
                if self._held_elsewhere(owner, token):
                    raise LockAcquisitionError(
                        f"Store {db_name} is already being processed by pid {owner}",
                        db_name=db_name, lock_path=path,
                    )
                logger.warning(f"⚠️ Replacing stale lock for {db_name} (owner pid {owner})")
                try:
                    self._unlink(path)
                except OSError as e:
                    raise LockAcquisitionError(
                        f"Could not remove stale lock file {path}: {e}",
                        db_name=db_name, lock_path=path, original_error=e,
                    )
                continue
            except OSError as e:
                raise LockAcquisitionError(
                    f"Could not create lock file {path}: {e}",
                    db_name=db_name, lock_path=path, original_error=e,
                )

            token = uuid.uuid4().hex
            with os.fdopen(fd, "w") as f:
                f.write(f"{os.getpid()}\n{token}\n")
            self._tokens[db_name] = token
            _ACTIVE_TOKENS.add(token)
            logger.info(f"🔒 Acquired processing lock: {path}")
            return path

        raise LockAcquisitionError(f"Could not acquire lock file {path}", db_name=db_name, lock_path=path)

    def is_held(self, db_name: str) -> bool:
        return os.path.exists(self.lock_path(db_name))

    def release(self, db_name: str) -> None:
        """Remove our own marker; a marker written by another acquisition is left in place."""
        own_token = self._tokens.pop(db_name, None)
        if own_token is not None:
            _ACTIVE_TOKENS.discard(own_token)

        owner, token = self._read_marker(db_name)
        if owner is None:
            return
        if owner != os.getpid() or token != own_token:
            logger.warning(f"⚠️ Lock for {db_name} now belongs to another run (pid {owner}), leaving it in place")
            return
        try:
            self._unlink(self.lock_path(db_name))
            logger.info(f"🔓 Released processing lock for {db_name}")
        except OSError as e:
            logger.warning(f"⚠️ Could not remove lock for {db_name}: {e}")

    def request_stop(self, db_name: str) -> bool:
        """
        Ask a running job to stop by removing its marker.

        Returns False when no job was running ("already stopped").
        """
        try:
            os.unlink(self.lock_path(db_name))
        except FileNotFoundError:
            return False
        logger.info(f"🛑 Stop requested for {db_name}")
        return True

    @staticmethod
    def _unlink(path: str) -> None:
        try:
            os.unlink(path)
        except OSError as e:
            if e.errno != errno.ENOENT:
                raise
