"""Disk-backed storage for batches that could not be delivered.

One batch per file, newline-separated envelopes, in a per-key directory
under the temp root::

    <temp_root>/appInsights-python<ikey>/<time_ns:020d>-<seq:06d>.ai.json

File names sort lexically in write order, which is the order batches are
resubmitted in. A directory-wide byte cap is enforced at write time;
batches that would exceed it are dropped, never evicting older files.
"""

import itertools
import os
import tempfile
import threading
import time
from collections.abc import Callable
from pathlib import Path

import structlog

from appinsights.channel.access import DirectoryAccessControl
from appinsights.contracts.config.defaults import INTERNAL_DEFAULTS

logger = structlog.get_logger(__name__)

# Returns True when every line was accepted downstream
Resubmitter = Callable[[list[str]], bool]


class DiskRetryStore:
    """Persists and recovers undelivered batches for one instrumentation key.

    Thread Safety:
        persist() is called from the sender worker thread and, on the crash
        path, from an application thread. Writes are serialized by a lock so
        the size check and the write are atomic with respect to each other.
        recover_and_resubmit() runs on the sender worker only.

    Example:
        store = DiskRetryStore(ikey, max_bytes=50 * 1024 * 1024)
        store.persist("\\n".join(batch))
        store.recover_and_resubmit(sender.resubmit)
    """

    def __init__(
        self,
        instrumentation_key: str,
        *,
        max_bytes: int,
        temp_root: Path | None = None,
        access_control: DirectoryAccessControl | None = None,
    ) -> None:
        """Initialize the store. Nothing touches the filesystem until the first persist().

        Args:
            instrumentation_key: Encoded in the directory name.
            max_bytes: Directory-wide size cap.
            temp_root: Parent directory. Defaults to the OS temp dir.
            access_control: Provisioning registry. Defaults to the
                process-wide one.
        """
        prefix = str(INTERNAL_DEFAULTS["disk"]["tempdir_prefix"])
        root = temp_root if temp_root is not None else Path(tempfile.gettempdir())
        self._instrumentation_key = instrumentation_key
        self._directory = root / f"{prefix}{instrumentation_key}"
        self._suffix = str(INTERNAL_DEFAULTS["disk"]["file_suffix"])
        self._max_bytes = max_bytes
        self._access_control = access_control
        self._lock = threading.Lock()
        self._sequence = itertools.count()

    @property
    def directory(self) -> Path:
        return self._directory

    @property
    def max_bytes(self) -> int:
        return self._max_bytes

    def _access(self) -> DirectoryAccessControl:
        return self._access_control if self._access_control is not None else DirectoryAccessControl.shared()

    def persist(self, batch_text: str) -> bool:
        """Write one batch to a new file.

        Never raises. Every refusal is logged as a warning.

        Returns:
            True if the batch is on disk, False if it was dropped (empty,
            access control failed, cap exceeded, or I/O error).
        """
        if not batch_text:
            return False
        payload = batch_text.encode("utf-8")

        with self._lock:
            try:
                self._directory.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                logger.warning("Cannot create retry directory; batch dropped", directory=str(self._directory), error=str(e))
                return False

            if not self._access().ensure_provisioned(self._instrumentation_key, self._directory):
                logger.warning("Retry directory not provisioned; batch dropped", directory=str(self._directory))
                return False

            try:
                current_size = self.directory_size()
            except OSError as e:
                logger.warning("Cannot measure retry directory; batch dropped", directory=str(self._directory), error=str(e))
                return False

            if current_size + len(payload) > self._max_bytes:
                logger.warning(
                    "Retry directory size cap reached; batch dropped",
                    directory=str(self._directory),
                    directory_bytes=current_size,
                    batch_bytes=len(payload),
                    max_bytes=self._max_bytes,
                )
                return False

            path = self._directory / f"{time.time_ns():020d}-{next(self._sequence) % 1_000_000:06d}{self._suffix}"
            try:
                fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o600)
                with os.fdopen(fd, "wb") as f:
                    f.write(payload)
            except OSError as e:
                logger.warning("Failed to write retry file; batch dropped", path=str(path), error=str(e))
                return False

        logger.debug("Batch persisted for retry", path=path.name, bytes=len(payload))
        return True

    def directory_size(self) -> int:
        """Total bytes of regular files in the retry directory (0 if absent)."""
        if not self._directory.exists():
            return 0
        total = 0
        with os.scandir(self._directory) as entries:
            for entry in entries:
                if entry.is_file():
                    total += entry.stat().st_size
        return total

    def list_files(self) -> list[Path]:
        """Retry files, oldest first."""
        if not self._directory.exists():
            return []
        return sorted(p for p in self._directory.iterdir() if p.is_file() and p.name.endswith(self._suffix))

    def read_batch(self, path: Path) -> list[str]:
        """Read one retry file back into serialized envelopes.

        Raises:
            OSError: If the file cannot be read.
        """
        text = path.read_text(encoding="utf-8")
        return [line for line in text.split("\n") if line.strip()]

    def recover_and_resubmit(self, resubmit: Resubmitter) -> int:
        """Resubmit persisted batches oldest first.

        A file is deleted only after ``resubmit`` reports success. The pass
        stops at the first failure; the remaining files wait for the next
        cycle. Unreadable files are logged and skipped.

        Returns:
            Number of files successfully resubmitted and removed.
        """
        try:
            files = self.list_files()
        except OSError as e:
            logger.warning("Cannot list retry directory", directory=str(self._directory), error=str(e))
            return 0

        recovered = 0
        for path in files:
            try:
                lines = self.read_batch(path)
            except (OSError, UnicodeDecodeError) as e:
                logger.warning("Skipping unreadable retry file", path=path.name, error=str(e))
                continue

            if lines:
                try:
                    delivered = resubmit(lines)
                except Exception as e:
                    logger.warning("Resubmission of retry file failed", path=path.name, error=str(e))
                    delivered = False
                if not delivered:
                    logger.debug("Resubmission stopped; remaining files kept", path=path.name)
                    break

            try:
                path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning("Failed to delete resubmitted retry file", path=path.name, error=str(e))
            if lines:
                recovered += 1

        if recovered:
            logger.info("Resubmitted persisted batches", files=recovered)
        return recovered
