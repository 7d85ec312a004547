"""Owner-only access control for retry directories.

Persisted batches can contain request URLs, exception messages and
custom properties, so the retry directory is locked down before the first
file is written to it.

- Windows: the current identity is resolved once per process through
  PowerShell, then ``icacls`` grants full control to Administrators and
  that identity only.
- Elsewhere: the directory mode is set to 0o700.

State per (instrumentation key, directory) moves one way, UNINITIALIZED
to PROVISIONED or FAILED, and is kept for the process lifetime in a process-wide registry.
A failed identity lookup is remembered as well and never retried.
"""

import os
import subprocess
import threading
from pathlib import Path

import structlog

from appinsights.contracts.config.defaults import INTERNAL_DEFAULTS
from appinsights.contracts.enums import ProvisioningState
from appinsights.errors import ProvisioningError

logger = structlog.get_logger(__name__)

IDENTITY_COMMAND = ("powershell.exe", "-Command", "[System.Security.Principal.WindowsIdentity]::GetCurrent().Name")
ADMINISTRATORS_GRANT = "*S-1-5-32-544:(OI)(CI)F"


class DirectoryAccessControl:
    """Process-wide provisioning registry.

    Thread Safety:
        ensure_provisioned() serializes on one lock, so concurrent first
        writes run the subprocesses at most once.

    Example:
        access = DirectoryAccessControl.shared()
        if access.ensure_provisioned(ikey, directory):
            ...write...
    """

    _shared: "DirectoryAccessControl | None" = None
    _shared_lock = threading.Lock()

    def __init__(self, *, use_icacls: bool | None = None, process_timeout: float | None = None) -> None:
        """Initialize an empty registry.

        Args:
            use_icacls: Force the Windows (True) or POSIX (False) mechanism.
                Defaults to the current platform.
            process_timeout: Seconds allowed per subprocess call.
        """
        self.use_icacls = os.name == "nt" if use_icacls is None else use_icacls
        self._process_timeout = (
            float(INTERNAL_DEFAULTS["access_control"]["process_timeout"]) if process_timeout is None else process_timeout
        )
        self._lock = threading.Lock()
        self._states: dict[tuple[str, Path], ProvisioningState] = {}
        self._identity: str | None = None
        self._identity_failed = False

    @classmethod
    def shared(cls) -> "DirectoryAccessControl":
        """The registry shared by every DiskRetryStore in this process."""
        with cls._shared_lock:
            if cls._shared is None:
                cls._shared = cls()
            return cls._shared

    @classmethod
    def reset_for_tests(cls) -> None:
        """Forget all provisioning state. Test isolation only."""
        with cls._shared_lock:
            cls._shared = None

    def state(self, instrumentation_key: str, directory: Path) -> ProvisioningState:
        with self._lock:
            return self._states.get(_registry_key(instrumentation_key, directory), ProvisioningState.UNINITIALIZED)

    @property
    def identity(self) -> str | None:
        return self._identity

    def ensure_provisioned(self, instrumentation_key: str, directory: Path) -> bool:
        """Restrict ``directory`` to the current user, once per key and directory.

        Returns:
            True if writes to the directory are allowed. False once
            provisioning has failed for this key and directory; that never
            changes for the rest of the process.
        """
        key = _registry_key(instrumentation_key, directory)
        with self._lock:
            state = self._states.get(key, ProvisioningState.UNINITIALIZED)
            if state is ProvisioningState.PROVISIONED:
                return True
            if state is ProvisioningState.FAILED:
                return False

            try:
                if self.use_icacls:
                    self._grant_icacls(directory)
                else:
                    self._restrict_mode(directory)
            except ProvisioningError as e:
                self._states[key] = ProvisioningState.FAILED
                logger.warning(
                    "Retry directory access control failed; disk retry disabled for this process",
                    directory=str(directory),
                    error=e.message,
                )
                return False

            self._states[key] = ProvisioningState.PROVISIONED
            return True

    def _restrict_mode(self, directory: Path) -> None:
        try:
            os.chmod(directory, 0o700)
        except OSError as e:
            raise ProvisioningError(str(directory), f"chmod failed: {e}") from e

    def _resolve_identity(self, directory: Path) -> str:
        """Return the Windows identity, querying PowerShell at most once."""
        if self._identity is not None:
            return self._identity
        if self._identity_failed:
            raise ProvisioningError(str(directory), "identity lookup failed earlier in this process")

        try:
            result = subprocess.run(
                list(IDENTITY_COMMAND),
                capture_output=True,
                text=True,
                timeout=self._process_timeout,
                check=True,
            )
        except (OSError, subprocess.SubprocessError) as e:
            self._identity_failed = True
            raise ProvisioningError(str(directory), f"identity lookup failed: {e}") from e

        identity = result.stdout.strip()
        if not identity:
            self._identity_failed = True
            raise ProvisioningError(str(directory), "identity lookup returned nothing")
        self._identity = identity
        return identity

    def _grant_icacls(self, directory: Path) -> None:
        identity = self._resolve_identity(directory)
        try:
            subprocess.run(
                ["icacls.exe", str(directory), "/grant", ADMINISTRATORS_GRANT, "/grant", f"{identity}:(OI)(CI)F"],
                capture_output=True,
                timeout=self._process_timeout,
                check=True,
            )
        except (OSError, subprocess.SubprocessError) as e:
            raise ProvisioningError(str(directory), f"icacls failed: {e}") from e


def _registry_key(instrumentation_key: str, directory: Path) -> tuple[str, Path]:
    # Stores for one key under different temp roots are provisioned separately
    return instrumentation_key, Path(directory).resolve()
