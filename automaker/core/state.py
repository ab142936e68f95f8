"""Process-wide slot holding the current deployment."""

import threading

from automaker.models.deployment import DeploymentResult


class DeploymentSlot:
    """Owns the single "current" deployment of the process.

    ``claim`` is a compare-and-set: it installs a new deployment only when
    none is in flight. It never awaits, so concurrent coroutines cannot both
    pass the check; the lock extends the guarantee to worker threads.
    """

    def __init__(self):
        self._current: DeploymentResult | None = None
        self._lock = threading.Lock()

    @property
    def current(self) -> DeploymentResult | None:
        return self._current

    def is_running(self) -> bool:
        current = self._current
        return current is not None and current.status.is_active

    def claim(self, deployment: DeploymentResult) -> bool:
        """Make ``deployment`` current unless another one is running."""
        with self._lock:
            if self.is_running():
                return False
            self._current = deployment
            return True

    def clear(self) -> None:
        with self._lock:
            self._current = None
