"""
Scoped multicast-receive capability held around passive discovery.

Linux delivers multicast to any socket that joins the group, so the default
implementation only counts holders. Hosts that need a real lock (e.g. a
Wi-Fi multicast lock) subclass it and override ``_acquire``/``_release``.
"""

import logging
import threading
from contextlib import contextmanager

logger = logging.getLogger(__name__)


class MulticastCapability:
    """Reference-counted multicast receive capability."""

    def __init__(self, name: str = "lanscout"):
        self.name = name
        self._holders = 0
        self._lock = threading.Lock()

    @property
    def held(self) -> bool:
        return self._holders > 0

    def acquire(self) -> None:
        with self._lock:
            if self._holders == 0:
                self._acquire()
            self._holders += 1

    def release(self) -> None:
        with self._lock:
            if self._holders == 0:
                return
            self._holders -= 1
            if self._holders == 0:
                self._release()

    @contextmanager
    def hold(self):
        self.acquire()
        try:
            yield self
        finally:
            self.release()

    def _acquire(self) -> None:
        logger.debug("Multicast capability %s acquired", self.name)

    def _release(self) -> None:
        logger.debug("Multicast capability %s released", self.name)
