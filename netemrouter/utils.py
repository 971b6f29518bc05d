import threading
from typing import Dict


class InterfaceLocks:
    """One reentrant lock per interface name.

    The host networking state is shared: every probe-and-create sequence
    touching an interface (or its virtual target) runs under its lock.
    """

    def __init__(self):
        self._locks: Dict[str, threading.RLock] = {}
        self._guard = threading.Lock()

    def get(self, name: str) -> threading.RLock:
        with self._guard:
            if name not in self._locks:
                self._locks[name] = threading.RLock()
            return self._locks[name]

    def __call__(self, name: str) -> threading.RLock:
        return self.get(name)
