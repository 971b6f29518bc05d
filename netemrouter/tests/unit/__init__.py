import threading
import time
import unittest

from netemrouter.facility import InMemoryFacility
from netemrouter.registry import InterfaceRegistry


class SlowFacility(InMemoryFacility):
    """Gives the other threads a chance to run right after each lookup."""

    def __init__(self, *args, delay: float = 0.05, **kwargs):
        super().__init__(*args, **kwargs)
        self.delay = delay

    def get_link(self, name):
        link = super().get_link(name)
        time.sleep(self.delay)
        return link

    def get_capture_point(self, device):
        capture_point = super().get_capture_point(device)
        time.sleep(self.delay)
        return capture_point


class RouterTest(unittest.TestCase):
    """Base class of the unit tests."""

    def make_registry(self, *names: str) -> InterfaceRegistry:
        registry = InterfaceRegistry()
        for idx, name in enumerate(names):
            registry.register(name, f"role-{idx}")
        return registry

    def make_facility(self, *devices: str, **kwargs) -> InMemoryFacility:
        return InMemoryFacility(devices=devices, **kwargs)

    def run_concurrently(self, func, count: int = 2):
        """Call func from count threads released at the same time.

        Returns the exceptions raised by the calls.
        """
        errors = []
        barrier = threading.Barrier(count)

        def run():
            barrier.wait()
            try:
                func()
            except Exception as err:
                errors.append(err)

        threads = [threading.Thread(target=run) for _ in range(count)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        return errors
