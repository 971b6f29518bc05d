import logging
import threading
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Tuple

from netemrouter.constants import IFB_KIND, INGRESS_HANDLE, INGRESS_KIND
from netemrouter.errors import FacilityError
from netemrouter.objects import CapturePoint, Link, LinkState, RedirectionRule

from .base import NetworkFacility

logger = logging.getLogger(__name__)


class InMemoryFacility(NetworkFacility):
    """A host whose networking state lives in memory.

    It mimics the kernel answers closely enough for the router logic to be
    exercised: adding something that exists fails, operating on a missing
    device fails, deleting a device or a capture point drops what hangs on it.

    Every mutating call is recorded in :py:attr:`mutations`.

    Args:
        devices: physical devices present on this host
        max_ifbs: how many ifb devices can be allocated (None means no limit)

    Examples:

        .. code-block:: python

            facility = InMemoryFacility(devices=["eth0", "eth1"])
            facility.fail("add_ifb", "ifb1", stderr="No space left on device")
    """

    def __init__(self, devices: Iterable[str] = (), max_ifbs: Optional[int] = None):
        self.links: Dict[str, Link] = {}
        self.capture_points: Dict[str, CapturePoint] = {}
        self.rules: Dict[str, List[RedirectionRule]] = defaultdict(list)
        self.ip_forward = False
        self.max_ifbs = max_ifbs
        self.mutations: List[Tuple[str, ...]] = []
        self._failures: Dict[Tuple[str, str], FacilityError] = {}
        self._lock = threading.Lock()
        for device in devices:
            self.add_device(device)

    # test helpers

    def add_device(self, name: str, kind: Optional[str] = None, up: bool = True):
        """Make a device exist (out of band, not recorded as a mutation)."""
        state = LinkState.UP if up else LinkState.DOWN
        self.links[name] = Link(name=name, kind=kind, state=state)

    def fail(self, operation: str, name: str, rc: int = 2, stderr: str = "error"):
        """Make the next calls of operation on name fail."""
        self._failures[(operation, name)] = FacilityError([operation, name], rc, stderr)

    def heal(self, operation: str, name: str):
        self._failures.pop((operation, name), None)

    @property
    def mutation_count(self) -> int:
        return len(self.mutations)

    def ifbs(self) -> List[str]:
        return [n for n, link in self.links.items() if link.kind == IFB_KIND]

    def rules_for(self, device: str) -> List[RedirectionRule]:
        return list(self.rules.get(device, []))

    def _check(self, operation: str, name: str):
        error = self._failures.get((operation, name))
        if error is not None:
            raise error

    def _record(self, *mutation: str):
        logger.debug("mutation %s", mutation)
        self.mutations.append(mutation)

    def _link(self, operation: str, name: str) -> Link:
        if name not in self.links:
            raise FacilityError([operation, name], 1, f'Cannot find device "{name}"')
        return self.links[name]

    # links

    def get_link(self, name: str) -> Optional[Link]:
        with self._lock:
            self._check("get_link", name)
            return self.links.get(name)

    def add_ifb(self, name: str):
        with self._lock:
            self._check("add_ifb", name)
            if name in self.links:
                raise FacilityError(["add_ifb", name], 2, "File exists")
            if self.max_ifbs is not None and len(self.ifbs()) >= self.max_ifbs:
                raise FacilityError(["add_ifb", name], 2, "No space left on device")
            self._record("add_ifb", name)
            self.links[name] = Link(name=name, kind=IFB_KIND, state=LinkState.DOWN)

    def set_link_up(self, name: str):
        with self._lock:
            self._check("set_link_up", name)
            link = self._link("set_link_up", name)
            self._record("set_link_up", name)
            self.links[name] = Link(name=name, kind=link.kind, state=LinkState.UP)

    def delete_link(self, name: str):
        with self._lock:
            self._check("delete_link", name)
            self._link("delete_link", name)
            self._record("delete_link", name)
            del self.links[name]
            self.capture_points.pop(name, None)
            self.rules.pop(name, None)

    # ingress capture points

    def get_capture_point(self, device: str) -> Optional[CapturePoint]:
        with self._lock:
            self._check("get_capture_point", device)
            return self.capture_points.get(device)

    def add_capture_point(self, device: str):
        with self._lock:
            self._check("add_capture_point", device)
            self._link("add_capture_point", device)
            if device in self.capture_points:
                raise FacilityError(
                    ["add_capture_point", device],
                    2,
                    "Exclusivity flag on, cannot modify.",
                )
            self._record("add_capture_point", device)
            self.capture_points[device] = CapturePoint(
                device=device, kind=INGRESS_KIND, handle=INGRESS_HANDLE
            )

    def delete_capture_point(self, device: str):
        with self._lock:
            self._check("delete_capture_point", device)
            self._link("delete_capture_point", device)
            if device not in self.capture_points:
                raise FacilityError(
                    ["delete_capture_point", device],
                    2,
                    "Cannot find specified qdisc on specified device.",
                )
            self._record("delete_capture_point", device)
            del self.capture_points[device]
            self.rules.pop(device, None)

    # redirect rules

    def get_rule(self, device: str, pref: int) -> Optional[RedirectionRule]:
        with self._lock:
            self._check("get_rule", device)
            self._link("get_rule", device)
            for rule in self.rules.get(device, []):
                if rule.pref == pref:
                    return rule
            return None

    def add_rule(self, rule: RedirectionRule):
        with self._lock:
            self._check("add_rule", rule.device)
            self._link("add_rule", rule.device)
            if rule.device not in self.capture_points:
                raise FacilityError(
                    ["add_rule", rule.device], 2, "Parent Qdisc doesn't exists."
                )
            self._link("add_rule", rule.target)
            self._record("add_rule", rule.device, rule.target, str(rule.pref))
            self.rules[rule.device].append(rule)

    def delete_rule(self, device: str, pref: int):
        with self._lock:
            self._check("delete_rule", device)
            self._link("delete_rule", device)
            remaining = [r for r in self.rules.get(device, []) if r.pref != pref]
            if len(remaining) == len(self.rules.get(device, [])):
                raise FacilityError(
                    ["delete_rule", device],
                    2,
                    "Filter with specified priority/protocol not found.",
                )
            self._record("delete_rule", device, str(pref))
            self.rules[device] = remaining

    def count_rules(self, device: str) -> int:
        with self._lock:
            self._check("count_rules", device)
            self._link("count_rules", device)
            return len({r.pref for r in self.rules.get(device, [])})

    # forwarding

    def get_ip_forwarding(self) -> bool:
        with self._lock:
            self._check("get_ip_forwarding", "")
            return self.ip_forward

    def set_ip_forwarding(self, enabled: bool):
        with self._lock:
            self._check("set_ip_forwarding", "")
            self._record("set_ip_forwarding", str(enabled))
            self.ip_forward = enabled
