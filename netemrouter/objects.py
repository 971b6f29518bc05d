"""
.. _objects:

Library level objects of netemrouter.

A :py:class:`~netemrouter.objects.PhysicalInterface` is paired with exactly one
:py:class:`~netemrouter.objects.VirtualTarget` (an IFB device) and its ingress
traffic is diverted there by exactly one
:py:class:`~netemrouter.objects.RedirectionRule`. The controller reports what
happened to each interface as an
:py:class:`~netemrouter.objects.InterfaceResult`, gathered in
:py:class:`~netemrouter.objects.Results`.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from .constants import INGRESS_HANDLE, INGRESS_KIND


class LinkState(Enum):
    DOWN = "down"
    UP = "up"


class InterfaceState(Enum):
    UNCONFIGURED = "unconfigured"
    VIRTUAL_TARGET_READY = "virtual-target-ready"
    REDIRECT_INSTALLED = "redirect-installed"
    ACTIVE = "active"
    FAILED = "failed"


@dataclass(frozen=True)
class PhysicalInterface:
    """A network device whose ingress traffic must be shaped.

    Args:
        name: the device name (e.g. eth0)
        role: free form description (e.g. wan-a-facing). Never used to take
            any decision.
        index: position of the interface in the registry
    """

    name: str
    role: str = ""
    index: int = 0


@dataclass(frozen=True)
class VirtualTarget:
    name: str
    state: LinkState
    owner: PhysicalInterface

    @property
    def up(self) -> bool:
        return self.state == LinkState.UP


@dataclass(frozen=True)
class Link:
    """What the facility knows about a link."""

    name: str
    kind: Optional[str]
    state: LinkState


@dataclass(frozen=True)
class CapturePoint:
    """The ingress qdisc of a device."""

    device: str
    kind: str = INGRESS_KIND
    handle: str = INGRESS_HANDLE

    def is_ours(self) -> bool:
        return self.kind == INGRESS_KIND and self.handle == INGRESS_HANDLE


@dataclass(frozen=True)
class RedirectionRule:
    """Match all the ingress traffic of device and redirect it to target.

    The match predicate is fixed (``u32 match u32 0 0`` for all protocols) and
    the action is always ``mirred egress redirect``: packets are moved, not
    copied.
    """

    device: str
    target: str
    pref: int

    def tc_args(self) -> List[str]:
        return [
            "parent",
            INGRESS_HANDLE,
            "protocol",
            "all",
            "pref",
            str(self.pref),
            "u32",
            "match",
            "u32",
            "0",
            "0",
            "action",
            "mirred",
            "egress",
            "redirect",
            "dev",
            self.target,
        ]


@dataclass
class InterfaceResult:
    interface: str
    state: InterfaceState = InterfaceState.UNCONFIGURED
    target: Optional[str] = None
    error: Optional[Exception] = None
    role: str = ""

    def ok(self) -> bool:
        return self.state != InterfaceState.FAILED

    @property
    def active(self) -> bool:
        return self.state == InterfaceState.ACTIVE

    def match(self, **kwargs) -> bool:
        for k, v in kwargs.items():
            if getattr(self, k) != v:
                return False
        return True

    def to_dict(self) -> Dict:
        error = None
        if self.error is not None:
            error = f"{self.error.__class__.__name__}: {self.error}"
        return dict(
            interface=self.interface,
            role=self.role,
            state=self.state.value,
            target=self.target,
            error=error,
        )


class Results(list):
    """Container for the InterfaceResult**s** of a run.

    Examples:

        .. code-block:: python

            results = controller.apply()
            for r in results.failed():
                print(r.interface, r.error)
    """

    def filter(self, **kwargs) -> "Results":
        return Results([r for r in self if r.match(**kwargs)])

    def ok(self) -> "Results":
        return Results([r for r in self if r.ok()])

    def failed(self) -> "Results":
        return Results([r for r in self if not r.ok()])

    @property
    def all_active(self) -> bool:
        return len(self) > 0 and all(r.active for r in self)

    def to_dict(self) -> List[Dict]:
        return [r.to_dict() for r in self]
