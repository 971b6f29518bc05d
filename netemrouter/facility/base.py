from abc import ABC, abstractmethod
from typing import Optional

from netemrouter.objects import CapturePoint, Link, RedirectionRule


class NetworkFacility(ABC):
    """Capabilities needed to build the redirection plane.

    Inspection methods return ``None`` when the object is absent. Every
    failure of the underlying system is raised as a
    :py:class:`~netemrouter.errors.FacilityError`.
    """

    # links

    @abstractmethod
    def get_link(self, name: str) -> Optional[Link]:
        ...

    @abstractmethod
    def add_ifb(self, name: str):
        ...

    @abstractmethod
    def set_link_up(self, name: str):
        ...

    @abstractmethod
    def delete_link(self, name: str):
        ...

    # ingress capture points

    @abstractmethod
    def get_capture_point(self, device: str) -> Optional[CapturePoint]:
        ...

    @abstractmethod
    def add_capture_point(self, device: str):
        ...

    @abstractmethod
    def delete_capture_point(self, device: str):
        ...

    # redirect rules, attached to the capture point of their device

    @abstractmethod
    def get_rule(self, device: str, pref: int) -> Optional[RedirectionRule]:
        ...

    @abstractmethod
    def add_rule(self, rule: RedirectionRule):
        ...

    @abstractmethod
    def delete_rule(self, device: str, pref: int):
        ...

    @abstractmethod
    def count_rules(self, device: str) -> int:
        """Number of filters (whoever owns them) on the capture point."""
        ...

    # forwarding

    @abstractmethod
    def get_ip_forwarding(self) -> bool:
        ...

    @abstractmethod
    def set_ip_forwarding(self, enabled: bool):
        ...
