import logging
from typing import Dict, Iterator, List

from .errors import DuplicateInterfaceError
from .objects import PhysicalInterface

logger = logging.getLogger(__name__)


class InterfaceRegistry:
    """The physical interfaces to manage, in registration order.

    The position of an interface in the registry is what its virtual target
    name is derived from, so the order must be reproducible from one run to
    another.
    """

    def __init__(self):
        self._interfaces: Dict[str, PhysicalInterface] = {}

    @classmethod
    def from_configuration(cls, conf) -> "InterfaceRegistry":
        self = cls()
        for interface in conf.interfaces:
            self.register(interface.name, interface.role)
        return self

    def register(self, name: str, role: str = "") -> PhysicalInterface:
        if name in self._interfaces:
            raise DuplicateInterfaceError(name)
        interface = PhysicalInterface(name=name, role=role, index=len(self._interfaces))
        self._interfaces[name] = interface
        logger.debug("Registered %s", interface)
        return interface

    def list(self) -> List[PhysicalInterface]:
        return list(self._interfaces.values())

    def get(self, name: str) -> PhysicalInterface:
        return self._interfaces[name]

    def __contains__(self, name) -> bool:
        return name in self._interfaces

    def __iter__(self) -> Iterator[PhysicalInterface]:
        return iter(self.list())

    def __len__(self) -> int:
        return len(self._interfaces)
