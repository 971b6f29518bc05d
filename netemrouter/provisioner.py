from typing import Optional

from .constants import DEFAULT_TARGET_PREFIX, IFB_KIND
from .errors import FacilityError, TeardownError, VirtualTargetCreationError
from .facility import NetworkFacility
from .log import getLogger
from .objects import Link, LinkState, PhysicalInterface, VirtualTarget
from .utils import InterfaceLocks


class VirtualTargetProvisioner:
    """Make sure each physical interface has its own ifb, up and running.

    The ifb name only depends on the position of the interface in the
    registry (``ifb0`` for the first one, ``ifb1`` for the second...) so that
    calling :py:meth:`ensure` again finds the same device.

    Args:
        facility: where the ifbs live
        prefix: prefix of the ifb names
        locks: per interface locks, shared with the other components
    """

    def __init__(
        self,
        facility: NetworkFacility,
        prefix: str = DEFAULT_TARGET_PREFIX,
        locks: Optional[InterfaceLocks] = None,
    ):
        self.facility = facility
        self.prefix = prefix
        self.locks = locks if locks is not None else InterfaceLocks()

    def target_name(self, interface: PhysicalInterface) -> str:
        return f"{self.prefix}{interface.index}"

    def ensure(self, interface: PhysicalInterface) -> VirtualTarget:
        """Create and/or bring up the ifb paired with interface.

        Raises:
            VirtualTargetCreationError: if the ifb can't be allocated or if the
                name is taken by a device which isn't an ifb.
        """
        name = self.target_name(interface)
        log = getLogger(__name__, tags=[interface.name])
        with self.locks(interface.name):
            try:
                link = self.facility.get_link(name)
                if link is None:
                    log.info("Creating virtual target %s", name)
                    self.facility.add_ifb(name)
                    link = Link(name=name, kind=IFB_KIND, state=LinkState.DOWN)
                elif link.kind != IFB_KIND:
                    raise VirtualTargetCreationError(
                        interface.name,
                        name,
                        f"{name} already exists and isn't an ifb (kind={link.kind})",
                    )
                if link.state != LinkState.UP:
                    log.info("Bringing %s up", name)
                    self.facility.set_link_up(name)
                else:
                    log.debug("%s is already up", name)
            except FacilityError as err:
                raise VirtualTargetCreationError(
                    interface.name, name, str(err), cause=err
                ) from err
        return VirtualTarget(name=name, state=LinkState.UP, owner=interface)

    def remove(self, interface: PhysicalInterface) -> bool:
        """Delete the ifb paired with interface.

        Returns:
            True iff a device has been deleted. An absent ifb isn't an error.
        """
        name = self.target_name(interface)
        log = getLogger(__name__, tags=[interface.name])
        with self.locks(interface.name):
            try:
                link = self.facility.get_link(name)
                if link is None:
                    log.debug("%s is already absent", name)
                    return False
                if link.kind != IFB_KIND:
                    log.warning(
                        "%s isn't an ifb (kind=%s), left untouched", name, link.kind
                    )
                    return False
                log.info("Deleting virtual target %s", name)
                self.facility.delete_link(name)
            except FacilityError as err:
                raise TeardownError(interface.name, str(err), cause=err) from err
        return True

    def probe(self, interface: PhysicalInterface) -> Optional[VirtualTarget]:
        """Look for the ifb paired with interface, without changing anything.

        Raises:
            VirtualTargetCreationError: if the name is taken by a device which
                isn't an ifb.
        """
        name = self.target_name(interface)
        with self.locks(interface.name):
            link = self.facility.get_link(name)
        if link is None:
            return None
        if link.kind != IFB_KIND:
            raise VirtualTargetCreationError(
                interface.name,
                name,
                f"{name} already exists and isn't an ifb (kind={link.kind})",
            )
        return VirtualTarget(name=name, state=link.state, owner=interface)
