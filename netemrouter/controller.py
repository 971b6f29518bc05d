import dataclasses
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional

from .configuration import Configuration
from .constants import DEFAULT_TARGET_PREFIX
from .errors import FacilityError, ForwardingError, RouterError, RuleInstallationError
from .facility import NetworkFacility
from .log import getLogger
from .objects import InterfaceResult, InterfaceState, PhysicalInterface, Results
from .provisioner import VirtualTargetProvisioner
from .redirection import RedirectionInstaller
from .registry import InterfaceRegistry
from .utils import InterfaceLocks

logger = logging.getLogger(__name__)


class RouterStateController:
    """Drive every registered interface to the ``active`` state.

    For each interface the states are::

        unconfigured -> virtual-target-ready -> redirect-installed -> active

    and ``failed`` whenever a step raises. Interfaces are independent: one
    failing doesn't prevent the others from being provisioned.

    Idempotency: both :py:meth:`apply` and :py:meth:`teardown` inspect the
    host before changing anything, so running them again is safe and doesn't
    modify the host when it's already in the expected state.

    Args:
        registry: the interfaces to manage
        facility: the host networking state
        target_prefix: prefix of the virtual target names
        ip_forward: enable IPv4 forwarding before provisioning
        parallel: provision the interfaces concurrently (one thread per
            interface)

    Examples:

        .. code-block:: python

            registry = InterfaceRegistry()
            registry.register("eth0", "wan-a-facing")
            registry.register("eth1", "wan-b-facing")
            router = RouterStateController(registry, IpRoute2Facility())
            results = router.apply()
            # attach the shaping policies there
            print(router.attachment_points())
    """

    def __init__(
        self,
        registry: InterfaceRegistry,
        facility: NetworkFacility,
        target_prefix: str = DEFAULT_TARGET_PREFIX,
        ip_forward: bool = True,
        parallel: bool = False,
    ):
        self.registry = registry
        self.facility = facility
        self.ip_forward = ip_forward
        self.parallel = parallel
        self.locks = InterfaceLocks()
        self.provisioner = VirtualTargetProvisioner(
            facility, prefix=target_prefix, locks=self.locks
        )
        self.installer = RedirectionInstaller(facility, locks=self.locks)
        self._state: Dict[str, InterfaceResult] = {}
        self._state_lock = threading.Lock()
        self._forwarding_enabled = False

    @classmethod
    def from_configuration(
        cls, conf: Configuration, facility: NetworkFacility
    ) -> "RouterStateController":
        return cls(
            InterfaceRegistry.from_configuration(conf),
            facility,
            target_prefix=conf.target_prefix,
            ip_forward=conf.ip_forward,
            parallel=conf.parallel,
        )

    def _set(
        self,
        interface: PhysicalInterface,
        state: InterfaceState,
        target: Optional[str] = None,
        error: Optional[Exception] = None,
    ) -> InterfaceResult:
        result = InterfaceResult(
            interface=interface.name,
            state=state,
            target=target,
            error=error,
            role=interface.role,
        )
        with self._state_lock:
            self._state[interface.name] = result
        return dataclasses.replace(result)

    def _get(self, interface: PhysicalInterface) -> InterfaceResult:
        with self._state_lock:
            result = self._state.get(interface.name)
        if result is None:
            return InterfaceResult(interface=interface.name, role=interface.role)
        return dataclasses.replace(result)

    def _run(
        self, func, interfaces: List[PhysicalInterface], parallel: bool
    ) -> Results:
        if parallel and len(interfaces) > 1:
            with ThreadPoolExecutor(
                max_workers=len(interfaces), thread_name_prefix="netemrouter"
            ) as pool:
                # map keeps the registration order
                return Results(pool.map(func, interfaces))
        return Results([func(i) for i in interfaces])

    # apply

    def _provision(self, interface: PhysicalInterface) -> InterfaceResult:
        log = getLogger(__name__, tags=[interface.name])
        name = self.provisioner.target_name(interface)
        self._set(interface, InterfaceState.UNCONFIGURED, target=name)
        try:
            target = self.provisioner.ensure(interface)
            self._set(interface, InterfaceState.VIRTUAL_TARGET_READY, target=name)
            self.installer.install(interface, target)
            self._set(interface, InterfaceState.REDIRECT_INSTALLED, target=name)
        except RouterError as err:
            log.error("%s", err)
            return self._set(interface, InterfaceState.FAILED, target=name, error=err)
        log.debug("%s <-> %s active", interface.name, name)
        return self._set(interface, InterfaceState.ACTIVE, target=name)

    def _enable_forwarding(self):
        if not self.ip_forward:
            return
        try:
            if self.facility.get_ip_forwarding():
                logger.debug("IP forwarding already enabled")
                return
            logger.info("Enabling IP forwarding")
            self.facility.set_ip_forwarding(True)
        except FacilityError as err:
            raise ForwardingError("Unable to enable IP forwarding", cause=err) from err
        self._forwarding_enabled = True

    def apply(self, parallel: Optional[bool] = None) -> Results:
        """Provision every registered interface.

        Args:
            parallel: override the parallel setting of the controller

        Returns:
            One result per interface, in registration order.

        Raises:
            ForwardingError: if IP forwarding can't be enabled. Nothing has
                been changed on the interfaces in this case.
        """
        if parallel is None:
            parallel = self.parallel
        interfaces = self.registry.list()
        self._enable_forwarding()
        results = self._run(self._provision, interfaces, parallel)
        if results.all_active:
            pairs = " and ".join(f"{r.interface}<->{r.target}" for r in results)
            logger.info("netemrouter ready: %s", pairs)
        else:
            for r in results.failed():
                logger.warning("%s failed: %s", r.interface, r.error)
        return results

    # teardown

    def _release(self, interface: PhysicalInterface) -> InterfaceResult:
        log = getLogger(__name__, tags=[interface.name])
        name = self.provisioner.target_name(interface)
        try:
            # reverse order: stop redirecting before removing the destination
            self.installer.remove(interface, name)
            self.provisioner.remove(interface)
        except RouterError as err:
            log.error("%s", err)
            return self._set(interface, InterfaceState.FAILED, target=name, error=err)
        return self._set(interface, InterfaceState.UNCONFIGURED)

    def _disable_forwarding(self):
        if not self._forwarding_enabled:
            return
        logger.info("Disabling IP forwarding")
        try:
            self.facility.set_ip_forwarding(False)
        except FacilityError as err:
            raise ForwardingError("Unable to disable IP forwarding", cause=err) from err
        self._forwarding_enabled = False

    def teardown(self, force: bool = False) -> Results:
        """Remove the redirections and the virtual targets.

        Only what's identified as ours is removed; foreign configuration and
        already absent objects are skipped.

        Args:
            force: release every registered interface, not only the ones this
                controller has touched. Needed when tearing down from another
                process than the one that applied the configuration.

        Returns:
            One result per interface, in registration order. Failing to turn
            IP forwarding back off is logged and doesn't change the results;
            the next teardown tries again.
        """
        results = Results()
        for interface in self.registry.list():
            current = self._get(interface)
            if not force and current.state == InterfaceState.UNCONFIGURED:
                results.append(current)
                continue
            results.append(self._release(interface))
        if all(r.state == InterfaceState.UNCONFIGURED for r in results):
            try:
                self._disable_forwarding()
            except ForwardingError as err:
                # the interfaces are released anyway, report them
                logger.error("%s: %s", err, err.cause)
        return results

    # reporting

    def _inspect(self, interface: PhysicalInterface) -> InterfaceResult:
        log = getLogger(__name__, tags=[interface.name])
        name = self.provisioner.target_name(interface)
        try:
            target = self.provisioner.probe(interface)
            rule = self.installer.probe(interface, name)
            if rule is not None and (target is None or not target.up):
                raise RuleInstallationError(
                    interface.name,
                    f"ingress is redirected to a missing or down {name}",
                )
        except RouterError as err:
            log.error("%s", err)
            return self._set(interface, InterfaceState.FAILED, target=name, error=err)
        if target is None or not target.up:
            return self._set(interface, InterfaceState.UNCONFIGURED)
        if rule is None:
            state = InterfaceState.VIRTUAL_TARGET_READY
        else:
            state = InterfaceState.ACTIVE
        return self._set(interface, state, target=name)

    def inspect(self) -> Results:
        """Read back the state of every interface from the host.

        Nothing is changed on the host, but the state of the controller is
        updated with what has been found.
        """
        return Results([self._inspect(i) for i in self.registry.list()])

    def status(self) -> Results:
        """Snapshot of the state of every registered interface."""
        return Results([self._get(i) for i in self.registry.list()])

    def attachment_points(self) -> Dict[str, str]:
        """Where the shaping policies must be attached.

        Returns:
            physical interface name -> virtual target name, for the active
            interfaces only. An egress qdisc attached on the virtual target
            applies to the ingress traffic of the physical interface.
        """
        return {r.interface: r.target for r in self.status() if r.active and r.target}
