import zlib
from typing import Optional, Set

from .constants import RULE_PREF_BASE, RULE_PREF_SPAN
from .errors import (
    CapturePointExistsWithConflictingConfigError,
    FacilityError,
    RuleInstallationError,
    TeardownError,
)
from .facility import NetworkFacility
from .log import getLogger
from .objects import CapturePoint, PhysicalInterface, RedirectionRule, VirtualTarget
from .utils import InterfaceLocks


def rule_pref(device: str) -> int:
    """The preference (priority) of the redirect filter of device.

    It's derived from the device name only, so it can be looked up directly
    instead of guessing which of the existing filters is ours.
    """
    return RULE_PREF_BASE + zlib.crc32(device.encode()) % RULE_PREF_SPAN


def _install_error(
    interface: PhysicalInterface, err: FacilityError
) -> RuleInstallationError:
    return RuleInstallationError(interface.name, str(err), cause=err)


class RedirectionInstaller:
    """Divert all the ingress traffic of an interface to its virtual target.

    This is the classic ifb trick [#r1]_: an ingress qdisc is attached to the
    physical interface and a match-all filter moves every packet to the
    egress path of the ifb, where the shaping policy can be applied.

    Existing host configuration is never overwritten: if the ingress
    capture point is already there and doesn't carry our rule, we refuse to
    go further.

    .. topic:: Links:

        .. [#r1] https://wiki.linuxfoundation.org/networking/netem
    """

    def __init__(
        self, facility: NetworkFacility, locks: Optional[InterfaceLocks] = None
    ):
        self.facility = facility
        self.locks = locks if locks is not None else InterfaceLocks()
        # devices whose capture point has been created by us
        self._owned: Set[str] = set()

    def rule_for(
        self, interface: PhysicalInterface, target_name: str
    ) -> RedirectionRule:
        return RedirectionRule(
            device=interface.name, target=target_name, pref=rule_pref(interface.name)
        )

    def install(
        self, interface: PhysicalInterface, target: VirtualTarget
    ) -> RedirectionRule:
        """Install (if needed) the capture point and the redirect rule.

        Raises:
            CapturePointExistsWithConflictingConfigError: a capture point exists
                on the interface but it doesn't hold our rule.
            RuleInstallationError: the facility refused one of the steps.
        """
        log = getLogger(__name__, tags=[interface.name])
        if target.owner.name != interface.name:
            raise RuleInstallationError(
                interface.name, f"{target.name} is paired with {target.owner.name}"
            )
        if not target.up:
            raise RuleInstallationError(interface.name, f"{target.name} isn't up")

        rule = self.rule_for(interface, target.name)
        with self.locks(interface.name):
            try:
                capture_point = self.facility.get_capture_point(interface.name)
            except FacilityError as err:
                raise _install_error(interface, err) from err

            if capture_point is not None:
                return self._check_existing(interface, capture_point, rule)

            log.info("Attaching ingress capture point")
            try:
                self.facility.add_capture_point(interface.name)
            except FacilityError as err:
                raise _install_error(interface, err) from err
            self._owned.add(interface.name)

            log.info("Redirecting ingress traffic to %s", target.name)
            try:
                self.facility.add_rule(rule)
            except FacilityError as err:
                self._rollback(interface)
                raise _install_error(interface, err) from err
        return rule

    def _check_existing(
        self,
        interface: PhysicalInterface,
        capture_point: CapturePoint,
        rule: RedirectionRule,
    ) -> RedirectionRule:
        log = getLogger(__name__, tags=[interface.name])
        if not capture_point.is_ours():
            raise CapturePointExistsWithConflictingConfigError(
                interface.name,
                (
                    f"a {capture_point.kind} qdisc with handle {capture_point.handle} "
                    "is already attached"
                ),
            )
        try:
            existing = self.facility.get_rule(interface.name, rule.pref)
        except FacilityError as err:
            raise _install_error(interface, err) from err
        if existing is None:
            raise CapturePointExistsWithConflictingConfigError(
                interface.name,
                f"ingress capture point found without redirect rule (pref {rule.pref})",
            )
        if existing.target != rule.target:
            raise CapturePointExistsWithConflictingConfigError(
                interface.name,
                (
                    f"filter pref {rule.pref} redirects to {existing.target or '?'} "
                    f"instead of {rule.target}"
                ),
            )
        log.debug("Redirection to %s already installed", rule.target)
        return existing

    def _rollback(self, interface: PhysicalInterface):
        log = getLogger(__name__, tags=[interface.name])
        log.warning("Removing the capture point left without rule")
        try:
            self.facility.delete_capture_point(interface.name)
        except FacilityError as err:
            # the host is left in an ambiguous state, next install will refuse
            # to touch it until an explicit teardown
            log.error("Unable to remove the capture point: %s", err)
            return
        self._owned.discard(interface.name)

    def remove(self, interface: PhysicalInterface, target_name: str) -> bool:
        """Remove the redirect rule and our capture point.

        The capture point is only removed if we know it's ours (created by this
        installer or carrying our rule) and if no other filter hangs on it.

        Returns:
            True iff the rule was found and removed. Absent isn't an error.

        Raises:
            TeardownError: the facility refused a removal, or an empty ingress
                capture point of unknown origin is left on the interface.
        """
        log = getLogger(__name__, tags=[interface.name])
        rule = self.rule_for(interface, target_name)
        with self.locks(interface.name):
            try:
                capture_point = self.facility.get_capture_point(interface.name)
                if capture_point is None:
                    log.debug("No capture point")
                    self._owned.discard(interface.name)
                    return False
                if not capture_point.is_ours():
                    log.debug("Foreign %s qdisc left untouched", capture_point.kind)
                    return False

                removed = False
                existing = self.facility.get_rule(interface.name, rule.pref)
                if existing is not None:
                    if existing.target != rule.target:
                        log.warning(
                            "Filter pref %s redirects to %s, left untouched",
                            rule.pref,
                            existing.target,
                        )
                        return False
                    log.info("Removing redirection to %s", rule.target)
                    self.facility.delete_rule(interface.name, rule.pref)
                    removed = True

                ours = removed or interface.name in self._owned
                remaining = self.facility.count_rules(interface.name)
                if ours and remaining == 0:
                    log.info("Detaching ingress capture point")
                    self.facility.delete_capture_point(interface.name)
                    self._owned.discard(interface.name)
                elif remaining == 0:
                    # e.g. a rollback that failed in another process
                    raise TeardownError(
                        interface.name,
                        "ingress capture point without any filter left in place "
                        f"(tc qdisc del dev {interface.name} ingress to remove it)",
                    )
            except FacilityError as err:
                raise TeardownError(interface.name, str(err), cause=err) from err
        return removed

    def probe(
        self, interface: PhysicalInterface, target_name: str
    ) -> Optional[RedirectionRule]:
        """Look for our redirection, without changing anything.

        Raises:
            CapturePointExistsWithConflictingConfigError: same cases as
                :py:meth:`install`.
        """
        rule = self.rule_for(interface, target_name)
        with self.locks(interface.name):
            capture_point = self.facility.get_capture_point(interface.name)
            if capture_point is None:
                return None
            return self._check_existing(interface, capture_point, rule)
