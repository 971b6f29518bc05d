from netemrouter.configuration import Configuration
from netemrouter.controller import RouterStateController
from netemrouter.errors import (
    CapturePointExistsWithConflictingConfigError,
    ForwardingError,
    RuleInstallationError,
    TeardownError,
    VirtualTargetCreationError,
)
from netemrouter.objects import CapturePoint, InterfaceState
from netemrouter.redirection import rule_pref

from . import RouterTest

ACTIVE = InterfaceState.ACTIVE
FAILED = InterfaceState.FAILED
UNCONFIGURED = InterfaceState.UNCONFIGURED


class ControllerTest(RouterTest):
    def setUp(self):
        self.facility = self.make_facility("eth0", "eth1")
        self.router = RouterStateController(
            self.make_registry("eth0", "eth1"), self.facility
        )

    def states(self, results):
        return [(r.interface, r.state) for r in results]

    def assertPaired(self, interface, target):
        self.assertIn(target, self.facility.ifbs())
        rules = self.facility.rules_for(interface)
        self.assertEqual(1, len(rules))
        self.assertEqual(target, rules[0].target)
        self.assertEqual(rule_pref(interface), rules[0].pref)


class TestApply(ControllerTest):
    def test_apply(self):
        results = self.router.apply()
        self.assertEqual([("eth0", ACTIVE), ("eth1", ACTIVE)], self.states(results))
        self.assertEqual(["ifb0", "ifb1"], [r.target for r in results])
        self.assertEqual(["role-0", "role-1"], [r.role for r in results])
        self.assertTrue(results.all_active)
        self.assertPaired("eth0", "ifb0")
        self.assertPaired("eth1", "ifb1")
        self.assertTrue(self.facility.ip_forward)

    def test_apply_logs_ready(self):
        with self.assertLogs("netemrouter.controller", level="INFO") as logs:
            self.router.apply()
        self.assertIn(
            "netemrouter ready: eth0<->ifb0 and eth1<->ifb1", "\n".join(logs.output)
        )

    def test_apply_twice_is_idempotent(self):
        first = self.router.apply()
        before = self.facility.mutation_count
        second = self.router.apply()
        self.assertEqual(self.states(first), self.states(second))
        self.assertEqual(before, self.facility.mutation_count)
        self.assertEqual(["ifb0", "ifb1"], self.facility.ifbs())
        self.assertPaired("eth0", "ifb0")
        self.assertPaired("eth1", "ifb1")

    def test_apply_from_a_new_controller_is_idempotent(self):
        self.router.apply()
        before = self.facility.mutation_count
        router = RouterStateController(
            self.make_registry("eth0", "eth1"), self.facility
        )
        results = router.apply()
        self.assertTrue(results.all_active)
        self.assertEqual(before, self.facility.mutation_count)

    def test_apply_in_parallel(self):
        results = self.router.apply(parallel=True)
        self.assertEqual([("eth0", ACTIVE), ("eth1", ACTIVE)], self.states(results))
        self.assertPaired("eth0", "ifb0")
        self.assertPaired("eth1", "ifb1")

    def test_apply_many_interfaces_in_parallel(self):
        names = [f"eth{i}" for i in range(8)]
        facility = self.make_facility(*names)
        router = RouterStateController(
            self.make_registry(*names), facility, parallel=True
        )
        results = router.apply()
        self.assertEqual(names, [r.interface for r in results])
        self.assertTrue(results.all_active)
        self.assertEqual(8, len(facility.ifbs()))
        for idx, name in enumerate(names):
            self.assertEqual(f"ifb{idx}", facility.rules_for(name)[0].target)

    def test_target_creation_failure_is_per_interface(self):
        self.facility.max_ifbs = 1
        results = self.router.apply()
        self.assertEqual([("eth0", ACTIVE), ("eth1", FAILED)], self.states(results))
        error = results.filter(interface="eth1")[0].error
        self.assertIsInstance(error, VirtualTargetCreationError)
        self.assertEqual(["eth1"], [r.interface for r in results.failed()])
        self.assertFalse(results.all_active)
        self.assertPaired("eth0", "ifb0")
        self.assertEqual([], self.facility.rules_for("eth1"))

    def test_target_creation_failure_in_parallel(self):
        self.facility.fail("add_ifb", "ifb1", stderr="No space left on device")
        results = self.router.apply(parallel=True)
        self.assertEqual([("eth0", ACTIVE), ("eth1", FAILED)], self.states(results))
        self.assertIsInstance(results[1].error, VirtualTargetCreationError)

    def test_foreign_capture_point(self):
        foreign = CapturePoint("eth0", kind="clsact", handle="ffff:")
        self.facility.capture_points["eth0"] = foreign
        results = self.router.apply()
        self.assertEqual([("eth0", FAILED), ("eth1", ACTIVE)], self.states(results))
        self.assertIsInstance(
            results[0].error, CapturePointExistsWithConflictingConfigError
        )
        self.assertEqual(foreign, self.facility.capture_points["eth0"])
        self.assertEqual([], self.facility.rules_for("eth0"))

    def test_missing_interface(self):
        facility = self.make_facility("eth0")
        router = RouterStateController(self.make_registry("eth0", "eth1"), facility)
        results = router.apply()
        self.assertEqual([("eth0", ACTIVE), ("eth1", FAILED)], self.states(results))
        self.assertIsInstance(results[1].error, RuleInstallationError)

    def test_failed_interface_recovers_on_reapply(self):
        self.facility.fail("add_rule", "eth1")
        results = self.router.apply()
        self.assertEqual(FAILED, results[1].state)
        self.facility.heal("add_rule", "eth1")
        results = self.router.apply()
        self.assertTrue(results.all_active)
        self.assertPaired("eth1", "ifb1")

    def test_forwarding_already_enabled(self):
        self.facility.ip_forward = True
        self.router.apply()
        self.assertNotIn(("set_ip_forwarding", "True"), self.facility.mutations)

    def test_forwarding_disabled_in_configuration(self):
        router = RouterStateController(
            self.make_registry("eth0", "eth1"), self.facility, ip_forward=False
        )
        router.apply()
        self.assertFalse(self.facility.ip_forward)

    def test_forwarding_failure_is_fatal(self):
        self.facility.fail("set_ip_forwarding", "")
        with self.assertRaises(ForwardingError):
            self.router.apply()
        self.assertEqual([], self.facility.mutations)

    def test_empty_registry(self):
        router = RouterStateController(self.make_registry(), self.facility)
        results = router.apply()
        self.assertEqual([], results)
        self.assertFalse(results.all_active)

    def test_from_configuration(self):
        conf = Configuration.from_dictionary(
            {
                "interfaces": [{"name": "eth0"}, {"name": "eth1"}],
                "target_prefix": "v",
                "ip_forward": False,
            }
        )
        router = RouterStateController.from_configuration(conf, self.facility)
        results = router.apply()
        self.assertEqual(["v0", "v1"], [r.target for r in results])
        self.assertEqual({"eth0": "v0", "eth1": "v1"}, router.attachment_points())


class TestTeardown(ControllerTest):
    def test_teardown(self):
        self.router.apply()
        results = self.router.teardown()
        self.assertEqual(
            [("eth0", UNCONFIGURED), ("eth1", UNCONFIGURED)], self.states(results)
        )
        self.assertEqual([], self.facility.ifbs())
        self.assertEqual({}, self.facility.capture_points)
        self.assertEqual([], self.facility.rules_for("eth0"))
        self.assertEqual([], self.facility.rules_for("eth1"))
        self.assertFalse(self.facility.ip_forward)
        self.assertEqual({}, self.router.attachment_points())

    def test_teardown_removes_rule_before_target(self):
        self.router.apply()
        self.facility.mutations.clear()
        self.router.teardown()
        ops = [m[:2] for m in self.facility.mutations]
        self.assertLess(
            ops.index(("delete_rule", "eth0")), ops.index(("delete_link", "ifb0"))
        )
        self.assertLess(
            ops.index(("delete_capture_point", "eth0")),
            ops.index(("delete_link", "ifb0")),
        )

    def test_teardown_then_apply(self):
        self.router.apply()
        self.router.teardown()
        results = self.router.apply()
        self.assertTrue(results.all_active)
        self.assertPaired("eth0", "ifb0")
        self.assertPaired("eth1", "ifb1")

    def test_teardown_twice(self):
        self.router.apply()
        self.router.teardown()
        before = self.facility.mutation_count
        results = self.router.teardown()
        self.assertEqual(before, self.facility.mutation_count)
        self.assertEqual(
            [("eth0", UNCONFIGURED), ("eth1", UNCONFIGURED)], self.states(results)
        )

    def test_teardown_without_apply_does_nothing(self):
        self.router.teardown()
        self.assertEqual([], self.facility.mutations)

    def test_forced_teardown_from_a_new_controller(self):
        self.router.apply()
        router = RouterStateController(
            self.make_registry("eth0", "eth1"), self.facility
        )
        router.teardown(force=True)
        self.assertEqual([], self.facility.ifbs())
        self.assertEqual({}, self.facility.capture_points)
        # only the controller which enabled forwarding disables it
        self.assertTrue(self.facility.ip_forward)

    def test_teardown_of_a_failed_interface(self):
        self.facility.fail("add_rule", "eth1")
        self.router.apply()
        self.router.teardown()
        self.assertEqual([], self.facility.ifbs())

    def test_teardown_keeps_foreign_configuration(self):
        foreign = CapturePoint("eth0", kind="clsact", handle="ffff:")
        self.facility.capture_points["eth0"] = foreign
        self.router.apply()
        results = self.router.teardown()
        self.assertEqual(
            [("eth0", UNCONFIGURED), ("eth1", UNCONFIGURED)], self.states(results)
        )
        self.assertEqual(foreign, self.facility.capture_points["eth0"])

    def test_teardown_failure(self):
        self.router.apply()
        self.facility.fail("delete_link", "ifb1")
        results = self.router.teardown()
        self.assertEqual(
            [("eth0", UNCONFIGURED), ("eth1", FAILED)], self.states(results)
        )
        self.assertIsInstance(results[1].error, TeardownError)
        # forwarding stays on while something is left
        self.assertTrue(self.facility.ip_forward)

    def test_teardown_when_forwarding_cant_be_disabled(self):
        self.router.apply()
        self.facility.fail("set_ip_forwarding", "")
        with self.assertLogs("netemrouter.controller", level="ERROR") as logs:
            results = self.router.teardown()
        self.assertIn("Unable to disable IP forwarding", "\n".join(logs.output))
        self.assertEqual(
            [("eth0", UNCONFIGURED), ("eth1", UNCONFIGURED)], self.states(results)
        )
        self.assertEqual([], self.facility.ifbs())
        self.assertTrue(self.facility.ip_forward)
        # tried again by the next teardown
        self.facility.heal("set_ip_forwarding", "")
        self.router.teardown()
        self.assertFalse(self.facility.ip_forward)

    def test_forced_teardown_reports_leftover_capture_point(self):
        self.facility.fail("add_rule", "eth0")
        self.facility.fail("delete_capture_point", "eth0")
        self.router.apply()
        self.facility.heal("add_rule", "eth0")
        self.facility.heal("delete_capture_point", "eth0")
        router = RouterStateController(
            self.make_registry("eth0", "eth1"), self.facility
        )
        results = router.teardown(force=True)
        self.assertEqual(
            [("eth0", FAILED), ("eth1", UNCONFIGURED)], self.states(results)
        )
        self.assertIsInstance(results[0].error, TeardownError)
        self.assertIn("eth0", self.facility.capture_points)
        # the controller which created it can remove it
        results = self.router.teardown()
        self.assertEqual(UNCONFIGURED, results[0].state)
        self.assertNotIn("eth0", self.facility.capture_points)


class TestReporting(ControllerTest):
    def test_status_before_apply(self):
        results = self.router.status()
        self.assertEqual(
            [("eth0", UNCONFIGURED), ("eth1", UNCONFIGURED)], self.states(results)
        )

    def test_status_after_apply(self):
        self.router.apply()
        self.assertTrue(self.router.status().all_active)

    def test_status_is_a_copy(self):
        self.router.apply()
        self.router.status()[0].state = FAILED
        self.assertTrue(self.router.status().all_active)

    def test_attachment_points(self):
        self.facility.max_ifbs = 1
        self.router.apply()
        self.assertEqual({"eth0": "ifb0"}, self.router.attachment_points())

    def test_inspect(self):
        self.router.apply()
        router = RouterStateController(
            self.make_registry("eth0", "eth1"), self.facility
        )
        before = self.facility.mutation_count
        results = router.inspect()
        self.assertEqual([("eth0", ACTIVE), ("eth1", ACTIVE)], self.states(results))
        self.assertEqual(before, self.facility.mutation_count)
        # the state found is used by teardown
        router.teardown()
        self.assertEqual([], self.facility.ifbs())

    def test_inspect_partial(self):
        self.facility.add_device("ifb0", kind="ifb")
        self.facility.capture_points["eth1"] = CapturePoint("eth1")
        results = self.router.inspect()
        self.assertEqual(
            [("eth0", InterfaceState.VIRTUAL_TARGET_READY), ("eth1", FAILED)],
            self.states(results),
        )
        self.assertIsInstance(
            results[1].error, CapturePointExistsWithConflictingConfigError
        )

    def test_results_to_dict(self):
        self.facility.max_ifbs = 1
        results = self.router.apply()
        d = results.to_dict()
        self.assertEqual(
            dict(
                interface="eth0",
                role="role-0",
                state="active",
                target="ifb0",
                error=None,
            ),
            d[0],
        )
        self.assertEqual("failed", d[1]["state"])
        self.assertTrue(d[1]["error"].startswith("VirtualTargetCreationError"))
