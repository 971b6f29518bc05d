import json
import logging
import subprocess
from pathlib import Path
from typing import Dict, List, Optional

from netemrouter.config import get_config
from netemrouter.constants import (
    IFB_KIND,
    INGRESS_HANDLE,
    INGRESS_KIND,
    IPV4_FORWARD_KEY,
)
from netemrouter.errors import FacilityError
from netemrouter.objects import CapturePoint, Link, LinkState, RedirectionRule

from .base import NetworkFacility

logger = logging.getLogger(__name__)

# Parent of the qdiscs attached on the ingress side (ingress and clsact)
INGRESS_PARENT = "ffff:fff1"

NO_SUCH_DEVICE = ("does not exist", "Cannot find device")


def _missing_device(stderr: str) -> bool:
    return any(m in stderr for m in NO_SUCH_DEVICE)


def _load(cmd: List[str], stdout: str) -> List[Dict]:
    # tc prints nothing at all when there's nothing to show
    if not stdout.strip():
        return []
    try:
        return json.loads(stdout)
    except ValueError as err:
        raise FacilityError(cmd, 0, f"unparsable output: {err}") from err


class IpRoute2Facility(NetworkFacility):
    """Apply the configuration on the local host using ``ip`` and ``tc``.

    Args:
        ip_binary: the ``ip`` binary to use (default to the config value)
        tc_binary: the ``tc`` binary to use (default to the config value)
        sysctl_root: where the sysctl tree lives (default to the config value)
    """

    def __init__(
        self,
        ip_binary: Optional[str] = None,
        tc_binary: Optional[str] = None,
        sysctl_root: Optional[str] = None,
    ):
        config = get_config()
        self.ip_binary = ip_binary or config["ip_binary"]
        self.tc_binary = tc_binary or config["tc_binary"]
        self.sysctl_root = Path(sysctl_root or config["sysctl_root"])

    def _run(self, cmd: List[str], check: bool = True) -> subprocess.CompletedProcess:
        logger.debug("Running command: %s", " ".join(cmd))
        try:
            process = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as err:
            # e.g. the binary isn't installed
            raise FacilityError(cmd, 127, str(err)) from err
        if check and process.returncode != 0:
            raise FacilityError(cmd, process.returncode, process.stderr)
        return process

    def _ip(self, *args: str, check: bool = True) -> subprocess.CompletedProcess:
        return self._run([self.ip_binary, *args], check=check)

    def _tc(self, *args: str, check: bool = True) -> subprocess.CompletedProcess:
        return self._run([self.tc_binary, *args], check=check)

    # links

    def get_link(self, name: str) -> Optional[Link]:
        process = self._ip(
            "-details", "-json", "link", "show", "dev", name, check=False
        )
        if process.returncode != 0:
            if _missing_device(process.stderr):
                return None
            raise FacilityError(process.args, process.returncode, process.stderr)
        links = _load(process.args, process.stdout)
        if not links:
            return None
        link = links[0]
        state = LinkState.UP if "UP" in link.get("flags", []) else LinkState.DOWN
        kind = link.get("linkinfo", {}).get("info_kind")
        return Link(name=link.get("ifname", name), kind=kind, state=state)

    def add_ifb(self, name: str):
        self._ip("link", "add", name, "type", IFB_KIND)

    def set_link_up(self, name: str):
        self._ip("link", "set", "dev", name, "up")

    def delete_link(self, name: str):
        self._ip("link", "delete", "dev", name)

    # ingress capture points

    def get_capture_point(self, device: str) -> Optional[CapturePoint]:
        process = self._tc("-json", "qdisc", "show", "dev", device, check=False)
        if process.returncode != 0:
            if _missing_device(process.stderr):
                return None
            raise FacilityError(process.args, process.returncode, process.stderr)
        for qdisc in _load(process.args, process.stdout):
            if qdisc.get("parent") == INGRESS_PARENT or qdisc.get("kind") in (
                INGRESS_KIND,
                "clsact",
            ):
                return CapturePoint(
                    device=device,
                    kind=qdisc.get("kind", ""),
                    handle=qdisc.get("handle", ""),
                )
        return None

    def add_capture_point(self, device: str):
        self._tc("qdisc", "add", "dev", device, "handle", INGRESS_HANDLE, INGRESS_KIND)

    def delete_capture_point(self, device: str):
        self._tc("qdisc", "del", "dev", device, "handle", INGRESS_HANDLE, INGRESS_KIND)

    # redirect rules

    def _filters(self, device: str, *selector: str) -> List[Dict]:
        process = self._tc(
            "-json", "filter", "show", "dev", device, "parent", INGRESS_HANDLE,
            *selector,
        )
        return _load(process.args, process.stdout)

    def get_rule(self, device: str, pref: int) -> Optional[RedirectionRule]:
        filters = [
            f for f in self._filters(device, "pref", str(pref)) if f.get("pref") == pref
        ]
        if not filters:
            return None
        # u32 lists its hash table(s) first, the actual filter carries the actions
        target = ""
        for f in filters:
            for action in f.get("options", {}).get("actions", []):
                if action.get("kind") == "mirred" and action.get("to_dev"):
                    target = action["to_dev"]
        return RedirectionRule(device=device, target=target, pref=pref)

    def add_rule(self, rule: RedirectionRule):
        self._tc("filter", "add", "dev", rule.device, *rule.tc_args())

    def delete_rule(self, device: str, pref: int):
        self._tc(
            "filter",
            "del",
            "dev",
            device,
            "parent",
            INGRESS_HANDLE,
            "protocol",
            "all",
            "pref",
            str(pref),
        )

    def count_rules(self, device: str) -> int:
        return len({f.get("pref") for f in self._filters(device)})

    # forwarding

    def _sysctl(self, key: str) -> Path:
        return self.sysctl_root / key

    def get_ip_forwarding(self) -> bool:
        path = self._sysctl(IPV4_FORWARD_KEY)
        try:
            return path.read_text().strip() == "1"
        except OSError as err:
            raise FacilityError(["cat", str(path)], 1, str(err)) from err

    def set_ip_forwarding(self, enabled: bool):
        path = self._sysctl(IPV4_FORWARD_KEY)
        value = "1" if enabled else "0"
        logger.debug("Writing %s to %s", value, path)
        try:
            path.write_text(f"{value}\n")
        except OSError as err:
            cmd = ["sysctl", "-w", f"{path}={value}"]
            raise FacilityError(cmd, 1, str(err)) from err
