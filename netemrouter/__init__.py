# flake8: noqa
import logging
from typing import Any, Dict

from netemrouter.config import config_context, get_config, set_config
from netemrouter.configuration import Configuration, InterfaceConfiguration
from netemrouter.controller import RouterStateController
from netemrouter.errors import (
    CapturePointExistsWithConflictingConfigError,
    DuplicateInterfaceError,
    FacilityError,
    ForwardingError,
    RouterError,
    RuleInstallationError,
    TeardownError,
    VirtualTargetCreationError,
)
from netemrouter.facility import InMemoryFacility, IpRoute2Facility, NetworkFacility
from netemrouter.objects import (
    InterfaceResult,
    InterfaceState,
    LinkState,
    PhysicalInterface,
    RedirectionRule,
    Results,
    VirtualTarget,
)
from netemrouter.provisioner import VirtualTargetProvisioner
from netemrouter.redirection import RedirectionInstaller, rule_pref
from netemrouter.registry import InterfaceRegistry

from .version import __version__


def init_logging(level=logging.INFO, **kwargs):
    """Enable Rich display of log messages.

    kwargs: kwargs passed to RichHandler.
      netemrouter chooses some defaults for you
        show_time=False,
    """
    from rich.logging import RichHandler

    default_kwargs: Dict[str, Any] = dict(
        show_time=False,
    )

    default_kwargs.update(**kwargs)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(**default_kwargs)],
    )

    return logging
