"""
Manage the process wide settings of netemrouter.
"""
import copy
import logging
from contextlib import contextmanager
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

_config = dict(
    ip_binary="ip",
    tc_binary="tc",
    sysctl_root="/proc/sys",
    summary="table",
)


def get_config() -> Dict:
    """Get (a copy of) the current config."""
    return copy.deepcopy(_config)


def _set(key: str, value: Optional[Any]):
    if value is not None:
        _config[key] = value


def set_config(
    ip_binary: Optional[str] = None,
    tc_binary: Optional[str] = None,
    sysctl_root: Optional[str] = None,
    summary: Optional[str] = None,
):
    """Set a specific config value.

    Args:
        ip_binary: path (or name) of the iproute2 ``ip`` binary
        tc_binary: path (or name) of the iproute2 ``tc`` binary
        sysctl_root: where the sysctl tree is mounted. Changing it is mostly
            useful to point the forwarding toggle at a scratch directory.
        summary: how the CLI renders the per interface outcome
            ``table``: a Rich table
            ``json``: a JSON document on stdout
    """
    _set("ip_binary", ip_binary)
    _set("tc_binary", tc_binary)
    _set("sysctl_root", sysctl_root)
    _set("summary", summary)

    logger.debug("config = %s", get_config())


@contextmanager
def config_context(**new_config):
    """A context manager to manage a config specific to a portion of code.

    The original config is restored when exiting the context manager.

    Args:
        new_config: any keyword argument supported by
            :py:func:`~netemrouter.config.set_config`

    Examples:

        .. code-block:: python

            from netemrouter.config import config_context

            with config_context(tc_binary="/usr/sbin/tc"):
                controller.apply()
    """
    old_config = get_config()
    set_config(**new_config)
    try:
        yield
    finally:
        set_config(**old_config)
