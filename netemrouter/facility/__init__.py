"""
The host networking state is only reached through a
:py:class:`~netemrouter.facility.base.NetworkFacility`.

- :py:class:`~netemrouter.facility.iproute2.IpRoute2Facility` drives the
  ``ip`` and ``tc`` tools of ``iproute2`` and the sysctl tree of the host.
- :py:class:`~netemrouter.facility.memory.InMemoryFacility` keeps everything
  in memory. It is used by the tests and by the ``--dry-run`` mode of the
  command line.

.. note::

  Requirements for the ``iproute2`` facility:

    - ``ifb`` module available (``ip link add ... type ifb`` loads it)
    - ``tc`` and ``ip`` supporting the ``-json`` output
    - ``CAP_NET_ADMIN``
"""
from .base import NetworkFacility
from .iproute2 import IpRoute2Facility
from .memory import InMemoryFacility

__all__ = ["NetworkFacility", "IpRoute2Facility", "InMemoryFacility"]
