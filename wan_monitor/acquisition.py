"""
Acquisition facade: pick the REST or SNMP client from configuration.

Both clients return the same normalized list of InterfaceStatus, so the
tracker and the API do not care which one produced it.
"""

from typing import List, Protocol

from wan_monitor.api_client import RestAcquisitionClient
from wan_monitor.config import Settings
from wan_monitor.schemas import InterfaceStatus
from wan_monitor.snmp_client import SnmpAcquisitionClient


class AcquisitionClient(Protocol):
    async def get_wan_statuses(self) -> List[InterfaceStatus]: ...


def build_client(settings: Settings) -> AcquisitionClient:
    """Return the client selected by FETCH_METHOD (evaluated on every call)."""
    if settings.fetch_method == "snmp":
        return SnmpAcquisitionClient(settings)
    return RestAcquisitionClient(settings)


async def get_wan_statuses(settings: Settings) -> List[InterfaceStatus]:
    """
    Main entry point used by the API and the collector.

    No retry and no merging: the selected client's result (or exception)
    is passed through unchanged.
    """
    return await build_client(settings).get_wan_statuses()
