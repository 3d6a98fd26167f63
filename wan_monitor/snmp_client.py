"""
SNMP client for WAN interface status.

Uses pysnmp's asyncio high-level API (SNMPv2c) to:

1. walk ifDescr and resolve the wanted interface names (X1, X2, ...) to ifIndex
2. walk ipAddrTable to find the address/mask bound to each ifIndex
3. fetch status, speed, MAC, MTU, last change and traffic counters for all
   wanted interfaces in one batched GET

Unlike the REST API this path also returns byte/packet/error counters, which
the tracker turns into bandwidth figures.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pyasn1.type.univ import OctetString
from pysnmp.hlapi.v3arch.asyncio import (
    CommunityData,
    ContextData,
    ObjectIdentity,
    ObjectType,
    SnmpEngine,
    UdpTransportTarget,
    get_cmd,
    walk_cmd,
)
from pysnmp.error import PySnmpError
from pysnmp.proto.rfc1905 import EndOfMibView, NoSuchInstance, NoSuchObject

from wan_monitor.config import Settings
from wan_monitor.errors import ResolutionError, TransportError
from wan_monitor.schemas import InterfaceStatus, LinkStatus, SystemInfo

logger = logging.getLogger(__name__)


class SnmpError(TransportError):
    """Raised when SNMP retrieval fails."""


VarBind = Tuple[str, Any]

# Standard SNMP OIDs
OID = {
    # System group
    "sysDescr": "1.3.6.1.2.1.1.1.0",
    "sysUpTime": "1.3.6.1.2.1.1.3.0",
    "sysContact": "1.3.6.1.2.1.1.4.0",
    "sysName": "1.3.6.1.2.1.1.5.0",
    "sysLocation": "1.3.6.1.2.1.1.6.0",
    # ifTable
    "ifDescr": "1.3.6.1.2.1.2.2.1.2",
    "ifMtu": "1.3.6.1.2.1.2.2.1.4",
    "ifSpeed": "1.3.6.1.2.1.2.2.1.5",
    "ifPhysAddress": "1.3.6.1.2.1.2.2.1.6",
    "ifOperStatus": "1.3.6.1.2.1.2.2.1.8",
    "ifLastChange": "1.3.6.1.2.1.2.2.1.9",
    "ifInUcastPkts": "1.3.6.1.2.1.2.2.1.11",
    "ifInErrors": "1.3.6.1.2.1.2.2.1.14",
    "ifOutUcastPkts": "1.3.6.1.2.1.2.2.1.17",
    "ifOutErrors": "1.3.6.1.2.1.2.2.1.20",
    # ifXTable 64-bit counters
    "ifHCInOctets": "1.3.6.1.2.1.31.1.1.1.6",
    "ifHCOutOctets": "1.3.6.1.2.1.31.1.1.1.10",
    # ipAddrTable
    "ipAdEntAddr": "1.3.6.1.2.1.4.20.1.1",
    "ipAdEntIfIndex": "1.3.6.1.2.1.4.20.1.2",
    "ipAdEntNetMask": "1.3.6.1.2.1.4.20.1.3",
}

# Order of the per-interface groups in the batched GET.
STATUS_COLUMNS = (
    "ifOperStatus",
    "ifSpeed",
    "ifPhysAddress",
    "ifMtu",
    "ifLastChange",
    "ifHCInOctets",
    "ifHCOutOctets",
    "ifInUcastPkts",
    "ifOutUcastPkts",
    "ifInErrors",
    "ifOutErrors",
)

_IF_NAME_RE = re.compile(r"^(X\d+)", re.IGNORECASE)

_EMPTY_VALUES = (NoSuchObject, NoSuchInstance, EndOfMibView)


# ---------------------------------------------------------------------------
# Value helpers
# ---------------------------------------------------------------------------


def _is_empty(value: Any) -> bool:
    return value is None or isinstance(value, _EMPTY_VALUES)


def _octets(value: Any) -> Optional[bytes]:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, OctetString):
        return value.asOctets()
    return None


def _text(value: Any) -> Optional[str]:
    if _is_empty(value):
        return None
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    if hasattr(value, "prettyPrint"):
        return value.prettyPrint()
    return str(value)


def to_number(value: Any) -> int:
    """
    Normalize an SNMP counter to a Python int.

    Counters may come back as a native number, a pyasn1 integer type
    (Counter64 etc.) or a raw big-endian byte string. Anything else is 0.
    """
    if _is_empty(value):
        return 0
    octets = _octets(value)
    if octets is not None:
        return int.from_bytes(octets, "big", signed=False)
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _optional_int(value: Any) -> Optional[int]:
    return None if _is_empty(value) else to_number(value)


def format_speed(bps: Optional[int]) -> Optional[str]:
    """Format ifSpeed to the largest fitting unit, no decimals."""
    if not bps:
        return None
    if bps >= 1_000_000_000:
        return f"{bps / 1_000_000_000:.0f} Gbps"
    if bps >= 1_000_000:
        return f"{bps / 1_000_000:.0f} Mbps"
    if bps >= 1_000:
        return f"{bps / 1_000:.0f} Kbps"
    return f"{bps} bps"


def format_mac(value: Any) -> Optional[str]:
    """ifPhysAddress bytes -> "00:11:22:AA:BB:CC"."""
    octets = _octets(value)
    if not octets:
        return None
    return ":".join(f"{b:02X}" for b in octets)


def link_status_from_oper(value: Any) -> LinkStatus:
    """IF-MIB ifOperStatus: 1=up, 2=down, everything else unknown."""
    code = _optional_int(value)
    if code == 1:
        return LinkStatus.UP
    if code == 2:
        return LinkStatus.DOWN
    return LinkStatus.UNKNOWN


def _suffix(oid: str, base: str) -> str:
    """Index part of an OID below a table column, e.g. "10.0.0.1"."""
    return oid[len(base) + 1:] if oid.startswith(base + ".") else oid.rsplit(".", 1)[-1]


def resolve_interface_indexes(
    descr_results: Sequence[VarBind], wanted: Sequence[str]
) -> Dict[str, int]:
    """
    Map wanted interface names to ifIndex using the ifDescr walk.

    Descriptions look like "X1", "X1 V100" or "x2 (WAN)"; only the leading
    X<digits> token is used.
    """
    wanted_set = {w.upper() for w in wanted}
    indexes: Dict[str, int] = {}
    for oid, value in descr_results:
        descr = _text(value)
        if not descr:
            continue
        match = _IF_NAME_RE.match(descr.strip())
        if not match:
            continue
        name = match.group(1).upper()
        if name in wanted_set and name not in indexes:
            indexes[name] = int(oid.rsplit(".", 1)[-1])
    return indexes


def correlate_ip_addresses(
    addr_results: Sequence[VarBind],
    ifindex_results: Sequence[VarBind],
    mask_results: Sequence[VarBind],
) -> Dict[int, Tuple[str, Optional[str]]]:
    """
    Build ifIndex -> (address, mask) from the three ipAddrTable walks.

    Rows are joined on their OID index (the IP address itself) rather than
    by position, so walks of different length or order cannot mis-pair.
    """
    addresses = {
        _suffix(oid, OID["ipAdEntAddr"]): _text(value) for oid, value in addr_results
    }
    masks = {
        _suffix(oid, OID["ipAdEntNetMask"]): _text(value) for oid, value in mask_results
    }

    by_if_index: Dict[int, Tuple[str, Optional[str]]] = {}
    for oid, value in ifindex_results:
        if_index = _optional_int(value)
        key = _suffix(oid, OID["ipAdEntIfIndex"])
        address = addresses.get(key) or key
        if not if_index or not address:
            continue
        by_if_index[if_index] = (address, masks.get(key))
    return by_if_index


def build_status_oids(indexes: Sequence[int]) -> List[str]:
    """All eleven columns for every index, appended column by column."""
    return [f"{OID[column]}.{i}" for column in STATUS_COLUMNS for i in indexes]


def split_status_results(results: Sequence[VarBind], count: int) -> Dict[str, List[Any]]:
    """Slice the flat GET result back into one value list per column."""
    if len(results) != count * len(STATUS_COLUMNS):
        raise SnmpError(
            f"Expected {count * len(STATUS_COLUMNS)} varbinds, got {len(results)}"
        )
    return {
        column: [value for _, value in results[n * count:(n + 1) * count]]
        for n, column in enumerate(STATUS_COLUMNS)
    }


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class SnmpAcquisitionClient:
    """
    Fetch WAN interface status over SNMPv2c.

    A fresh SnmpEngine is used for every poll and its dispatcher is always
    closed on exit, success or failure.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.auth = CommunityData(settings.snmp_community, mpModel=1)  # SNMP v2c

    async def _target(self) -> UdpTransportTarget:
        # Address resolution happens here, not in the command, so errors are
        # raised rather than reported as an errorIndication.
        try:
            return await UdpTransportTarget.create(
                (self.settings.snmp_host, self.settings.snmp_port),
                timeout=self.settings.snmp_timeout_seconds,
                retries=self.settings.snmp_retries,
            )
        except (PySnmpError, OSError) as exc:
            raise SnmpError(
                f"Cannot reach SNMP agent {self.settings.snmp_host}:{self.settings.snmp_port}: {exc}"
            ) from exc

    @staticmethod
    def _check(error_indication, error_status, error_index, var_binds) -> None:
        if error_indication:
            raise SnmpError(str(error_indication))
        if error_status:
            where = error_index and var_binds[int(error_index) - 1][0] or "?"
            raise SnmpError(f"{error_status.prettyPrint()} at {where}")

    async def _walk(self, engine: SnmpEngine, oid: str) -> List[VarBind]:
        """Walk one subtree, returning (numeric oid, value) pairs."""
        results: List[VarBind] = []
        async for error_indication, error_status, error_index, var_binds in walk_cmd(
            engine,
            self.auth,
            await self._target(),
            ContextData(),
            ObjectType(ObjectIdentity(oid)),
            lexicographicMode=False,
            lookupMib=False,
        ):
            self._check(error_indication, error_status, error_index, var_binds)
            for name, value in var_binds:
                if isinstance(value, EndOfMibView):
                    continue
                results.append((str(name), value))
        logger.debug("Walk %s returned %d varbind(s)", oid, len(results))
        return results

    async def _get(self, engine: SnmpEngine, oids: Sequence[str]) -> List[VarBind]:
        """Single GET request for all `oids`, results in request order."""
        error_indication, error_status, error_index, var_binds = await get_cmd(
            engine,
            self.auth,
            await self._target(),
            ContextData(),
            *[ObjectType(ObjectIdentity(oid)) for oid in oids],
            lookupMib=False,
        )
        self._check(error_indication, error_status, error_index, var_binds)
        return [(str(name), value) for name, value in var_binds]

    async def get_wan_statuses(self) -> List[InterfaceStatus]:
        wanted = self.settings.sonicwall_wan_interfaces
        engine = SnmpEngine()
        try:
            descr = await self._walk(engine, OID["ifDescr"])
            indexes = resolve_interface_indexes(descr, wanted)
            if not indexes:
                raise ResolutionError(
                    f"No matching interfaces found for: {', '.join(wanted)}"
                )
            logger.debug("Resolved interfaces %s", indexes)

            ip_by_index = correlate_ip_addresses(
                await self._walk(engine, OID["ipAdEntAddr"]),
                await self._walk(engine, OID["ipAdEntIfIndex"]),
                await self._walk(engine, OID["ipAdEntNetMask"]),
            )

            names = list(indexes)
            index_list = [indexes[name] for name in names]
            results = await self._get(engine, build_status_oids(index_list))
            columns = split_status_results(results, len(index_list))
        finally:
            engine.close_dispatcher()

        statuses: List[InterfaceStatus] = []
        for i, name in enumerate(names):
            ip_info = ip_by_index.get(index_list[i])
            speed = _optional_int(columns["ifSpeed"][i])
            statuses.append(
                InterfaceStatus(
                    name=name,
                    link_status=link_status_from_oper(columns["ifOperStatus"][i]),
                    ip_address=ip_info[0] if ip_info else None,
                    subnet_mask=ip_info[1] if ip_info else None,
                    link_speed=format_speed(speed),
                    ip_mode=None,
                    zone="WAN",
                    comment=None,
                    mac_address=format_mac(columns["ifPhysAddress"][i]),
                    mtu=_optional_int(columns["ifMtu"][i]),
                    bytes_in=to_number(columns["ifHCInOctets"][i]),
                    bytes_out=to_number(columns["ifHCOutOctets"][i]),
                    packets_in=to_number(columns["ifInUcastPkts"][i]),
                    packets_out=to_number(columns["ifOutUcastPkts"][i]),
                    errors_in=to_number(columns["ifInErrors"][i]),
                    errors_out=to_number(columns["ifOutErrors"][i]),
                    last_change_ticks=_optional_int(columns["ifLastChange"][i]),
                )
            )
        return statuses

    async def get_system_info(self) -> Optional[SystemInfo]:
        """
        Read the SNMPv2-MIB system group.

        Returns None when the agent cannot be reached; this is informational
        and must not fail the caller.
        """
        engine = SnmpEngine()
        try:
            results = await self._get(
                engine,
                [OID[k] for k in ("sysDescr", "sysUpTime", "sysName", "sysLocation", "sysContact")],
            )
        except SnmpError as exc:
            logger.warning("SNMP system info unavailable: %s", exc)
            return None
        finally:
            engine.close_dispatcher()

        values = [value for _, value in results] + [None] * 5
        return SystemInfo(
            description=_text(values[0]) or "",
            uptime_ticks=_optional_int(values[1]) or 0,
            name=_text(values[2]) or "",
            location=_text(values[3]) or None,
            contact=_text(values[4]) or None,
        )
