"""
Pydantic models ("schemas") shared by the acquisition clients, the state
tracker and the API layer.

Python attributes are snake_case; the JSON wire form uses camelCase aliases
so the dashboard keeps its field names (`linkStatus`, `ipAddress`, ...).
All models are frozen: once a poll result or log entry exists it is never
mutated, which lets the tracker hand out snapshots by copying containers.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class LinkStatus(str, Enum):
    """Tri-state link classification."""

    UP = "up"
    DOWN = "down"
    UNKNOWN = "unknown"

    @property
    def resolved(self) -> bool:
        return self is not LinkStatus.UNKNOWN


class _Model(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class InterfaceStatus(_Model):
    """
    One WAN interface as seen by a single poll.

    REST results leave the SNMP-only counters unset (they are omitted from
    the JSON); SNMP results set `ip_mode`/`comment` explicitly to None.
    """

    name: str
    link_status: LinkStatus = LinkStatus.UNKNOWN
    ip_address: Optional[str] = None
    subnet_mask: Optional[str] = None
    link_speed: Optional[str] = None
    ip_mode: Optional[str] = None
    zone: Optional[str] = None
    comment: Optional[str] = None

    # SNMP-only
    mac_address: Optional[str] = None
    mtu: Optional[int] = None
    bytes_in: Optional[int] = None
    bytes_out: Optional[int] = None
    packets_in: Optional[int] = None
    packets_out: Optional[int] = None
    errors_in: Optional[int] = None
    errors_out: Optional[int] = None
    last_change_ticks: Optional[int] = None


class LinkState(_Model):
    """Last known link status of an interface and when it last changed."""

    link_status: LinkStatus
    last_change_time: datetime


class EventLogEntry(_Model):
    """
    A link transition.

    `duration` is the time spent in the previous state, in milliseconds. It is
    left unset for the first observation of an interface.
    """

    id: int
    interface_name: str
    event: LinkStatus
    timestamp: datetime
    duration: Optional[int] = None


class TrafficSample(_Model):
    timestamp: datetime
    bytes_in: int
    bytes_out: int


class Bandwidth(_Model):
    """Average byte rates over a window."""

    bytes_in_per_sec: float
    bytes_out_per_sec: float


class InterfaceBandwidth(_Model):
    """Short-window and 60 second rates; None means "rate unavailable"."""

    short: Optional[Bandwidth]
    minute: Optional[Bandwidth]


class TrackerSnapshot(_Model):
    server_started_at: datetime
    isp_states: Dict[str, LinkState]
    event_log: List[EventLogEntry]


class SystemInfo(_Model):
    """SNMPv2-MIB system group of the monitored device."""

    name: str
    description: str
    uptime_ticks: int
    location: Optional[str] = None
    contact: Optional[str] = None


class StatusResponse(_Model):
    """
    Payload of GET /api/isp-status.

    - statuses: normalized interfaces from this poll
    - isp_states / event_log: tracker snapshot taken right after the poll
    - bandwidth: per-interface rates (SNMP only; empty under REST)
    """

    ok: bool
    fetched_at: datetime
    statuses: List[InterfaceStatus]
    server_started_at: datetime
    isp_states: Dict[str, LinkState]
    event_log: List[EventLogEntry]
    isp_names: Dict[str, str]
    bandwidth: Dict[str, InterfaceBandwidth]
    short_window_seconds: int


class ErrorResponse(_Model):
    ok: bool = False
    error: str
