"""
Link state and traffic tracking across polls.

The tracker owns three collections for the lifetime of the process:

- isp_states:  last known LinkState per interface
- event_log:   up/down transitions, newest first, capped at MAX_EVENTS
- samples:     (timestamp, bytes_in, bytes_out) per interface, last 70 seconds

It is not thread-safe. Callers feed it one poll at a time and read it via
`snapshot()`, which copies the containers (the models themselves are frozen).
"""

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from wan_monitor.schemas import (
    Bandwidth,
    EventLogEntry,
    InterfaceBandwidth,
    InterfaceStatus,
    LinkState,
    LinkStatus,
    TrackerSnapshot,
    TrafficSample,
)

logger = logging.getLogger(__name__)

MAX_EVENTS = 100
SAMPLE_RETENTION = timedelta(seconds=70)
MINUTE_WINDOW_SECONDS = 60
MIN_ELAPSED_SECONDS = 1.0

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def short_window_seconds(poll_interval_seconds: float) -> int:
    """Short bandwidth window: at least five samples, never under 10 seconds."""
    return max(10, math.ceil(poll_interval_seconds) * 5)


def compute_bandwidth(
    samples: Sequence[TrafficSample],
    window_seconds: float,
    now: datetime,
) -> Optional[Bandwidth]:
    """
    Average byte rate over the samples taken in the last `window_seconds`.

    Returns None ("rate unavailable") when fewer than two samples fall in the
    window, when they are less than a second apart, or when a counter went
    backwards (reset or wraparound).
    """
    cutoff = now - timedelta(seconds=window_seconds)
    in_window = [s for s in samples if s.timestamp >= cutoff]
    if len(in_window) < 2:
        return None

    oldest, newest = in_window[0], in_window[-1]
    elapsed = (newest.timestamp - oldest.timestamp).total_seconds()
    if elapsed < MIN_ELAPSED_SECONDS:
        return None

    delta_in = newest.bytes_in - oldest.bytes_in
    delta_out = newest.bytes_out - oldest.bytes_out
    if delta_in < 0 or delta_out < 0:
        return None

    return Bandwidth(
        bytes_in_per_sec=delta_in / elapsed,
        bytes_out_per_sec=delta_out / elapsed,
    )


class StateTracker:
    """
    Turns successive poll results into transition events and traffic history.

    `clock` is injectable so tests can drive time explicitly.
    """

    def __init__(self, clock: Clock = utcnow):
        self._clock = clock
        self.server_started_at = clock()
        self._states: Dict[str, LinkState] = {}
        self._events: List[EventLogEntry] = []
        self._samples: Dict[str, List[TrafficSample]] = {}
        self._event_id = 0

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def _append_event(
        self,
        name: str,
        status: LinkStatus,
        now: datetime,
        previous: Optional[LinkState] = None,
    ) -> EventLogEntry:
        self._event_id += 1
        fields = dict(
            id=self._event_id,
            interface_name=name,
            event=status,
            timestamp=now,
        )
        if previous is not None:
            elapsed = now - previous.last_change_time
            fields["duration"] = int(elapsed.total_seconds() * 1000)
        entry = EventLogEntry(**fields)
        self._events.insert(0, entry)
        return entry

    def _update_link(self, status: InterfaceStatus, now: datetime) -> Optional[EventLogEntry]:
        name = status.name
        current = status.link_status
        previous = self._states.get(name)

        if previous is None:
            self._states[name] = LinkState(link_status=current, last_change_time=now)
            if current.resolved:
                logger.info("%s first seen %s", name, current.value)
                return self._append_event(name, current, now)
            return None

        # UNKNOWN carries no information: keep the stored state untouched.
        if not current.resolved or current is previous.link_status:
            return None

        entry = self._append_event(name, current, now, previous)
        self._states[name] = LinkState(link_status=current, last_change_time=now)
        logger.info(
            "%s went %s after %.0fs %s",
            name,
            current.value,
            entry.duration / 1000,
            previous.link_status.value,
        )
        return entry

    def _record_traffic(self, status: InterfaceStatus, now: datetime) -> None:
        if status.bytes_in is None:
            return
        cutoff = now - SAMPLE_RETENTION
        kept = [s for s in self._samples.get(status.name, []) if s.timestamp >= cutoff]
        kept.append(
            TrafficSample(
                timestamp=now,
                bytes_in=status.bytes_in,
                bytes_out=status.bytes_out or 0,
            )
        )
        self._samples[status.name] = kept

    def process(
        self,
        statuses: Iterable[InterfaceStatus],
        now: Optional[datetime] = None,
    ) -> List[EventLogEntry]:
        """
        Apply one poll result. Returns the events it produced, oldest first.
        """
        now = now or self._clock()
        new_events: List[EventLogEntry] = []

        for status in statuses:
            entry = self._update_link(status, now)
            if entry is not None:
                new_events.append(entry)
            self._record_traffic(status, now)

        del self._events[MAX_EVENTS:]
        return new_events

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def samples(self, name: str) -> List[TrafficSample]:
        return list(self._samples.get(name, []))

    def bandwidth(
        self,
        name: str,
        window_seconds: float,
        now: Optional[datetime] = None,
    ) -> Optional[Bandwidth]:
        return compute_bandwidth(
            self._samples.get(name, []), window_seconds, now or self._clock()
        )

    def bandwidth_summary(
        self,
        short_window: float,
        now: Optional[datetime] = None,
    ) -> Dict[str, InterfaceBandwidth]:
        """Short-window and 60 second rates for every interface with samples."""
        now = now or self._clock()
        return {
            name: InterfaceBandwidth(
                short=compute_bandwidth(samples, short_window, now),
                minute=compute_bandwidth(samples, MINUTE_WINDOW_SECONDS, now),
            )
            for name, samples in self._samples.items()
        }

    def snapshot(self) -> TrackerSnapshot:
        return TrackerSnapshot(
            server_started_at=self.server_started_at,
            isp_states=dict(self._states),
            event_log=list(self._events),
        )
