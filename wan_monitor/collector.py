"""
Background collector process.

This module:
- polls the firewall through the configured acquisition method (api or snmp)
- feeds every successful poll into a StateTracker
- logs link transitions and current bandwidth

It is the headless counterpart of GET /api/isp-status. Run it as:

    $env:FETCH_METHOD="snmp"
    python -m wan_monitor.collector
"""

import asyncio
import logging
from typing import List, Optional

from wan_monitor import acquisition
from wan_monitor.config import Settings, settings as default_settings
from wan_monitor.errors import AcquisitionError, ConfigurationError
from wan_monitor.schemas import EventLogEntry
from wan_monitor.tracker import StateTracker, short_window_seconds

logger = logging.getLogger("wan_monitor.collector")


def _format_rate(bytes_per_sec: float) -> str:
    bits = bytes_per_sec * 8
    if bits >= 1_000_000_000:
        return f"{bits / 1_000_000_000:.2f} Gbps"
    if bits >= 1_000_000:
        return f"{bits / 1_000_000:.1f} Mbps"
    if bits >= 1_000:
        return f"{bits / 1_000:.0f} Kbps"
    return f"{bits:.0f} bps"


async def poll_once(
    tracker: StateTracker,
    settings: Settings,
    fetcher=acquisition.get_wan_statuses,
) -> Optional[List[EventLogEntry]]:
    """
    Poll once and update the tracker.

    Returns the new events, or None if the poll failed (the tracker is
    left untouched in that case).
    """
    try:
        statuses = await fetcher(settings)
    except AcquisitionError as exc:
        logger.warning("Poll failed: %s", exc)
        return None

    events = tracker.process(statuses)

    window = short_window_seconds(settings.poll_interval_seconds)
    for name, bw in tracker.bandwidth_summary(window).items():
        if bw.short is not None:
            logger.debug(
                "%s in %s / out %s (%ss)",
                settings.display_name(name),
                _format_rate(bw.short.bytes_in_per_sec),
                _format_rate(bw.short.bytes_out_per_sec),
                window,
            )
    return events


async def run(settings: Settings) -> None:
    """Main collector loop: poll, update, sleep, repeat."""
    tracker = StateTracker()
    logger.info("Starting WAN collector loop (%s)...", settings.fetch_method)
    logger.info("Polling interfaces: %s", settings.sonicwall_wan_interfaces)
    logger.info("Poll interval: %s seconds", settings.poll_interval_seconds)

    while True:
        await poll_once(tracker, settings)
        await asyncio.sleep(settings.poll_interval_seconds)


def main() -> None:
    logging.basicConfig(
        level=default_settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    try:
        default_settings.require()
    except ConfigurationError as exc:
        logger.error("%s", exc)
        raise SystemExit(1)

    try:
        asyncio.run(run(default_settings))
    except KeyboardInterrupt:
        logger.info("Collector stopped")


if __name__ == "__main__":
    main()
