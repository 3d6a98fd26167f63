"""
SonicOS REST API client.

Each poll performs its own digest handshake:

1. POST {base}/auth without credentials -> collect WWW-Authenticate challenges
2. POST {base}/auth with a digest Authorization header (nc=1)
3. GET  {base}/reporting/interfaces/ipv4/status with the same challenge (nc=2)

No session is kept between polls and we never log out, so an administrator
logged into the web UI at the same time is not kicked out.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Set

import httpx

from wan_monitor.config import Settings
from wan_monitor.digest import (
    DigestChallenge,
    build_authorization_header,
    select_challenge,
)
from wan_monitor.errors import AuthenticationError, TransportError
from wan_monitor.schemas import InterfaceStatus, LinkStatus

logger = logging.getLogger(__name__)

AUTH_PATH = "/auth"
STATUS_PATH = "/reporting/interfaces/ipv4/status"


def classify_link(value: Any) -> LinkStatus:
    """Substring match: "...up..." -> UP, "...down..." -> DOWN, else UNKNOWN."""
    if not isinstance(value, str):
        return LinkStatus.UNKNOWN
    v = value.lower()
    if "up" in v:
        return LinkStatus.UP
    if "down" in v:
        return LinkStatus.DOWN
    return LinkStatus.UNKNOWN


def _first(record: Dict[str, Any], *keys: str) -> Any:
    """Value of the first key present with a non-null value."""
    for key in keys:
        value = record.get(key)
        if value is not None:
            return value
    return None


def _optional_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def extract_records(payload: Any) -> List[Any]:
    """Accept a bare array or {"interfaces": [...]}; anything else is empty."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get("interfaces"), list):
        return payload["interfaces"]
    return []


def map_interfaces(payload: Any, wanted: Iterable[str]) -> List[InterfaceStatus]:
    """Turn the status report into InterfaceStatus records for wanted names."""
    wanted_set: Set[str] = {w.upper() for w in wanted}
    seen: Set[str] = set()
    statuses: List[InterfaceStatus] = []

    for record in extract_records(payload):
        if not isinstance(record, dict):
            continue
        raw_name = _first(record, "name", "interface")
        if raw_name is None:
            continue
        name = str(raw_name).strip().upper()
        if name not in wanted_set or name in seen:
            continue
        seen.add(name)

        statuses.append(
            InterfaceStatus(
                name=name,
                link_status=classify_link(_first(record, "link_status", "status")),
                ip_address=_optional_str(_first(record, "ip_address", "ip")),
                subnet_mask=_optional_str(record.get("subnet_mask")),
                link_speed=_optional_str(_first(record, "link_speed", "status")),
                ip_mode=_optional_str(record.get("ip_mode")),
                zone=_optional_str(record.get("zone")),
                comment=_optional_str(record.get("comment")),
            )
        )

    return statuses


class RestAcquisitionClient:
    """
    Fetch WAN interface status through the SonicOS REST API.

    `transport` is only used by tests (httpx.MockTransport).
    """

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self.base_url = (settings.sonicwall_base_url or "").rstrip("/")
        self.api_path = "/" + settings.sonicwall_api_path.strip("/")
        self._transport = transport

    def _url(self, path: str) -> str:
        return f"{self.base_url}{self.api_path}{path}"

    def _client(self) -> httpx.AsyncClient:
        # Certificate verification is configured per client, never globally.
        return httpx.AsyncClient(
            verify=not self.settings.sonicwall_insecure_tls,
            timeout=self.settings.request_timeout_seconds,
            transport=self._transport,
        )

    def _authorization(
        self, method: str, url: str, challenge: DigestChallenge, nonce_count: int
    ) -> str:
        return build_authorization_header(
            method,
            httpx.URL(url).raw_path.decode("ascii"),
            self.settings.sonicwall_username or "",
            self.settings.sonicwall_password or "",
            challenge,
            nonce_count,
        )

    async def _challenge(self, client: httpx.AsyncClient, auth_url: str) -> DigestChallenge:
        response = await client.post(auth_url)
        headers = response.headers.get_list("www-authenticate")
        logger.debug("Received %d WWW-Authenticate header(s)", len(headers))
        return select_challenge(headers)

    async def get_wan_statuses(self) -> List[InterfaceStatus]:
        auth_url = self._url(AUTH_PATH)
        status_url = self._url(STATUS_PATH)

        try:
            async with self._client() as client:
                challenge = await self._challenge(client, auth_url)

                auth_response = await client.post(
                    auth_url,
                    headers={"Authorization": self._authorization("POST", auth_url, challenge, 1)},
                )
                if not auth_response.is_success:
                    raise AuthenticationError(
                        f"Auth failed: {auth_response.status_code}",
                        status_code=auth_response.status_code,
                    )

                response = await client.get(
                    status_url,
                    headers={"Authorization": self._authorization("GET", status_url, challenge, 2)},
                )
                if not response.is_success:
                    raise AuthenticationError(
                        f"Status request failed: {response.status_code}",
                        status_code=response.status_code,
                    )
        except httpx.HTTPError as exc:
            raise TransportError(f"Request to {self.base_url} failed: {exc}") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise TransportError("Interface status response is not valid JSON") from exc

        statuses = map_interfaces(payload, self.settings.sonicwall_wan_interfaces)
        logger.debug("REST poll returned %d wanted interface(s)", len(statuses))
        return statuses
