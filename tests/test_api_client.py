"""
Tests for the SonicOS REST client (httpx.MockTransport, no network).
"""

import asyncio

import httpx
import pytest

from wan_monitor.api_client import (
    RestAcquisitionClient,
    classify_link,
    extract_records,
    map_interfaces,
)
from wan_monitor.digest import parse_challenge
from wan_monitor.errors import AuthenticationError, ChallengeError, TransportError
from wan_monitor.schemas import LinkStatus

SHA_CHALLENGE = 'Digest realm="SonicOS", nonce="sha-nonce", algorithm=SHA-256, qop="auth"'
MD5_CHALLENGE = 'Digest realm="SonicOS", nonce="md5-nonce", algorithm=MD5, qop="auth", opaque="op"'

STATUS_PAYLOAD = [
    {"name": "X0", "status": "1 Gbps Full Duplex", "link_status": "Up", "ip": "192.168.1.1"},
    {
        "name": "x1",
        "link_status": "Up",
        "status": "1 Gbps Full Duplex",
        "ip_address": "203.0.113.10",
        "subnet_mask": "255.255.255.0",
        "ip_mode": "Static",
        "zone": "WAN",
        "comment": "Comcast",
    },
    {"interface": "X2", "status": "No link - Down", "ip": "0.0.0.0"},
]


class FakeFirewall:
    """MockTransport handler emulating the two-step digest handshake."""

    def __init__(self, payload=STATUS_PAYLOAD, challenges=(SHA_CHALLENGE, MD5_CHALLENGE),
                 auth_status=200, status_code=200):
        self.payload = payload
        self.challenges = challenges
        self.auth_status = auth_status
        self.status_code = status_code
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        authorization = request.headers.get("Authorization")
        if request.url.path == "/api/sonicos/auth":
            if authorization is None:
                return httpx.Response(
                    401, headers=[("WWW-Authenticate", c) for c in self.challenges]
                )
            return httpx.Response(self.auth_status, json={"status": {"success": True}})
        if request.url.path == "/api/sonicos/reporting/interfaces/ipv4/status":
            if isinstance(self.payload, str):
                return httpx.Response(self.status_code, text=self.payload)
            return httpx.Response(self.status_code, json=self.payload)
        return httpx.Response(404)


def _fetch(settings, handler):
    client = RestAcquisitionClient(settings, transport=httpx.MockTransport(handler))
    return asyncio.run(client.get_wan_statuses())


class TestClassifyLink:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("Up", LinkStatus.UP),
            ("LINK UP", LinkStatus.UP),
            ("Down", LinkStatus.DOWN),
            ("No link - Down", LinkStatus.DOWN),
            ("No link", LinkStatus.UNKNOWN),
            (None, LinkStatus.UNKNOWN),
            (1, LinkStatus.UNKNOWN),
        ],
    )
    def test_substring_classification(self, value, expected):
        assert classify_link(value) is expected


class TestMapInterfaces:
    def test_shapes(self):
        assert extract_records([{"name": "X1"}]) == [{"name": "X1"}]
        assert extract_records({"interfaces": [{"name": "X1"}]}) == [{"name": "X1"}]
        assert extract_records({"status": "nope"}) == []
        assert extract_records("text") == []
        assert extract_records(None) == []

    def test_filters_and_maps_fields(self):
        statuses = map_interfaces(STATUS_PAYLOAD, ["X1", "X2"])
        assert [s.name for s in statuses] == ["X1", "X2"]

        x1, x2 = statuses
        assert x1.link_status is LinkStatus.UP
        assert x1.ip_address == "203.0.113.10"
        assert x1.subnet_mask == "255.255.255.0"
        assert x1.link_speed == "1 Gbps Full Duplex"
        assert x1.ip_mode == "Static"
        assert x1.zone == "WAN"
        assert x1.comment == "Comcast"

        assert x2.link_status is LinkStatus.DOWN
        assert x2.ip_address == "0.0.0.0"
        assert x2.subnet_mask is None

    def test_snmp_only_fields_left_unset(self):
        (x1,) = map_interfaces(STATUS_PAYLOAD, ["X1"])
        dumped = x1.model_dump(by_alias=True, exclude_unset=True)
        assert "bytesIn" not in dumped
        assert "macAddress" not in dumped
        assert dumped["comment"] == "Comcast"
        assert dumped["linkStatus"] == LinkStatus.UP

    def test_duplicate_names_kept_once(self):
        payload = [{"name": "X1", "status": "up"}, {"name": "x1", "status": "down"}]
        statuses = map_interfaces(payload, ["X1"])
        assert len(statuses) == 1
        assert statuses[0].link_status is LinkStatus.UP

    def test_garbage_records_skipped(self):
        assert map_interfaces([None, 5, {"zone": "WAN"}], ["X1"]) == []


class TestRestAcquisitionClient:
    def test_handshake_and_statuses(self, make_settings):
        firewall = FakeFirewall()
        statuses = _fetch(make_settings(), firewall)

        assert [s.name for s in statuses] == ["X1", "X2"]
        assert len(firewall.requests) == 3

        challenge_req, auth_req, status_req = firewall.requests
        assert challenge_req.method == "POST"
        assert "Authorization" not in challenge_req.headers

        auth = parse_challenge(auth_req.headers["Authorization"])
        assert auth_req.method == "POST"
        assert auth["nonce"] == "md5-nonce"
        assert auth["nc"] == "00000001"
        assert auth["uri"] == "/api/sonicos/auth"
        assert auth["opaque"] == "op"

        status = parse_challenge(status_req.headers["Authorization"])
        assert status_req.method == "GET"
        assert status["nonce"] == "md5-nonce"
        assert status["nc"] == "00000002"
        assert status["uri"] == "/api/sonicos/reporting/interfaces/ipv4/status"

    def test_wrapped_payload(self, make_settings):
        firewall = FakeFirewall(payload={"interfaces": STATUS_PAYLOAD})
        assert len(_fetch(make_settings(), firewall)) == 2

    def test_unexpected_shape_is_empty(self, make_settings):
        firewall = FakeFirewall(payload={"foo": "bar"})
        assert _fetch(make_settings(), firewall) == []

    def test_base_url_trailing_slash(self, make_settings):
        firewall = FakeFirewall()
        _fetch(make_settings(sonicwall_base_url="https://fw.example.test/"), firewall)
        assert firewall.requests[0].url == "https://fw.example.test/api/sonicos/auth"

    def test_no_digest_challenge(self, make_settings):
        firewall = FakeFirewall(challenges=('Basic realm="SonicOS"',))
        with pytest.raises(ChallengeError):
            _fetch(make_settings(), firewall)

    def test_only_sha256_offered(self, make_settings):
        firewall = FakeFirewall(challenges=(SHA_CHALLENGE,))
        with pytest.raises(ChallengeError):
            _fetch(make_settings(), firewall)

    def test_auth_rejected(self, make_settings):
        firewall = FakeFirewall(auth_status=401)
        with pytest.raises(AuthenticationError) as exc_info:
            _fetch(make_settings(), firewall)
        assert exc_info.value.status_code == 401
        assert len(firewall.requests) == 2

    def test_status_request_rejected(self, make_settings):
        firewall = FakeFirewall(status_code=403)
        with pytest.raises(AuthenticationError):
            _fetch(make_settings(), firewall)

    def test_invalid_json(self, make_settings):
        firewall = FakeFirewall(payload="<html>oops</html>")
        with pytest.raises(TransportError):
            _fetch(make_settings(), firewall)

    def test_transport_error(self, make_settings):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        with pytest.raises(TransportError, match="timed out"):
            _fetch(make_settings(), handler)

    @pytest.mark.parametrize("insecure, verify", [(True, False), (False, True)])
    def test_tls_verification_is_per_client(self, make_settings, monkeypatch, insecure, verify):
        captured = {}
        real_client = httpx.AsyncClient

        def recording_client(**kwargs):
            captured.update(kwargs)
            return real_client(**kwargs)

        monkeypatch.setattr("wan_monitor.api_client.httpx.AsyncClient", recording_client)
        settings = make_settings(sonicwall_insecure_tls=insecure, request_timeout_seconds=3)
        _fetch(settings, FakeFirewall())

        assert captured["verify"] is verify
        assert captured["timeout"] == 3
