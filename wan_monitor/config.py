"""
Configuration for the WAN link monitor.

We use pydantic-settings (Pydantic v2) to load settings from:
- environment variables
- a local `.env` file in the project root
"""

from typing import Annotated, Dict, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from wan_monitor.errors import ConfigurationError


class Settings(BaseSettings):
    """
    Application-wide settings.

    Environment variables (with defaults):

    - FETCH_METHOD:              "api" (vendor REST) or "snmp" (default: api)
    - SONICWALL_BASE_URL:        https://host[:port] of the firewall (api only)
    - SONICWALL_USERNAME:        admin user for digest auth (api only)
    - SONICWALL_PASSWORD:        password for digest auth (api only)
    - SONICWALL_INSECURE_TLS:    "true" to accept a self-signed certificate
    - SONICWALL_API_PATH:        REST prefix (default: /api/sonicos)
    - SONICWALL_WAN_INTERFACES:  Comma-separated interface names (default: X1,X2)
    - SNMP_HOST / SNMP_PORT:     SNMP agent address (default: 10.10.10.1:161)
    - SNMP_COMMUNITY:            SNMPv2c community string (default: "public")
    - SNMP_TIMEOUT_SECONDS:      per-request SNMP timeout (default: 5)
    - SNMP_RETRIES:              retries per SNMP request (default: 1)
    - REQUEST_TIMEOUT_SECONDS:   per-request REST timeout (default: 5)
    - POLL_INTERVAL_SECONDS:     How often to poll (default: 5)
    - ISP_NAMES:                 Display names, e.g. "X1=Comcast,X2=Zito"
    - LOG_LEVEL:                 logging level name (default: INFO)
    """

    fetch_method: str = "api"

    sonicwall_base_url: Optional[str] = None
    sonicwall_username: Optional[str] = None
    sonicwall_password: Optional[str] = None
    sonicwall_insecure_tls: bool = False
    sonicwall_api_path: str = "/api/sonicos"

    # NoDecode keeps pydantic-settings from trying json.loads("X1,X2").
    sonicwall_wan_interfaces: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ["X1", "X2"]
    )

    snmp_host: str = "10.10.10.1"
    snmp_port: int = 161
    snmp_community: str = "public"
    snmp_timeout_seconds: float = 5.0
    snmp_retries: int = 1

    request_timeout_seconds: float = 5.0
    poll_interval_seconds: float = 5.0

    isp_names: Annotated[Dict[str, str], NoDecode] = Field(default_factory=dict)

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("fetch_method", mode="before")
    @classmethod
    def normalize_fetch_method(cls, v):
        """Anything other than "snmp" selects the REST API."""
        if isinstance(v, str) and v.strip().lower() == "snmp":
            return "snmp"
        return "api"

    @field_validator("sonicwall_wan_interfaces", mode="before")
    @classmethod
    def parse_wan_interfaces(cls, v):
        """
        Allow SONICWALL_WAN_INTERFACES to be specified as:

        - "X1"           -> ["X1"]
        - "x1, X2"       -> ["X1", "X2"]
        - ["x1", "x2"]   -> ["X1", "X2"]
        """
        if isinstance(v, str):
            v = v.split(",")
        if isinstance(v, (list, tuple)):
            return [str(p).strip().upper() for p in v if str(p).strip()]
        return v

    @field_validator("isp_names", mode="before")
    @classmethod
    def parse_isp_names(cls, v):
        """Parse "X1=Comcast,X2=Zito" into {"X1": "Comcast", "X2": "Zito"}."""
        if isinstance(v, dict):
            return {str(k).strip().upper(): str(name) for k, name in v.items()}
        if isinstance(v, str):
            names = {}
            for pair in v.split(","):
                key, sep, name = pair.partition("=")
                if sep and key.strip() and name.strip():
                    names[key.strip().upper()] = name.strip()
            return names
        return v

    def require(self) -> None:
        """
        Check that every setting needed by the selected fetch method is set.

        Raises ConfigurationError naming all missing variables at once.
        """
        missing = []
        if self.fetch_method == "api":
            for field in ("sonicwall_base_url", "sonicwall_username", "sonicwall_password"):
                if not getattr(self, field):
                    missing.append(field.upper())
        else:
            if not self.snmp_host:
                missing.append("SNMP_HOST")
            if not self.snmp_community:
                missing.append("SNMP_COMMUNITY")
        if not self.sonicwall_wan_interfaces:
            missing.append("SONICWALL_WAN_INTERFACES")
        if missing:
            raise ConfigurationError(f"Missing env var(s): {', '.join(missing)}")

    def display_name(self, interface_name: str) -> str:
        """Human-friendly ISP name for an interface, falling back to the name."""
        return self.isp_names.get(interface_name.upper(), interface_name)


# Single global settings object
settings = Settings()
