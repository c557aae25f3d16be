import json
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, List

from pydantic import AnyHttpUrl, BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_STUN_URL = "stun:stun.l.google.com:19302"


def split_list(value: Any) -> list[Any]:
    """Accept a JSON array, a comma separated string or any iterable."""

    if value in (None, "", Ellipsis):
        return []
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("["):
            decoded = json.loads(text)
            return list(decoded) if isinstance(decoded, list) else [decoded]
        return [item.strip() for item in text.split(",") if item.strip()]
    if isinstance(value, (list, tuple, set)):
        return list(value)
    return [value]


class IceServer(BaseModel):
    """One entry of ``RTCConfiguration.iceServers``."""

    urls: list[str] = Field(default_factory=list)
    username: str | None = None
    credential: str | None = None

    @field_validator("urls", mode="before")
    @classmethod
    def coerce_urls(cls, value: Any) -> list[str]:
        return [str(item) for item in split_list(value)]


class Settings(BaseSettings):
    """Signaling service settings read from the environment and ``.env``."""

    app_name: str = Field(default="Meshcall Signaling", env="APP_NAME")
    environment: str = Field(default="development", env="ENVIRONMENT")
    debug: bool = Field(default=True, env="DEBUG")
    host: str = Field(default="0.0.0.0", env="HOST", description="Interface the server binds to")
    port: int = Field(default=8000, env="PORT", description="Port the server listens on")
    log_level: str = Field(default="INFO", env="LOG_LEVEL", description="Root logging level")

    cors_origins: Annotated[List[AnyHttpUrl], NoDecode] = Field(
        default_factory=lambda: [
            "http://localhost",
            "http://localhost:3000",
            "http://localhost:8080",
            "http://127.0.0.1",
            "http://127.0.0.1:8080",
        ],
        env="CORS_ORIGINS",
        description="Comma separated list of allowed CORS origins",
    )
    cors_allow_origin_regex: str | None = Field(
        default=r"^https?://(localhost|127\.0\.0\.1|0\.0\.0\.0|\[::1\])(:\d+)?$",
        env="CORS_ALLOW_ORIGIN_REGEX",
    )

    # Keepalive on the signaling socket
    websocket_keepalive_timeout_seconds: float = Field(
        default=30,
        env="WEBSOCKET_KEEPALIVE_TIMEOUT_SECONDS",
        description="Idle time after which the server checks the socket and may ping.",
    )
    websocket_keepalive_ping_interval_seconds: float = Field(
        default=25,
        env="WEBSOCKET_KEEPALIVE_PING_INTERVAL_SECONDS",
        description="Minimum spacing between keepalive pings on an idle socket.",
    )

    # Room coordination
    signaling_delivery_timeout_seconds: float | None = Field(
        default=10.0,
        env="SIGNALING_DELIVERY_TIMEOUT_SECONDS",
        description="Upper bound for a single notification send; unset disables it.",
    )
    signaling_mailbox_size: int = Field(
        default=256,
        env="SIGNALING_MAILBOX_SIZE",
        description="Maximum number of undelivered events queued per connection (0 = unbounded).",
    )
    signaling_max_identifier_length: int = Field(
        default=128,
        env="SIGNALING_MAX_IDENTIFIER_LENGTH",
        description="Longest accepted room or participant identifier.",
    )

    # ICE servers handed to browsers
    webrtc_ice_servers: Annotated[list[IceServer], NoDecode] = Field(
        default_factory=list,
        env="WEBRTC_ICE_SERVERS",
        description="JSON list of complete ICE server entries.",
    )
    webrtc_stun_servers: Annotated[list[str], NoDecode] = Field(
        default_factory=list, env="WEBRTC_STUN_SERVERS"
    )
    webrtc_turn_servers: Annotated[list[str], NoDecode] = Field(
        default_factory=list, env="WEBRTC_TURN_SERVERS"
    )
    webrtc_turn_username: str | None = Field(default=None, env="WEBRTC_TURN_USERNAME")
    webrtc_turn_credential: str | None = Field(default=None, env="WEBRTC_TURN_CREDENTIAL")

    # Peer negotiation server (offer/answer/ICE exchange)
    negotiation_host: str | None = Field(
        default=None,
        env="NEGOTIATION_HOST",
        description="Host of the peer negotiation server; defaults to the requesting host.",
    )
    negotiation_port: int = Field(default=3001, env="NEGOTIATION_PORT")
    negotiation_path: str = Field(default="/", env="NEGOTIATION_PATH")
    negotiation_secure: bool = Field(
        default=True,
        env="NEGOTIATION_SECURE",
        description="Whether clients must reach the negotiation server over TLS.",
    )

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).resolve().parents[1] / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("cors_origins", "webrtc_stun_servers", "webrtc_turn_servers", mode="before")
    @classmethod
    def split_lists(cls, value: Any) -> list[Any]:
        return split_list(value)

    @field_validator("webrtc_ice_servers", mode="before")
    @classmethod
    def parse_ice_servers(cls, value: Any) -> list[Any]:
        return [{"urls": entry} if isinstance(entry, (str, list)) else entry for entry in split_list(value)]

    @field_validator("signaling_delivery_timeout_seconds", mode="before")
    @classmethod
    def disable_empty_timeout(cls, value: Any) -> Any:
        if value in ("", "0", 0, None):
            return None
        return value

    @field_validator("negotiation_path", mode="before")
    @classmethod
    def normalise_negotiation_path(cls, value: Any) -> str:
        path = str(value or "/").strip()
        return path if path.startswith("/") else f"/{path}"

    def ice_servers(self) -> list[IceServer]:
        """Explicit entries, then STUN, then TURN; public STUN when nothing is set."""

        servers = list(self.webrtc_ice_servers)
        if self.webrtc_stun_servers:
            servers.append(IceServer(urls=self.webrtc_stun_servers))
        if self.webrtc_turn_servers:
            servers.append(
                IceServer(
                    urls=self.webrtc_turn_servers,
                    username=self.webrtc_turn_username,
                    credential=self.webrtc_turn_credential,
                )
            )
        return servers or [IceServer(urls=[DEFAULT_STUN_URL])]

    @property
    def webrtc_ice_servers_payload(self) -> list[dict[str, Any]]:
        return [server.model_dump(mode="json", exclude_none=True) for server in self.ice_servers()]


@lru_cache
def get_settings() -> Settings:
    return Settings()
