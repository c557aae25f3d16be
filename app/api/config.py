"""Configuration endpoints for exposing runtime options to the frontend."""

from __future__ import annotations

from fastapi import APIRouter, Request

from app.config import get_settings

router = APIRouter(prefix="/config", tags=["config"])


def _is_secure_request(request: Request) -> bool:
    forwarded_proto = request.headers.get("x-forwarded-proto", "").split(",")[0].strip()
    if forwarded_proto:
        return forwarded_proto.lower() == "https"

    return request.url.scheme == "https"


def _request_hostname(request: Request) -> str | None:
    """Return the hostname the browser used, honouring X-Forwarded-Host."""

    forwarded_host = request.headers.get("x-forwarded-host") or request.headers.get("host")
    if not forwarded_host:
        return request.url.hostname
    incoming = forwarded_host.split(",")[0].strip()
    if incoming.startswith("["):
        # IPv6 literal, keep the brackets
        return incoming.split("]")[0] + "]"
    return incoming.partition(":")[0] or None


@router.get("/webrtc")
def read_webrtc_config(request: Request) -> dict[str, object]:
    """Expose ICE servers and the location of the negotiation server."""

    settings = get_settings()
    secure = settings.negotiation_secure or _is_secure_request(request)
    return {
        "iceServers": settings.webrtc_ice_servers_payload,
        "stun": [str(url) for url in settings.webrtc_stun_servers],
        "turn": {
            "urls": [str(url) for url in settings.webrtc_turn_servers],
            "username": settings.webrtc_turn_username,
        },
        "negotiation": {
            "host": settings.negotiation_host or _request_hostname(request),
            "port": settings.negotiation_port,
            "path": settings.negotiation_path,
            "secure": secure,
        },
        "signaling": {
            "path": "/ws/signal",
            "keepaliveSeconds": settings.websocket_keepalive_ping_interval_seconds,
        },
    }
