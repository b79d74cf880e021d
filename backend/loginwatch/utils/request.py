"""Request utility functions for the authentication flow."""

from dataclasses import dataclass

from fastapi import Request

from loginwatch.schemas.login_attempt import DeviceInfo, LocationInfo
from loginwatch.services.geoip import GeoIPService, geoip_service
from loginwatch.utils.user_agent import parse_user_agent

UNKNOWN = "unknown"


@dataclass
class AttemptContext:
    """Request-derived fields passed to IngestionService.submit."""

    ip_address: str
    user_agent: str
    device_info: DeviceInfo
    location: LocationInfo | None = None


def get_client_ip(request: Request) -> str:
    """
    Extract real client IP, respecting proxy headers.

    Checks headers in order:
    1. X-Forwarded-For (may contain chain: "client, proxy1, proxy2")
    2. X-Real-IP (single IP from nginx)
    3. Direct connection IP
    """
    # X-Forwarded-For may contain chain of IPs
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # First IP in chain is the original client
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    # X-Real-IP is typically set by nginx
    real_ip = request.headers.get("X-Real-IP")
    if real_ip and real_ip.strip():
        return real_ip.strip()

    # Fallback to direct connection
    if request.client and request.client.host:
        return request.client.host

    return UNKNOWN


def get_user_agent(request: Request) -> str:
    return request.headers.get("User-Agent", "").strip() or UNKNOWN


def extract_attempt_context(
    request: Request, geoip: GeoIPService | None = geoip_service
) -> AttemptContext:
    """
    Collect IP, user agent, device and location for a login request.

    Location comes from the shared GeoIP reader; pass ``geoip=None`` to skip it.
    """
    ip_address = get_client_ip(request)
    user_agent = get_user_agent(request)

    return AttemptContext(
        ip_address=ip_address,
        user_agent=user_agent,
        device_info=parse_user_agent(user_agent),
        location=geoip.lookup(ip_address) if geoip else None,
    )
