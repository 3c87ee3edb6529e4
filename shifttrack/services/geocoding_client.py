"""
Reverse-geocoding client (Nominatim-compatible).

Best effort: every failure is logged and returned as None. The client keeps
no state between calls; rate limiting belongs to the caller.
"""
import logging
from typing import Any, Dict, Optional

import httpx

from shifttrack.core.settings import env_float, env_str
from shifttrack.services.geo import is_valid_coordinate

logger = logging.getLogger(__name__)

DEFAULT_GEOCODING_URL = "https://nominatim.openstreetmap.org/reverse"


class ReverseGeocodingClient:
    """Client for the reverse-geocoding endpoint"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        user_agent: Optional[str] = None,
        language: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.Client] = None,
    ):
        self.base_url = base_url or env_str("GEOCODING_URL", DEFAULT_GEOCODING_URL)
        self.user_agent = user_agent or env_str(
            "GEOCODING_USER_AGENT", "shifttrack/1.0 (ops@shifttrack.local)"
        )
        self.language = language or env_str("GEOCODING_LANGUAGE", "ro")
        self.timeout = timeout if timeout is not None else env_float("GEOCODING_TIMEOUT_SECONDS", 10.0)
        self._http_client = http_client

    def _get(self, params: Dict[str, Any]) -> httpx.Response:
        headers = {
            "User-Agent": self.user_agent,
            "Accept-Language": self.language,
        }
        if self._http_client is not None:
            return self._http_client.get(self.base_url, params=params, headers=headers)

        with httpx.Client(timeout=self.timeout) as client:
            return client.get(self.base_url, params=params, headers=headers)

    def reverse_geocode(self, lat: float, lon: float) -> Optional[str]:
        if not is_valid_coordinate(lat, lon):
            logger.warning("Invalid coordinates for reverse geocoding", extra={"lat": lat, "lon": lon})
            return None

        params = {
            "format": "jsonv2",
            "lat": float(lat),
            "lon": float(lon),
            "zoom": 18,
            "addressdetails": 1,
        }

        try:
            response = self._get(params)
        except httpx.HTTPError as exc:
            logger.warning(
                "Reverse geocoding request failed",
                extra={"lat": lat, "lon": lon, "error": str(exc)},
            )
            return None

        if response.status_code < 200 or response.status_code >= 300:
            logger.warning(
                "Reverse geocoding returned non-success status",
                extra={"lat": lat, "lon": lon, "status_code": response.status_code},
            )
            return None

        try:
            data = response.json()
        except ValueError:
            logger.warning("Reverse geocoding returned malformed JSON", extra={"lat": lat, "lon": lon})
            return None

        if not isinstance(data, dict) or data.get("error"):
            return None

        return format_address(data)


def _truncated_display_name(data: Dict[str, Any], parts: int) -> Optional[str]:
    display_name = data.get("display_name")
    if not isinstance(display_name, str) or not display_name.strip():
        return None
    head = [p.strip() for p in display_name.split(",")[:parts] if p.strip()]
    return ", ".join(head) or None


def format_address(data: Dict[str, Any]) -> Optional[str]:
    """
    Pick the most useful label for someone reading a GPS trace.

    Street (+ house number, + neighbourhood when it differs from the street),
    then neighbourhood, then city, then the head of display_name.
    """
    addr = data.get("address")
    if not isinstance(addr, dict) or not addr:
        return _truncated_display_name(data, 3)

    road = (
        addr.get("road")
        or addr.get("pedestrian")
        or addr.get("path")
        or addr.get("residential")
        or addr.get("cycleway")
        or ""
    )
    house_number = addr.get("house_number") or ""
    suburb = addr.get("suburb") or addr.get("neighbourhood") or ""
    city = addr.get("city") or addr.get("town") or addr.get("village") or ""

    if road:
        result = road
        if house_number:
            result += f" {house_number}"
        if suburb and suburb != road:
            result += f", {suburb}"
        return result

    if suburb:
        return suburb
    if city:
        return city

    return _truncated_display_name(data, 2)
