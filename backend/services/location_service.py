import asyncio
import ipaddress
from typing import Any, Dict, Optional
import logging

import aiohttp

from ..core.config import Settings, settings as default_settings
from ..models.schemas import ClientLocation

logger = logging.getLogger(__name__)

GEOIP_FIELDS = "status,message,city,region,countryCode,timezone"


def is_local_address(ip: Optional[str]) -> bool:
    """True for loopback, private and otherwise non-routable client addresses."""
    if not ip:
        return True
    try:
        address = ipaddress.ip_address(ip.strip())
    except ValueError:
        # Hostnames such as "testclient" never resolve to a public location
        return True
    return not address.is_global


class LocationService:
    """
    Approximate a client's city, region, country and timezone from its IP.

    Lookups go to an ip-api compatible JSON endpoint.  Local addresses and
    any lookup failure resolve to the configured default location, so the
    result can always prefill a registration form.
    """

    def __init__(self, config: Optional[Settings] = None, session: Optional[aiohttp.ClientSession] = None):
        config = config or default_settings
        self.base_url = config.GEOIP_API_URL.rstrip("/")
        self.request_timeout = config.GEOIP_TIMEOUT_SECONDS
        self.fallback = ClientLocation(
            city=config.DEFAULT_CITY,
            state=config.DEFAULT_STATE,
            country=config.DEFAULT_COUNTRY,
            timezone=config.DEFAULT_TIMEZONE,
        )
        self.session = session

    async def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession()
        return self.session

    async def close(self):
        if self.session and not self.session.closed:
            await self.session.close()

    async def lookup(self, ip: str) -> Optional[ClientLocation]:
        try:
            session = await self._get_session()
            timeout = aiohttp.ClientTimeout(total=self.request_timeout)
            async with session.get(f"{self.base_url}/{ip}", params={"fields": GEOIP_FIELDS}, timeout=timeout) as resp:
                if resp.status != 200:
                    logger.warning(f"GeoIP lookup for {ip} returned HTTP {resp.status}")
                    return None
                data: Dict[str, Any] = await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.warning(f"GeoIP lookup for {ip} failed: {e}")
            return None

        if not isinstance(data, dict) or data.get("status") != "success":
            message = data.get("message") if isinstance(data, dict) else "unexpected payload"
            logger.info(f"No GeoIP match for {ip}: {message}")
            return None

        return ClientLocation(
            city=data.get("city") or self.fallback.city,
            state=data.get("region") or self.fallback.state,
            country=data.get("countryCode") or self.fallback.country,
            timezone=data.get("timezone") or self.fallback.timezone,
        )

    async def detect_location(self, ip: Optional[str]) -> ClientLocation:
        if is_local_address(ip):
            return self.fallback
        return await self.lookup(ip.strip()) or self.fallback
