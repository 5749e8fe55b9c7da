"""Best-effort IP geolocation for session-start metadata"""
import asyncio
import ipaddress
from typing import Any, Dict, Optional

import requests
from starlette.concurrency import run_in_threadpool

from adminguard.config import settings
from adminguard.utils.logger import logger

# Keys copied from the lookup response into session metadata
_GEO_FIELDS = ("city", "region", "country", "country_name", "timezone", "org")


def _is_public(ip: Optional[str]) -> bool:
    try:
        address = ipaddress.ip_address(ip)
    except (TypeError, ValueError):
        return False
    return address.is_global


class GeoLocator:
    """Looks up an IP address against a JSON geolocation endpoint.

    ``url_template`` contains an ``{ip}`` placeholder. When no template is
    configured, or the address is private/loopback, lookups return ``{}``
    without any network call.
    """

    def __init__(self, url_template: Optional[str] = None, timeout: Optional[float] = None,
                 session: Optional[requests.Session] = None):
        self.url_template = settings.GEOIP_URL if url_template is None else url_template
        self.timeout = settings.GEOIP_TIMEOUT_SECONDS if timeout is None else timeout
        self.session = session or requests.Session()

    def lookup(self, ip: Optional[str]) -> Dict[str, Any]:
        if not self.url_template or not _is_public(ip):
            return {}
        try:
            response = self.session.get(self.url_template.format(ip=ip), timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.warning(f"Geolocation lookup failed for {ip}: {exc}")
            return {}
        if not isinstance(data, dict):
            return {}
        return {key: data[key] for key in _GEO_FIELDS if data.get(key) is not None}

    async def locate(self, ip: Optional[str]) -> Dict[str, Any]:
        """Non-blocking lookup, abandoned after ``timeout`` seconds."""
        try:
            return await asyncio.wait_for(run_in_threadpool(self.lookup, ip), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Geolocation lookup timed out for {ip}")
            return {}
