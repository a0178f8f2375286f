"""
Resolves a postal address (a full UK postcode) to coordinates via postcodes.io.

Example: "bt1 1aa" -> ResolvedAddress("BT1 1AA", 54.6, -5.93)
"""

import logging
from urllib.parse import quote

import requests

from crimeintel.config import Settings
from crimeintel.errors import NotFoundError, ResolutionError
from crimeintel.retry import RetryExhaustedError, rate_limited_get
from crimeintel.schemas import ResolvedAddress


logger = logging.getLogger(__name__)


def normalize_address(address: str) -> str:
    return " ".join(address.split()).upper()


class AddressResolver:
    def __init__(self, settings: Settings, session: requests.Session | None = None) -> None:
        self.settings = settings
        self.session = session or requests.Session()

    def resolve(self, address: str) -> ResolvedAddress:
        normalized = normalize_address(address or "")
        if not normalized:
            raise NotFoundError("address is empty")

        url = self.settings.geocoder_url.rstrip("/") + "/" + quote(normalized, safe="")
        try:
            response = rate_limited_get(
                self.session,
                url,
                timeout=(self.settings.http_connect_timeout_seconds, self.settings.http_read_timeout_seconds),
                delay_seconds=self.settings.rate_limit_delay_seconds,
                max_retries=self.settings.max_http_retries,
                backoff_seconds=self.settings.retry_backoff_seconds,
            )
        except RetryExhaustedError as exc:
            raise ResolutionError(f"address lookup failed for {normalized}: {exc}") from exc

        if response.status_code == 404:
            raise NotFoundError(f"address not found: {normalized}")
        if response.status_code != 200:
            raise ResolutionError(f"geocoder returned HTTP {response.status_code} for {normalized}")

        try:
            result = response.json()["result"]
            latitude = float(result["latitude"])
            longitude = float(result["longitude"])
        except (ValueError, KeyError, TypeError) as exc:
            raise ResolutionError(f"unreadable geocoder response for {normalized}: {exc}") from exc

        logger.debug("resolved address", extra={"address": normalized, "latitude": latitude, "longitude": longitude})
        return ResolvedAddress(address=normalized, latitude=latitude, longitude=longitude)
