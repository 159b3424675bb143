"""Advisory IP reputation lookup."""

from __future__ import annotations

import asyncio
import ipaddress
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import httpx
from pydantic import ValidationError

from .models import IPLookupPayload

logger = logging.getLogger(__name__)

DEFAULT_LOOKUP_URL = "https://ipapi.co/json/"
UNKNOWN_COUNTRY = "XX"


@dataclass(frozen=True)
class IPReputationResult:
    """Outcome of a reputation lookup. Never blocks a gate decision."""

    is_suspect: bool
    country_code: str
    organization: Optional[str] = None

    @classmethod
    def unknown(cls) -> "IPReputationResult":
        return cls(is_suspect=False, country_code=UNKNOWN_COUNTRY)

    def as_dict(self) -> dict[str, object]:
        return {
            "is_suspect": self.is_suspect,
            "country_code": self.country_code,
            "organization": self.organization,
        }


class IPReputationClient:
    """Looks up the organisation behind an IP and flags VPN/proxy ranges."""

    def __init__(
        self,
        *,
        url: str = DEFAULT_LOOKUP_URL,
        timeout: float = 4.0,
        indicators: Sequence[str] = ("vpn", "proxy"),
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._indicators = tuple(indicator.lower() for indicator in indicators if indicator)
        self._transport = transport

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "IPReputationClient":
        return cls(
            url=getattr(settings, "reputation_url", DEFAULT_LOOKUP_URL),
            timeout=float(getattr(settings, "reputation_timeout", 4.0)),
            indicators=getattr(settings, "suspect_indicators", ("vpn", "proxy")),
            **kwargs,
        )

    def url_for(self, ip: Optional[str] = None) -> str:
        """Return the lookup URL, targeting ``ip`` instead of the caller when given.

        Raises ``ValueError`` when ``ip`` is not an IPv4 or IPv6 address.
        """

        if not ip:
            return self._url
        address = ipaddress.ip_address(ip.strip())
        base, _, tail = self._url.rstrip("/").rpartition("/")
        return f"{base}/{address}/{tail}/"

    async def check(self, ip: Optional[str] = None) -> IPReputationResult:
        """Return the reputation for ``ip`` (or the caller's own address).

        Any failure, including timeout, yields the not-suspect default.
        """

        try:
            url = self.url_for(ip)
        except ValueError as exc:
            logger.warning("Skipping IP reputation lookup: %s", exc)
            return IPReputationResult.unknown()

        try:
            payload = await asyncio.wait_for(self._fetch(url), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning("IP reputation lookup via %s timed out after %.1fs", url, self._timeout)
            return IPReputationResult.unknown()
        except httpx.HTTPError as exc:
            logger.warning("IP reputation lookup via %s failed: %s", url, exc)
            return IPReputationResult.unknown()
        except ValidationError as exc:
            logger.warning("IP reputation lookup via %s returned malformed data: %s", url, exc)
            return IPReputationResult.unknown()
        except Exception:
            logger.exception("Unexpected error during IP reputation lookup via %s", url)
            return IPReputationResult.unknown()

        return self.classify(payload)

    async def _fetch(self, url: str) -> IPLookupPayload:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.get(url, headers={"Accept": "application/json"})
            response.raise_for_status()
        return IPLookupPayload.model_validate_json(response.content)

    def classify(self, payload: IPLookupPayload) -> IPReputationResult:
        organization = (payload.org or "").strip()
        lowered = organization.lower()
        is_suspect = bool(lowered) and any(indicator in lowered for indicator in self._indicators)
        country = (payload.country_code or "").strip().upper() or UNKNOWN_COUNTRY
        return IPReputationResult(
            is_suspect=is_suspect,
            country_code=country,
            organization=organization or None,
        )


__all__ = ["IPReputationClient", "IPReputationResult", "UNKNOWN_COUNTRY"]
