"""
source_client.py — One bounded HTTP GET against one external provider.

Contract
========
    fetch(source, coordinates) → RawPayload
                               | SourceTimeoutError
                               | TransportError
                               | FormatError

    • The wait is bounded by ``source.timeout_s`` and enforced by
      cancelling the request (asyncio.wait_for), independent of any
      other in-flight call.
    • Any non-2xx status is a TransportError, never a parse error.
    • A content type that does not match the expected payload kind
      (JSON vs. XML feed) is a FormatError. IMD, for example, serves an
      HTML error page with status 200 when the feed is down.
    • No retries. The caller owns the fallback policy.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

import httpx

from floodwatch.core.errors import FormatError, SourceTimeoutError, TransportError
from floodwatch.ingestion.models import Coordinates, utcnow

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 10.0

XML_MARKERS = ("<rss", "<feed", "<channel")


class PayloadKind(str, Enum):
    JSON = "json"
    XML = "xml"


class CoordinateStyle(str, Enum):
    """How a provider expects the location in its query string."""
    LAT_LON = "lat_lon"        # latitude=..&longitude=..   (Open-Meteo)
    LOCATION = "location"      # location=lat,lng           (Tomorrow.io)
    NONE = "none"              # feed is not location-scoped (IMD RSS)


@dataclass(frozen=True)
class SourceConfig:
    """Everything needed to issue one provider request."""
    name: str
    url: str
    params: Dict[str, Any] = field(default_factory=dict)
    kind: PayloadKind = PayloadKind.JSON
    coordinate_style: CoordinateStyle = CoordinateStyle.LAT_LON
    timeout_s: float = DEFAULT_TIMEOUT_S

    @property
    def accept_header(self) -> str:
        if self.kind == PayloadKind.XML:
            return "application/rss+xml, text/xml, application/xml, */*"
        return "application/json"


@dataclass
class RawPayload:
    """Provider-native body plus fetch metadata."""
    source: str
    body: Any                  # dict for JSON, str for XML
    status_code: int
    content_type: str
    fetched_at: datetime
    duration_ms: int


def build_params(source: SourceConfig, coordinates: Optional[Coordinates]) -> Dict[str, Any]:
    params = dict(source.params)
    if coordinates is None or source.coordinate_style == CoordinateStyle.NONE:
        return params
    if source.coordinate_style == CoordinateStyle.LOCATION:
        params["location"] = f"{coordinates.latitude},{coordinates.longitude}"
    else:
        params["latitude"] = coordinates.latitude
        params["longitude"] = coordinates.longitude
    return params


class SourceClient:
    """
    Async HTTP client shared by all provider pipelines.

    Usage:
        client = SourceClient()
        payload = await client.fetch(source, Coordinates(26.14, 91.66))
        await client.close()
    """

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None):
        self._http_client = http_client
        self._owns_client = http_client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            # Per-request bounds come from asyncio.wait_for, not httpx.
            self._http_client = httpx.AsyncClient(timeout=None, follow_redirects=True)
            self._owns_client = True
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._owns_client and self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    async def fetch(
        self,
        source: SourceConfig,
        coordinates: Optional[Coordinates] = None,
    ) -> RawPayload:
        client = await self._get_client()
        params = build_params(source, coordinates)
        start = time.monotonic()

        try:
            response = await asyncio.wait_for(
                client.get(
                    source.url,
                    params=params,
                    headers={"Accept": source.accept_header},
                ),
                timeout=source.timeout_s,
            )
        except asyncio.TimeoutError:
            raise SourceTimeoutError(source.name, source.timeout_s)
        except httpx.TimeoutException:
            raise SourceTimeoutError(source.name, source.timeout_s)
        except httpx.HTTPError as e:
            raise TransportError(source.name, str(e) or type(e).__name__)

        elapsed = int((time.monotonic() - start) * 1000)

        if not response.is_success:
            raise TransportError(
                source.name,
                f"HTTP {response.status_code}",
                status_code=response.status_code,
            )

        content_type = response.headers.get("content-type", "").lower()
        body = self._decode(source, response, content_type)

        logger.debug(
            "Fetched %s in %d ms", source.name, elapsed,
            extra={"source": source.name, "duration_ms": elapsed},
        )

        return RawPayload(
            source=source.name,
            body=body,
            status_code=response.status_code,
            content_type=content_type,
            fetched_at=utcnow(),
            duration_ms=elapsed,
        )

    @staticmethod
    def _decode(source: SourceConfig, response: httpx.Response, content_type: str) -> Any:
        if source.kind == PayloadKind.JSON:
            if "json" not in content_type:
                raise FormatError(source.name, f"expected JSON, got '{content_type}'")
            try:
                return response.json()
            except (json.JSONDecodeError, UnicodeDecodeError, ValueError) as e:
                raise FormatError(source.name, f"invalid JSON: {e}")

        text = response.text
        if "html" in content_type or not any(m in text for m in XML_MARKERS):
            raise FormatError(source.name, f"expected an XML feed, got '{content_type}'")
        return text
