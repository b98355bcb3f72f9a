"""SIEMSYNC — IP Geolocation Enrichment.

Wraps an IP2Location BIN database. A lookup either yields a complete
location or nothing at all; missing coordinates are an expected outcome
for private and reserved ranges, while library failures propagate.
"""

import ipaddress
import math
from typing import Any, Callable, Dict, Optional

import IP2Location
from pydantic import BaseModel

from siemsync.core.logging import get_logger

logger = get_logger("enrichment.geo")


class GeoDatabaseError(Exception):
    """Raised when the geolocation database cannot be opened or read."""


class LocationResult(BaseModel):
    """Complete geolocation for one address."""

    ip_number: str
    country_code: str = ""
    country: str = ""
    region: str = ""
    city: str = ""
    latitude: float
    longitude: float

    def as_columns(self) -> Dict[str, Any]:
        return self.model_dump()


def _to_finite_float(value: Any) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


class GeoEnricher:
    """Scoped handle on the geolocation database.

    Use as a context manager so the file is released on every exit path::

        with GeoEnricher(path) as geo:
            geo.locate("8.8.8.8")
    """

    def __init__(
        self,
        database_path: str,
        opener: Callable[[str], Any] = IP2Location.IP2Location,
    ):
        self.database_path = database_path
        self._opener = opener
        self._db: Any = None

    @property
    def is_open(self) -> bool:
        return self._db is not None

    def open(self) -> "GeoEnricher":
        if self._db is None:
            try:
                self._db = self._opener(self.database_path)
            except Exception as e:
                raise GeoDatabaseError(
                    f"Cannot open geolocation database {self.database_path}: {e}"
                ) from e
            logger.info(f"Opened geolocation database {self.database_path}")
        return self

    def close(self) -> None:
        if self._db is None:
            return
        db, self._db = self._db, None
        close = getattr(db, "close", None)
        if close is not None:
            close()

    def __enter__(self) -> "GeoEnricher":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def locate(self, ip_address: str) -> Optional[LocationResult]:
        """Look up ``ip_address``; None when the address has no usable location."""
        if self._db is None:
            raise GeoDatabaseError("Geolocation database is not open")
        try:
            parsed = ipaddress.ip_address(str(ip_address).strip())
        except ValueError:
            return None

        try:
            record = self._db.get_all(str(parsed))
        except Exception as e:
            raise GeoDatabaseError(f"Geolocation lookup failed for {parsed}: {e}") from e

        latitude = _to_finite_float(getattr(record, "latitude", None))
        longitude = _to_finite_float(getattr(record, "longitude", None))
        if latitude is None or longitude is None:
            return None

        return LocationResult(
            ip_number=str(int(parsed)),
            country_code=getattr(record, "country_short", "") or "",
            country=getattr(record, "country_long", "") or "",
            region=getattr(record, "region", "") or "",
            city=getattr(record, "city", "") or "",
            latitude=latitude,
            longitude=longitude,
        )
