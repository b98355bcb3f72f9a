"""SIEMSYNC — Mimecast Event → SiemEvent Transformer."""

import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from siemsync.enrichment.geo import LocationResult
from siemsync.models.siem_models import SiemEvent

IP_FIELD = "IP"
DATETIME_FIELD = "datetime"


def parse_event_datetime(value: Any) -> Optional[datetime]:
    """Parse a vendor timestamp into an aware UTC datetime.

    Mimecast sends e.g. ``2026-10-19T10:15:02+0100``; naive values are
    taken as UTC. Returns None when absent or unparseable.
    """
    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        try:
            parsed = datetime.strptime(text, "%Y-%m-%dT%H:%M:%S%z")
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def event_ip(item: Dict[str, Any]) -> Optional[str]:
    ip = item.get(IP_FIELD)
    return str(ip) if ip else None


def transform_event(
    item: Dict[str, Any],
    processing_date: datetime,
    location: Optional[LocationResult] = None,
) -> SiemEvent:
    """Build the stored record for one vendor event."""
    columns: Dict[str, Any] = location.as_columns() if location else {}
    return SiemEvent(
        processing_date=processing_date,
        event_datetime=parse_event_datetime(item.get(DATETIME_FIELD)),
        ip=event_ip(item),
        payload_json=json.dumps(item, default=str),
        **columns,
    )
