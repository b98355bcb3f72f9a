"""SIEMSYNC — SIEM Sync Tables (cursor, events, run log)."""

from datetime import datetime, timezone
from typing import Optional
from sqlmodel import SQLModel, Field


DEFAULT_CURSOR_NAME = "mimecast:MTA"


class SiemCursor(SQLModel, table=True):
    """Pagination token for one SIEM stream.

    The unique ``name`` makes this a named singleton: there is never more
    than one cursor row per stream.
    """

    __tablename__ = "siem_cursors"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(
        default=DEFAULT_CURSOR_NAME, unique=True, index=True, description="Stream key"
    )
    token: str = Field(default="", description="Opaque mc-siem-token value")
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class SiemEvent(SQLModel, table=True):
    """One ingested SIEM event (append-only).

    Geolocation columns are filled as a group or left null together.
    """

    __tablename__ = "siem_events"

    id: Optional[int] = Field(default=None, primary_key=True)
    processing_date: datetime = Field(
        index=True, description="When the sync run that stored this event executed"
    )
    event_datetime: Optional[datetime] = Field(
        default=None, index=True, description="Normalized vendor event timestamp (UTC)"
    )
    ip: Optional[str] = Field(default=None, index=True, description="Source IP")

    # ── Geolocation ──
    ip_number: Optional[str] = Field(default=None)
    country_code: Optional[str] = Field(default=None)
    country: Optional[str] = Field(default=None)
    region: Optional[str] = Field(default=None)
    city: Optional[str] = Field(default=None)
    latitude: Optional[float] = Field(default=None)
    longitude: Optional[float] = Field(default=None)

    payload_json: str = Field(description="Full vendor event as JSON")


class RunLog(SQLModel, table=True):
    """Outcome of one sync invocation."""

    __tablename__ = "run_logs"

    id: Optional[int] = Field(default=None, primary_key=True)
    service_type: str = Field(index=True)
    processing_date: datetime = Field(index=True)
    is_success: bool = Field(default=False)
    response: str = Field(default="", description="Summary or error text")
