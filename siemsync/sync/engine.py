"""SIEMSYNC — SIEM Pagination Engine.

Runs the token-cursored fetch loop:
  sign + fetch page → enrich + store events → adopt token → classify → continue?

The cursor is written as soon as a page hands out a new token, and once
more on every exit path, so the stored cursor always reflects the last
page whose events were fully stored.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from siemsync.connectors.mimecast.client import MimecastClient, SiemPage
from siemsync.connectors.mimecast.transformer import event_ip, transform_event
from siemsync.core.logging import get_logger
from siemsync.enrichment.geo import GeoDatabaseError, GeoEnricher
from siemsync.storage.cursor_store import CursorStore
from siemsync.storage.event_sink import EventSink

logger = get_logger("sync.engine")


class EventProcessingError(Exception):
    """Raised when a single event cannot be enriched or stored."""


class StopReason(str, Enum):
    """Why the loop ended."""

    EXHAUSTED = "exhausted"  # terminal JSON payload, no more logs
    RATE_LIMITED = "rate_limited"  # 429, retry on next scheduled run
    API_ERROR = "api_error"  # any other non-200 status
    LAST_TOKEN = "last_token"  # empty body or meta.isLastToken
    MALFORMED = "malformed"  # 200 with a body that is not JSON
    NO_PROGRESS = "no_progress"  # 200, no events, no new token
    PAGE_LIMIT = "page_limit"  # sync_max_pages reached


FAILED_STOP_REASONS = {StopReason.API_ERROR, StopReason.MALFORMED}


class SyncOutcome(BaseModel):
    """Summary of one engine run."""

    stop_reason: StopReason
    pages: int = 0
    events_written: int = 0
    cursor: Optional[str] = None
    status_code: Optional[int] = None
    detail: str = ""

    @property
    def succeeded(self) -> bool:
        return self.stop_reason not in FAILED_STOP_REASONS


def classify_page(page: SiemPage) -> Optional[StopReason]:
    """Decide whether the loop stops after ``page``; None means continue.

    Rules are checked in order and the first match wins, so a throttled
    response is never mistaken for an exhausted stream.
    """
    if page.status_code == 200 and page.is_json and not page.next_token:
        logger.info("No more logs available", extra={"stop_reason": "exhausted"})
        return StopReason.EXHAUSTED

    if page.status_code == 429:
        logger.info(
            f"Rate limit hit. Reset after {page.rate_limit_reset or 'unknown'}",
            extra={"status_code": 429, "stop_reason": "rate_limited"},
        )
        return StopReason.RATE_LIMITED

    if page.status_code != 200:
        logger.warning(
            f"Request returned with status code {page.status_code}, "
            f"response body: {page.body}",
            extra={"status_code": page.status_code, "stop_reason": "api_error"},
        )
        return StopReason.API_ERROR

    if page.malformed:
        logger.warning(
            f"Response body is not valid JSON: {page.body[:500]}",
            extra={"stop_reason": "malformed"},
        )
        return StopReason.MALFORMED

    if page.payload is None or page.is_last_token:
        logger.info(
            "Request returned with last token, cannot continue",
            extra={"stop_reason": "last_token"},
        )
        return StopReason.LAST_TOKEN

    return None


class PaginationEngine:
    """Drives one sync run against the SIEM stream."""

    def __init__(
        self,
        client: MimecastClient,
        cursor_store: CursorStore,
        event_sink: EventSink,
        geo: GeoEnricher,
        processing_date: datetime,
        max_pages: int = 500,
    ):
        self.client = client
        self.cursor_store = cursor_store
        self.event_sink = event_sink
        self.geo = geo
        self.processing_date = processing_date
        self.max_pages = max_pages

    def _store_events(self, page: SiemPage) -> int:
        written = 0
        for item in page.events:
            try:
                ip = event_ip(item)
                location = self.geo.locate(ip) if ip else None
                self.event_sink.append(
                    transform_event(item, self.processing_date, location)
                )
            except GeoDatabaseError:
                raise
            except Exception as e:
                raise EventProcessingError(
                    f"Failed to store event {written + 1} of {len(page.events)}: {e}"
                ) from e
            written += 1
        return written

    def _persist(self, token: str) -> None:
        if token:
            self.cursor_store.set(token)

    async def run(self) -> SyncOutcome:
        token: str = self.cursor_store.get() or ""
        logger.info(
            f"Starting SIEM sync from {'stored cursor' if token else 'start of stream'}"
        )

        pages = 0
        events_written = 0
        stop_reason: Optional[StopReason] = None
        last_page: Optional[SiemPage] = None

        try:
            with self.geo:
                while stop_reason is None:
                    page = await self.client.fetch_page(token)
                    last_page = page
                    pages += 1

                    written = self._store_events(page) if page.status_code == 200 else 0
                    events_written += written

                    advanced = bool(page.next_token) and page.next_token != token
                    if page.next_token:
                        token = page.next_token
                        self.cursor_store.set(token)

                    stop_reason = classify_page(page)
                    if stop_reason is not None:
                        break

                    if not written and not advanced:
                        logger.warning(
                            "Page returned no events and no new token, stopping",
                            extra={"stop_reason": "no_progress"},
                        )
                        stop_reason = StopReason.NO_PROGRESS
                    elif pages >= self.max_pages:
                        logger.info(
                            f"Reached page limit ({self.max_pages}), resuming next run",
                            extra={"stop_reason": "page_limit"},
                        )
                        stop_reason = StopReason.PAGE_LIMIT
        except Exception:
            try:
                self._persist(token)
            except Exception as persist_error:
                # the error already in flight is the one the caller needs
                logger.error(f"Could not persist cursor after failure: {persist_error}")
            raise
        self._persist(token)

        detail = ""
        if stop_reason in FAILED_STOP_REASONS and last_page is not None:
            detail = f"status code {last_page.status_code}, response body: {last_page.body}"

        outcome = SyncOutcome(
            stop_reason=stop_reason,
            pages=pages,
            events_written=events_written,
            cursor=token or None,
            status_code=last_page.status_code if last_page else None,
            detail=detail,
        )
        logger.info(
            f"SIEM sync stopped ({outcome.stop_reason.value}) after {pages} pages",
            extra={
                "stop_reason": outcome.stop_reason.value,
                "events_written": events_written,
            },
        )
        return outcome
