"""SIEMSYNC — Sync Run Orchestrator.

One invocation: build collaborators → run the pagination engine → record
exactly one RunLog row, whatever the outcome.
"""

import traceback
from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Session

from siemsync.config import Settings, settings as default_settings
from siemsync.connectors.mimecast.client import MimecastClient
from siemsync.core.logging import get_logger
from siemsync.enrichment.geo import GeoEnricher
from siemsync.storage.cursor_store import CursorStore
from siemsync.storage.event_sink import EventSink
from siemsync.storage.run_reporter import RunReporter
from siemsync.sync.engine import PaginationEngine, SyncOutcome

logger = get_logger("sync.pipeline")

SERVICE_TYPE = "MimeCast"


def _outcome_message(outcome: SyncOutcome) -> str:
    if outcome.succeeded:
        return (
            f"MimeCast sync successful: {outcome.events_written} events over "
            f"{outcome.pages} pages, stopped on {outcome.stop_reason.value}"
        )
    return f"MimeCast sync stopped on {outcome.stop_reason.value}: {outcome.detail}"


async def run_sync(
    session: Session,
    settings: Settings = default_settings,
    client: Optional[MimecastClient] = None,
    geo: Optional[GeoEnricher] = None,
) -> SyncOutcome:
    """Execute one SIEM sync invocation and record its outcome."""
    processing_date = datetime.now(timezone.utc)
    success = False
    message = ""

    client = client or MimecastClient(
        settings.mimecast_credentials,
        base_url=settings.mimecast_base_url,
        uri=settings.mimecast_uri,
        timeout=settings.sync_request_timeout_seconds,
    )
    geo = geo or GeoEnricher(settings.geo_database_path)

    try:
        logger.info(
            f"SIEM sync - Execute - {processing_date.isoformat()}",
            extra={"endpoint": client.url},
        )
        client.validate_config()
        engine = PaginationEngine(
            client=client,
            cursor_store=CursorStore(session),
            event_sink=EventSink(session),
            geo=geo,
            processing_date=processing_date,
            max_pages=settings.sync_max_pages,
        )
        outcome = await engine.run()
        success = outcome.succeeded
        message = _outcome_message(outcome)
        return outcome
    except Exception as e:
        message = (
            f"SIEM sync - {processing_date.isoformat()} - {e}, {traceback.format_exc()}"
        )
        logger.error(message)
        raise
    finally:
        # a failed flush earlier in the run must not block the run record
        session.rollback()
        try:
            RunReporter(session).record(SERVICE_TYPE, processing_date, success, message)
            logger.info(f"SIEM sync - Final - success={success}")
        finally:
            await client.close()
