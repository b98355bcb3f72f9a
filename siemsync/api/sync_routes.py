"""SIEMSYNC — Sync API Routes."""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlmodel import Session, select

from siemsync.connectors.mimecast.auth import ConfigurationError
from siemsync.database import get_session
from siemsync.models.siem_models import RunLog, SiemEvent
from siemsync.scheduler.jobs import sync_lock
from siemsync.storage.cursor_store import CursorStore
from siemsync.sync.engine import SyncOutcome
from siemsync.sync.pipeline import run_sync
from siemsync.core.logging import get_logger

logger = get_logger("api.sync")

router = APIRouter(prefix="/sync", tags=["Sync"])


class RunSyncResponse(BaseModel):
    """Response for POST /sync/run."""

    status: str = "success"
    succeeded: bool
    outcome: SyncOutcome


class CursorResponse(BaseModel):
    cursor: Optional[str] = None


@router.post("/run", response_model=RunSyncResponse)
async def trigger_sync(session: Session = Depends(get_session)):
    """Run one SIEM sync now.

    Refuses with 409 while a scheduled or manual run holds the cursor.
    """
    if sync_lock.locked():
        raise HTTPException(status_code=409, detail="A SIEM sync is already running")

    async with sync_lock:
        try:
            outcome = await run_sync(session=session)
        except ConfigurationError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except Exception as e:
            logger.error(f"SIEM sync failed: {e}")
            raise HTTPException(status_code=500, detail=f"SIEM sync failed: {str(e)}")

    return RunSyncResponse(
        status="success" if outcome.succeeded else "stopped",
        succeeded=outcome.succeeded,
        outcome=outcome,
    )


@router.get("/cursor", response_model=CursorResponse)
async def get_cursor(session: Session = Depends(get_session)):
    """Return the stored pagination token, if any."""
    return CursorResponse(cursor=CursorStore(session).get())


@router.get("/runs", response_model=List[RunLog])
async def list_runs(
    limit: int = Query(20, ge=1, le=500),
    session: Session = Depends(get_session),
):
    """Most recent run outcomes, newest first."""
    return session.exec(
        select(RunLog).order_by(RunLog.processing_date.desc(), RunLog.id.desc()).limit(limit)
    ).all()


@router.get("/events", response_model=List[SiemEvent])
async def list_events(
    limit: int = Query(50, ge=1, le=1000),
    session: Session = Depends(get_session),
):
    """Most recently stored events, newest first."""
    return session.exec(
        select(SiemEvent).order_by(SiemEvent.id.desc()).limit(limit)
    ).all()
