"""SIEMSYNC — Append-only Event Store."""

from sqlalchemy import func
from sqlmodel import Session, select

from siemsync.models.siem_models import SiemEvent


class EventSink:
    """Writes each event in its own commit, so a failure after N events leaves N stored."""

    def __init__(self, session: Session):
        self.session = session

    def append(self, event: SiemEvent) -> None:
        try:
            self.session.add(event)
            self.session.commit()
        except Exception:
            # keep the session usable for the cursor write that follows
            self.session.rollback()
            raise

    def count(self) -> int:
        return self.session.exec(select(func.count()).select_from(SiemEvent)).one()
