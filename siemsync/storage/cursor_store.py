"""SIEMSYNC — Durable Pagination Cursor."""

from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Session, select

from siemsync.models.siem_models import DEFAULT_CURSOR_NAME, SiemCursor


class CursorStore:
    """Single named cursor row.

    ``get`` returns None when no cursor has been stored yet; database errors
    are not masked as "no cursor".
    """

    def __init__(self, session: Session, name: str = DEFAULT_CURSOR_NAME):
        self.session = session
        self.name = name

    def _row(self) -> Optional[SiemCursor]:
        return self.session.exec(
            select(SiemCursor).where(SiemCursor.name == self.name)
        ).first()

    def get(self) -> Optional[str]:
        row = self._row()
        return row.token if row else None

    def set(self, token: str) -> None:
        """Upsert the token, never creating a second row for this name."""
        row = self._row()
        if row is None:
            row = SiemCursor(name=self.name, token=token)
        else:
            row.token = token
            row.updated_at = datetime.now(timezone.utc)
        try:
            self.session.add(row)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
