"""SIEMSYNC — Run Outcome Log."""

from datetime import datetime

from sqlmodel import Session

from siemsync.models.siem_models import RunLog


class RunReporter:
    def __init__(self, session: Session):
        self.session = session

    def record(
        self, service_name: str, timestamp: datetime, success: bool, message: str
    ) -> RunLog:
        """Store the single outcome row for one invocation."""
        log = RunLog(
            service_type=service_name,
            processing_date=timestamp,
            is_success=success,
            response=message,
        )
        self.session.add(log)
        self.session.commit()
        return log
