import pytest
from sqlalchemy import event
from sqlalchemy.exc import PendingRollbackError
from sqlmodel import select

from conftest import MockSiemApi, siem_response
from siemsync.config import MimecastCredentials, Settings
from siemsync.connectors.mimecast.auth import ConfigurationError
from siemsync.models.siem_models import RunLog, SiemCursor
from siemsync.storage.cursor_store import CursorStore
from siemsync.storage.event_sink import EventSink
from siemsync.sync.engine import EventProcessingError, StopReason
from siemsync.sync.pipeline import SERVICE_TYPE, run_sync

TEST_SETTINGS = Settings(sync_max_pages=50, _env_file=None)


def _runs(session):
    return session.exec(select(RunLog)).all()


@pytest.mark.asyncio
async def test_successful_run_records_success(session, make_client, geo) -> None:
    api = MockSiemApi(
        [
            siem_response(events=[{"IP": "81.2.69.160"}, {"Dir": "Inbound"}], token="T2",
                          content_type="application/json"),
            siem_response(status_code=429, content_type="application/json", body="{}"),
        ]
    )
    client = make_client(api)

    outcome = await run_sync(session, settings=TEST_SETTINGS, client=client, geo=geo)

    assert outcome.stop_reason == StopReason.RATE_LIMITED
    runs = _runs(session)
    assert len(runs) == 1
    assert runs[0].is_success is True
    assert runs[0].service_type == SERVICE_TYPE
    assert "2 events" in runs[0].response
    assert client._client.is_closed


@pytest.mark.asyncio
async def test_server_error_records_failure_with_status_and_body(session, make_client, geo) -> None:
    api = MockSiemApi([siem_response(status_code=500, body='{"fail": "internal"}',
                                     content_type="application/json")])

    outcome = await run_sync(session, settings=TEST_SETTINGS, client=make_client(api), geo=geo)

    assert outcome.stop_reason == StopReason.API_ERROR
    runs = _runs(session)
    assert len(runs) == 1
    assert runs[0].is_success is False
    assert "500" in runs[0].response
    assert '{"fail": "internal"}' in runs[0].response
    assert CursorStore(session).get() is None
    assert EventSink(session).count() == 0


@pytest.mark.asyncio
async def test_configuration_error_aborts_before_network(session, make_client, geo) -> None:
    api = MockSiemApi([])
    client = make_client(api, MimecastCredentials(access_key="only-this"))

    with pytest.raises(ConfigurationError):
        await run_sync(session, settings=TEST_SETTINGS, client=client, geo=geo)

    assert api.requests == []
    runs = _runs(session)
    assert len(runs) == 1
    assert runs[0].is_success is False
    assert "secret_key" in runs[0].response


@pytest.mark.asyncio
async def test_event_failure_records_failed_run(session, make_client, geo, monkeypatch) -> None:
    def explode(self, event):
        raise RuntimeError("write rejected")

    monkeypatch.setattr(EventSink, "append", explode)
    api = MockSiemApi([siem_response(events=[{"Dir": "Inbound"}], token="T2")])

    with pytest.raises(EventProcessingError):
        await run_sync(session, settings=TEST_SETTINGS, client=make_client(api), geo=geo)

    runs = _runs(session)
    assert len(runs) == 1
    assert runs[0].is_success is False
    assert "write rejected" in runs[0].response


def _fail_cursor_flushes(session, times):
    """Make the next ``times`` flushes that write a SiemCursor raise."""
    remaining = {"count": times}
    attempts = []

    def after_flush(flush_session, flush_context):
        touched = list(flush_session.new) + list(flush_session.dirty)
        if remaining["count"] and any(isinstance(o, SiemCursor) for o in touched):
            remaining["count"] -= 1
            attempts.append(1)
            raise RuntimeError(f"cursor table locked (attempt {len(attempts)})")

    event.listen(session, "after_flush", after_flush)


@pytest.mark.asyncio
async def test_cursor_write_failure_still_records_one_failed_run(session, make_client, geo) -> None:
    _fail_cursor_flushes(session, times=1)
    api = MockSiemApi([siem_response(events=[{"Dir": "Inbound"}], token="T2")])
    client = make_client(api)

    with pytest.raises(RuntimeError, match="cursor table locked"):
        await run_sync(session, settings=TEST_SETTINGS, client=client, geo=geo)

    runs = _runs(session)
    assert len(runs) == 1
    assert runs[0].is_success is False
    assert "cursor table locked" in runs[0].response
    # the exit-path write retried the token after the failed one
    assert CursorStore(session).get() == "T2"
    assert client._client.is_closed


@pytest.mark.asyncio
async def test_repeated_cursor_failure_surfaces_the_first_error(session, make_client, geo) -> None:
    _fail_cursor_flushes(session, times=2)
    api = MockSiemApi([siem_response(events=[{"Dir": "Inbound"}], token="T2")])

    with pytest.raises(RuntimeError, match=r"cursor table locked \(attempt 1\)") as excinfo:
        await run_sync(session, settings=TEST_SETTINGS, client=make_client(api), geo=geo)

    assert not isinstance(excinfo.value, PendingRollbackError)
    runs = _runs(session)
    assert len(runs) == 1
    assert runs[0].is_success is False
    assert CursorStore(session).get() is None
