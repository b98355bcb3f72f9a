"""Shared fixtures: in-memory database, fake geolocation file, Mimecast mock API."""

import base64
import json
from types import SimpleNamespace
from typing import Callable, Dict, List

import httpx
import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from siemsync.config import MimecastCredentials
from siemsync.connectors.mimecast.client import MimecastClient
from siemsync.enrichment.geo import GeoEnricher
import siemsync.models.siem_models  # noqa: F401

BASE_URL = "https://api.mimecast.test"
URI = "/api/audit/get-siem-logs"

UNAVAILABLE = "This parameter is unavailable for selected data file."


def geo_record(lat="51.507351", lon="-0.127758", city="London"):
    return SimpleNamespace(
        country_short="GB",
        country_long="United Kingdom of Great Britain and Northern Ireland",
        region="England",
        city=city,
        latitude=lat,
        longitude=lon,
    )


class FakeGeoDatabase:
    """Stands in for an opened IP2Location BIN file."""

    def __init__(self, records: Dict[str, SimpleNamespace]):
        self.records = records
        self.closed = False
        self.lookups: List[str] = []

    def get_all(self, ip):
        self.lookups.append(ip)
        return self.records.get(
            ip, SimpleNamespace(country_short="-", country_long="-", region="-",
                                city="-", latitude="-", longitude="-")
        )

    def close(self):
        self.closed = True


@pytest.fixture
def session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session


@pytest.fixture
def credentials() -> MimecastCredentials:
    return MimecastCredentials(
        secret_key=base64.b64encode(b"super-secret-signing-key").decode(),
        access_key="access-123",
        application_key="app-key-456",
        application_id="app-id-789",
    )


@pytest.fixture
def geo_db() -> FakeGeoDatabase:
    return FakeGeoDatabase({"81.2.69.160": geo_record()})


@pytest.fixture
def geo(geo_db) -> GeoEnricher:
    return GeoEnricher("IP2LOCATION-LITE-DB5.BIN", opener=lambda path: geo_db)


def siem_response(
    status_code: int = 200,
    events=None,
    token: str | None = None,
    content_type: str = "application/octet-stream",
    body: str | None = None,
    headers: Dict[str, str] | None = None,
) -> httpx.Response:
    all_headers = {"content-type": content_type}
    if token:
        all_headers["mc-siem-token"] = token
    all_headers.update(headers or {})
    if body is None:
        body = json.dumps({"data": events or []})
    return httpx.Response(status_code, headers=all_headers, content=body.encode())


class MockSiemApi:
    """Replays canned responses in order and records the requests it saw."""

    def __init__(self, responses: List[httpx.Response]):
        self.responses = list(responses)
        self.requests: List[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.responses:
            raise AssertionError("Unexpected extra request to the SIEM API")
        return self.responses.pop(0)

    def sent_tokens(self) -> List[str]:
        return [json.loads(r.content)["data"][0]["token"] for r in self.requests]


@pytest.fixture
def make_client(credentials) -> Callable[[MockSiemApi], MimecastClient]:
    def _make(api: MockSiemApi, creds: MimecastCredentials | None = None) -> MimecastClient:
        return MimecastClient(
            creds or credentials,
            base_url=BASE_URL,
            uri=URI,
            timeout=600,
            transport=httpx.MockTransport(api.handler),
        )

    return _make
