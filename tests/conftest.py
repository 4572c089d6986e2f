import httpx
import pytest

from tests.mocks.segment import FakeSegmentAPI, make_segment_transport
from trackling.client import Client
from trackling.transport import HttpxTransport

WRITE_KEY = "test-write-key"
ENV_VARS = (
    "SEGMENT_WRITE_KEY",
    "SEGMENT_HOST",
    "SEGMENT_MAX_BATCH_SIZE",
    "SEGMENT_MAX_BATCH_BYTES",
    "SEGMENT_MAX_MESSAGE_BYTES",
    "SEGMENT_TIMEOUT",
)


@pytest.fixture(autouse=True)
def test_clear_env(monkeypatch):
    # setenv first so teardown also removes values loaded from .env files
    for name in ENV_VARS:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)


@pytest.fixture
def fake_api() -> FakeSegmentAPI:
    """
    Create a fake collection API.

    Returns
    -------
    FakeSegmentAPI
        Fake API recording requests.
    """
    return FakeSegmentAPI()


@pytest.fixture
def transport(fake_api: FakeSegmentAPI) -> HttpxTransport:
    """
    Create an httpx transport wired to the fake API.

    Returns
    -------
    HttpxTransport
        Transport backed by ``httpx.MockTransport``.
    """
    return HttpxTransport(
        client=httpx.AsyncClient(transport=make_segment_transport(api=fake_api)),
    )


@pytest.fixture
def client(transport: HttpxTransport) -> Client:
    """
    Create a client with default ceilings talking to the fake API.

    Returns
    -------
    Client
        Configured client.
    """
    return Client(WRITE_KEY, transport=transport)
