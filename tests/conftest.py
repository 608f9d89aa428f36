import pytest
from fastapi.testclient import TestClient

_SPAR_ENV = ("SPAR_ENDPOINT_URL", "SPAR_CUSTOMER_NUMBER", "SPAR_ASSIGNMENT_ID", "SPAR_CERT_DIR")


class FakeGateway:
    """In-memory registry gateway recording every lookup it receives."""

    def __init__(self, payload=None, error: Exception | None = None) -> None:
        self.payload = payload
        self.error = error
        self.calls: list[str] = []
        self.closed = False

    async def lookup(self, personnummer: str):
        self.calls.append(personnummer)
        if self.error is not None:
            raise self.error
        return self.payload

    async def aclose(self) -> None:
        self.closed = True


def _spar_response(answer: str, *, prefix: str = "ns2") -> str:
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<S:Envelope xmlns:S="http://schemas.xmlsoap.org/soap/envelope/">'
        "<S:Body>"
        f'<{prefix}:SPARPersonsokningSvar xmlns:{prefix}="http://statenspersonadressregister.se/schema/personsok/2021.1/personsokningsvar">'
        f"<{prefix}:PersonsokningSvarspost>{answer}</{prefix}:PersonsokningSvarspost>"
        f"</{prefix}:SPARPersonsokningSvar>"
        "</S:Body>"
        "</S:Envelope>"
    )


FULL_ANSWER = (
    "<Status>1</Status>"
    "<Namn><Fornamn>Test</Fornamn><Fornamn>User</Fornamn><Efternamn>Testsson</Efternamn></Namn>"
    "<Persondetaljer><Fodelsedatum>1990-01-16</Fodelsedatum></Persondetaljer>"
    "<Folkbokforingsadress><SvenskAdress>"
    "<Utdelningsadress2>Test Street 123</Utdelningsadress2><PostNr>12345</PostNr><Postort>Stockholm</Postort>"
    "</SvenskAdress></Folkbokforingsadress>"
    "<SenastAndrad>2023-01-01</SenastAndrad>"
)


@pytest.fixture
def spar_response():
    """Builder wrapping answer-record XML in a namespaced SOAP envelope."""
    return _spar_response


@pytest.fixture
def full_answer() -> str:
    return FULL_ANSWER


@pytest.fixture
def make_gateway():
    """Factory for FakeGateway instances with a custom payload or error."""
    return FakeGateway


@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway(payload=_spar_response(FULL_ANSWER))


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch, fake_gateway: FakeGateway) -> TestClient:
    for name in _SPAR_ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("APP_ENV", "test")

    from app.core.settings import get_settings

    get_settings.cache_clear()

    from app.api.deps import get_registry_gateway
    from app.main import app

    app.dependency_overrides[get_registry_gateway] = lambda: fake_gateway
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()

    get_settings.cache_clear()
