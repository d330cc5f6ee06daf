"""
Pytest configuration and shared fixtures.
"""

import copy
import json
from typing import Any, Dict, List

import pytest

from consumerview.api import AuthenticatedApiClient, BATCH_LOOKUP_PATH, LOGIN_PATH
from consumerview.client import LookupOrchestrator
from consumerview.token_cache import MemoryTokenStore, TokenCache


USER_ID = "UserA"
PASSWORD = "TopSecret"
CLIENT_ID = "12345"
ASSET_ID = "Asset1"
AUTH_TOKEN = "123-456-789"


class FakeTransport:
    """
    Records every request and replays queued responses per path.

    Responses for a path are consumed in order; the last one repeats. A
    response body may be a callable taking the request JSON, which lets a
    test answer based on what was sent.
    """

    def __init__(self):
        self.routes: Dict[str, List[Any]] = {}
        self.calls: List[tuple] = []

    def queue(self, path: str, status: int, body: Any = None, times: int = 1) -> "FakeTransport":
        self.routes.setdefault(path, []).extend([(status, body)] * times)
        return self

    def post(self, path: str, json_body: Any):
        self.calls.append((path, copy.deepcopy(json_body)))
        responses = self.routes.get(path)
        if not responses:
            raise AssertionError(f"Unexpected request to {path}")
        status, body = responses[0] if len(responses) == 1 else responses.pop(0)
        if callable(body):
            body = body(json_body)
        return status, body

    def count(self, path: str) -> int:
        return sum(1 for p, _ in self.calls if p == path)

    def bodies(self, path: str) -> List[Any]:
        return [body for p, body in self.calls if p == path]


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def api(transport) -> AuthenticatedApiClient:
    return AuthenticatedApiClient(transport=transport)


@pytest.fixture
def orchestrator(api) -> LookupOrchestrator:
    return LookupOrchestrator(
        user_id=USER_ID,
        password=PASSWORD,
        client_id=CLIENT_ID,
        asset_id=ASSET_ID,
        api=api,
        token_cache=TokenCache(MemoryTokenStore()),
    )


@pytest.fixture
def login_response() -> str:
    return json.dumps({"token": AUTH_TOKEN})


@pytest.fixture
def search_items() -> Dict[str, Dict[str, str]]:
    return {
        "PersonA": {"email": "person.a@example.com"},
        "Postcode1": {"postcode": "SW1A 1AA"},
    }


@pytest.fixture
def lookup_batch() -> List[Dict[str, str]]:
    return [{"email": "person.a@example.com"}, {"postcode": "SW1A 1AA"}]


@pytest.fixture
def lookup_response() -> str:
    return json.dumps([
        {"pc_mosaic_uk_6_group": "A", "Match": "P"},
        {"pc_mosaic_uk_6_type": "66", "Match": "PC"},
    ])


@pytest.fixture
def expected_result() -> Dict[str, Any]:
    return {
        "PersonA": {
            "pc_mosaic_uk_6_group": {"api_code": "A", "group": "A", "description": "City Prosperity"},
            "Match": {"api_code": "P", "match_level": "person"},
        },
        "Postcode1": {
            "pc_mosaic_uk_6_type": {"api_code": "66", "type": "O66", "description": "Student Scene"},
            "Match": {"api_code": "PC", "match_level": "postcode"},
        },
    }


@pytest.fixture
def happy_transport(transport, login_response, lookup_response) -> FakeTransport:
    """Transport whose login and batch lookup both succeed."""
    transport.queue(LOGIN_PATH, 200, login_response)
    transport.queue(BATCH_LOOKUP_PATH, 200, lookup_response)
    return transport


class FakeClock:
    """Manually advanced epoch clock; `sleep` advances it."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
