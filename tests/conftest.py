import asyncio
from typing import Any, Callable, Dict, List, Tuple

import httpx
import pytest

from praetor_monitor.core.config import PollSettings, Settings
from praetor_monitor.telemetry.clients.platform import PlatformClient

BASE_URL = "http://platform.test"


class FakePlatform:
    """
    MockTransport handler routing by (method, path).

    Each route holds a list of responses; they are served in order and the
    last one repeats. A response is ``(status, body)`` or a callable taking
    the request and returning one.
    """

    def __init__(self):
        self.routes: Dict[Tuple[str, str], List[Any]] = {}
        self.requests: List[httpx.Request] = []

    def on(self, method: str, path: str, *responses: Any) -> None:
        self.routes[(method, path)] = list(responses)

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        responses = self.routes.get((request.method, request.url.path))
        if not responses:
            return httpx.Response(404, json={"error": "not found"})

        response = responses.pop(0) if len(responses) > 1 else responses[0]
        if callable(response):
            response = response(request)

        status, body = response
        if body is None:
            return httpx.Response(status)
        if isinstance(body, (bytes, str)):
            return httpx.Response(status, content=body)
        return httpx.Response(status, json=body)


@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()


@pytest.fixture
def make_client() -> Callable[[FakePlatform], PlatformClient]:
    def factory(handler: FakePlatform) -> PlatformClient:
        return PlatformClient(BASE_URL, token="secret", transport=httpx.MockTransport(handler))

    return factory


@pytest.fixture
def fast_settings() -> Settings:
    return Settings(poll=PollSettings(jobs_interval=0.01, run_interval=0.01, trailing_fetches=2))


async def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached before timeout")
        await asyncio.sleep(0.005)


@pytest.fixture
def wait_until():
    return _wait_until


def empty_catalog(platform: FakePlatform) -> None:
    for path in ("/api/v1/job-templates", "/api/v1/projects", "/api/v1/inventories"):
        platform.on("GET", path, (200, {"items": []}))


@pytest.fixture
def with_empty_catalog():
    return empty_catalog
