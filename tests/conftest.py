"""Shared test fixtures for the contract-checkout test suite."""

from __future__ import annotations

import io
from typing import TYPE_CHECKING, Any

import httpx
import pytest

from contract_checkout.config.settings import StoreEngine

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

BACKEND_URL = "https://api.test"


class FakeBackend:
    """Route table for ``httpx.MockTransport``.

    Each route holds a list of responses; they are served in order and
    the last one repeats. A response is ``(status, json)`` or a callable
    taking the request (sync or async) and returning an ``httpx.Response``.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], list[Any]] = {}
        self.requests: list[httpx.Request] = []

    def on(self, method: str, path: str, *responses: Any) -> FakeBackend:
        self.routes.setdefault((method, path), []).extend(responses)
        return self

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, json={"message": f"no route {request.url.path}"})
        spec = queue.pop(0) if len(queue) > 1 else queue[0]
        if callable(spec):
            response = spec(request)
            if not isinstance(response, httpx.Response):
                response = await response
            return response
        status, body = spec
        if isinstance(body, bytes):
            return httpx.Response(status, content=body)
        return httpx.Response(status, json=body)


class FakeNavigator:
    """Records host navigation calls."""

    def __init__(self, on_redirect: Callable[[str], None] | None = None) -> None:
        self.redirects: list[str] = []
        self.replaces: list[str] = []
        self._on_redirect = on_redirect

    def redirect(self, url: str) -> None:
        if self._on_redirect is not None:
            self._on_redirect(url)
        self.redirects.append(url)

    def replace(self, url: str) -> None:
        self.replaces.append(url)


class FakeSleep:
    """Records requested delays without waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def app_config():
    """Provide a test AppConfig with safe defaults."""
    from contract_checkout.config.settings import AppConfig, BackendConfig, StoreConfig

    return AppConfig(
        debug=True,
        backend=BackendConfig(url=BACKEND_URL, token="test-token"),
        store=StoreConfig(engine=StoreEngine.MEMORY),
    )


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def navigator() -> FakeNavigator:
    return FakeNavigator()


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
async def gateway(app_config, backend) -> AsyncIterator:
    """A connected GatewayClient whose transport is the fake backend."""
    from contract_checkout.gateway.client import GatewayClient

    client = GatewayClient(app_config.backend)
    await client.connect()
    await client._client.aclose()
    client._client = httpx.AsyncClient(
        transport=httpx.MockTransport(backend), base_url=BACKEND_URL
    )
    yield client
    await client.close()


@pytest.fixture
async def store(app_config) -> AsyncIterator:
    """A connected in-memory WizardStore."""
    from contract_checkout.store.client import WizardStore

    wizard_store = WizardStore(app_config.store)
    await wizard_store.connect()
    yield wizard_store
    await wizard_store.close()


@pytest.fixture
def pdf_bytes() -> bytes:
    """A two-page 600x800 contract."""
    from reportlab.pdfgen import canvas

    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=(600, 800))
    for n in (1, 2):
        c.drawString(72, 720, f"Contract page {n}")
        c.showPage()
    c.save()
    return buf.getvalue()


@pytest.fixture
def png_bytes() -> bytes:
    """A small opaque signature image."""
    from PIL import Image

    buf = io.BytesIO()
    Image.new("RGBA", (60, 20), (0, 0, 0, 255)).save(buf, format="PNG")
    return buf.getvalue()
