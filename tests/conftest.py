import sys

import httpx
import pytest
from kubernetes import client

# Ensure project root is importable (so `import main` / `import cli` work without installing)
import os as _os
_project_root = _os.path.dirname(_os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from svcproxy.gateway import HandlerFactory  # noqa: E402
from svcproxy.reconciler import Reconciler  # noqa: E402
from svcproxy.registry import Registry  # noqa: E402


class _Body(httpx.AsyncByteStream):
    def __init__(self, content: bytes):
        self.content = content

    async def __aiter__(self):
        yield self.content


class Backend(httpx.AsyncBaseTransport):
    """httpx transport that records what reached the backends.

    Responses are handed back unread, as a network transport does, so the
    proxy streams them the same way it streams real upstream bodies.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.responder = lambda request: httpx.Response(200, text="ok")

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        await request.aread()
        self.requests.append(request)
        response = self.responder(request)
        return httpx.Response(response.status_code, headers=response.headers, stream=_Body(response.content))

    @property
    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]


@pytest.fixture
def backend():
    return Backend()


@pytest.fixture
def handlers(backend):
    return HandlerFactory(httpx.AsyncClient(transport=backend))


@pytest.fixture
def registry():
    return Registry()


@pytest.fixture
def reconciler(registry, handlers):
    return Reconciler(registry, handlers)


def _service(namespace, name, annotations=None, ports=None):
    spec = client.V1ServiceSpec(ports=[client.V1ServicePort(port=p) for p in ports]) if ports else None
    return client.V1Service(
        metadata=client.V1ObjectMeta(namespace=namespace, name=name, annotations=annotations),
        spec=spec,
    )


def _address(ip, pod_name=None):
    ref = client.V1ObjectReference(kind="Pod", name=pod_name) if pod_name else None
    return client.V1EndpointAddress(ip=ip, target_ref=ref)


def _endpoints(namespace, name, ready=(), not_ready=()):
    """ready / not_ready are sequences of (ip, pod_name)."""
    subsets = []
    if ready:
        subsets.append(client.V1EndpointSubset(addresses=[_address(*a) for a in ready]))
    if not_ready:
        subsets.append(client.V1EndpointSubset(not_ready_addresses=[_address(*a) for a in not_ready]))
    return client.V1Endpoints(
        metadata=client.V1ObjectMeta(namespace=namespace, name=name),
        subsets=subsets,
    )


@pytest.fixture
def make_service():
    return _service


@pytest.fixture
def make_endpoints():
    return _endpoints
