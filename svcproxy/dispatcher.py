from __future__ import annotations

from typing import Any, Awaitable, Callable

from fastapi import FastAPI, Request, Response
from fastapi.responses import PlainTextResponse

from .api_models import EndpointStatus, PodStatus, ServiceStatus
from .constants import ENDPOINT_PATH, ENDPOINTS_PAGE, SERVICES_PAGE
from .gateway import HandlerFactory
from .registry import Registry

Handler = Callable[[Request], Awaitable[Response]]


async def not_found(request: Request) -> Response:
    return PlainTextResponse("404 page not found\n", status_code=404)


def parse_endpoint_path(path: str) -> tuple[str, int] | None:
    """Split /endpoint/<ns>/<svc>/<index>/<rest> into ("<ns>/<svc>", index)."""
    parts = path[1:].split("/", 4)
    if len(parts) < 5:
        return None
    if not (parts[3].isascii() and parts[3].isdigit()):
        return None
    return f"{parts[1]}/{parts[2]}", int(parts[3])


def create_app(
    registry: Registry,
    handlers: HandlerFactory,
    default_handler: Handler | None = None,
    lifespan: Any = None,
) -> FastAPI:
    """Gateway application: status pages, per-pod routing and service routes."""
    fallback = default_handler or not_found
    app = FastAPI(title="k8s-svc-proxy", docs_url=None, redoc_url=None, openapi_url=None, lifespan=lifespan)
    app.state.registry = registry
    app.state.handlers = handlers

    @app.get(SERVICES_PAGE, response_model=dict[str, ServiceStatus])
    def services_status() -> dict[str, ServiceStatus]:
        return {
            svc_id: ServiceStatus(
                path=route.path,
                port=route.port,
                map_prefix=route.map_prefix,
                description=route.description,
            )
            for svc_id, route in registry.services_snapshot().items()
        }

    @app.get(ENDPOINTS_PAGE, response_model=list[EndpointStatus])
    def endpoints_status() -> list[EndpointStatus]:
        return [
            EndpointStatus(
                name=svc_id,
                port=port,
                backends=[PodStatus(pod_name=p.pod_name, ip=p.ip) for p in pods],
            )
            for svc_id, port, pods in registry.endpoints_snapshot()
        ]

    async def serve_endpoint(request: Request) -> Response:
        path = request.url.path
        parsed = parse_endpoint_path(path)
        if parsed is None:
            return PlainTextResponse(path + "\n", status_code=404)
        key, index = parsed
        handler = registry.pod_handler(key, index, handlers.pod_handler)
        if handler is None:
            return PlainTextResponse(key + "\n", status_code=404)
        return await handler(request)

    async def dispatch(request: Request) -> Response:
        # Only the lookup runs under the registry lock.
        handler = registry.lookup(request.url.path)
        if handler is None:
            return await fallback(request)
        return await handler(request)

    # Plain routes without a method list: every method is proxied.
    app.add_route(ENDPOINT_PATH + "{subpath:path}", serve_endpoint, include_in_schema=False)
    app.add_route("/{full_path:path}", dispatch, include_in_schema=False)
    return app
