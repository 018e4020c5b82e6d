from __future__ import annotations

import logging
from typing import Callable

import httpx
from fastapi import Request, Response
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from .registry import ServiceRoute

logger = logging.getLogger(__name__)

# Headers that apply to a single connection and must not be forwarded.
HOP_BY_HOP = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "proxy-connection",
    "te",
    "trailer",
    "transfer-encoding",
    "upgrade",
}


def strip_prefix(path: str, prefix: str) -> str:
    """Return path without prefix; "/foo" against "/foo/" leaves ""."""
    if path.startswith(prefix):
        return path[len(prefix):]
    return ""


def remap_path(route: ServiceRoute, path: str) -> str:
    return route.map_prefix + strip_prefix(path, route.path)


def unmap_location(route: ServiceRoute, location: str) -> str:
    """Translate a backend redirect target back under the route path."""
    if not location.startswith(route.map_prefix):
        return location
    rest = location[len(route.map_prefix):]
    if route.map_prefix.endswith("/") and not route.path.endswith("/"):
        return route.path + "/" + rest
    return route.path + rest


def endpoint_subpath(path: str) -> str:
    """Drop the /endpoint/<ns>/<svc>/<index> prefix from a per-pod request path."""
    parts = path[1:].split("/", 4)
    if len(parts) < 5:
        return "/"
    return "/" + parts[4]


def forward_headers(request: Request) -> dict[str, str]:
    headers = {k: v for k, v in request.headers.items() if k not in HOP_BY_HOP and k != "host"}
    if "user-agent" not in headers:
        # No client agent: forward an empty one.
        headers["user-agent"] = ""
    if request.client is not None:
        prior = headers.get("x-forwarded-for")
        headers["x-forwarded-for"] = f"{prior}, {request.client.host}" if prior else request.client.host
    return headers


class ProxyHandler:
    """Forwards requests to one backend origin.

    `rewrite_path` maps the inbound path to the backend path;
    `rewrite_location` (optional) maps Location response headers back.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        origin: str,
        rewrite_path: Callable[[str], str] | None = None,
        rewrite_location: Callable[[str], str] | None = None,
    ):
        self.client = client
        self.origin = httpx.URL(origin)
        self.rewrite_path = rewrite_path
        self.rewrite_location = rewrite_location

    def __repr__(self) -> str:
        return f"ProxyHandler({self.origin})"

    def target_url(self, request: Request) -> httpx.URL:
        path = request.url.path
        if self.rewrite_path is not None:
            path = self.rewrite_path(path)
        return self.origin.copy_with(path=path or "/", query=request.scope.get("query_string") or None)

    async def __call__(self, request: Request) -> Response:
        url = self.target_url(request)
        upstream_req = self.client.build_request(
            method=request.method,
            url=url,
            headers=forward_headers(request),
            content=await request.body(),
        )
        try:
            upstream = await self.client.send(upstream_req, stream=True)
        except httpx.RequestError as e:
            logger.error("proxy error for %s %s: %s: %s", request.method, url, type(e).__name__, e)
            return Response(status_code=502)

        response = StreamingResponse(
            upstream.aiter_raw(),
            status_code=upstream.status_code,
            background=BackgroundTask(upstream.aclose),
        )
        raw_headers = []
        for name, value in upstream.headers.multi_items():
            if name in HOP_BY_HOP:
                continue
            if name == "location" and self.rewrite_location is not None:
                value = self.rewrite_location(value)
            raw_headers.append((name.encode("latin-1"), value.encode("latin-1")))
        response.raw_headers = raw_headers
        return response


class HandlerFactory:
    """Builds forwarding handlers that share one httpx client."""

    def __init__(self, client: httpx.AsyncClient, scheme: str = "http"):
        self.client = client
        self.scheme = scheme

    def service_handler(self, origin: str, route: ServiceRoute) -> ProxyHandler:
        if not route.map_prefix:
            return ProxyHandler(self.client, origin)
        return ProxyHandler(
            self.client,
            origin,
            rewrite_path=lambda path: remap_path(route, path),
            rewrite_location=lambda location: unmap_location(route, location),
        )

    def pod_handler(self, ip: str, port: int) -> ProxyHandler:
        host = f"[{ip}]" if ":" in ip else ip
        return ProxyHandler(self.client, f"{self.scheme}://{host}:{port}", rewrite_path=endpoint_subpath)
