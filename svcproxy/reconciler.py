from __future__ import annotations

import logging
from typing import Any, Callable

from .constants import (
    ANNOTATION_DESCRIPTION,
    ANNOTATION_ENDPOINT_PORT,
    ANNOTATION_MAP,
    ANNOTATION_PATH,
    ANNOTATION_PORT,
    DEFAULT_HTTP_PORT,
    MAX_PORT,
    STATUS_PATH,
)
from .gateway import HandlerFactory
from .registry import PodEndpoint, Registry, ServiceRoute

logger = logging.getLogger(__name__)

SERVICE = "service"
ENDPOINTS = "endpoints"

ADDED = "ADDED"
MODIFIED = "MODIFIED"
DELETED = "DELETED"


def object_id(obj: Any) -> str:
    return f"{obj.metadata.namespace}/{obj.metadata.name}"


def _annotations(obj: Any) -> dict[str, str]:
    return obj.metadata.annotations or {}


def _is_decimal(raw: str) -> bool:
    return raw.isascii() and raw.isdigit()


def service_port(svc: Any) -> int:
    """Port to forward to, or -1 to use the bare service hostname."""
    annotations = _annotations(svc)
    raw = annotations.get(ANNOTATION_PORT)
    if raw is not None:
        if _is_decimal(raw):
            return int(raw)
        logger.warning("Invalid annotation %s=%r for %s", ANNOTATION_PORT, raw, object_id(svc))
    ports = (svc.spec.ports if svc.spec is not None else None) or []
    if len(ports) == 1 and ports[0].port != DEFAULT_HTTP_PORT:
        return ports[0].port
    return -1


def route_for(svc: Any) -> ServiceRoute | None:
    """Derive the route a service asks for, or None when it is not routable."""
    annotations = _annotations(svc)
    path = annotations.get(ANNOTATION_PATH)
    if path is None:
        return None
    if path.startswith(STATUS_PATH):
        logger.warning("Service %s claims reserved path %s; ignored", object_id(svc), path)
        return None
    return ServiceRoute(
        path=path,
        port=service_port(svc),
        map_prefix=annotations.get(ANNOTATION_MAP, ""),
        description=annotations.get(ANNOTATION_DESCRIPTION, ""),
    )


def endpoint_port(svc: Any) -> int:
    """Per-pod routing port, or -1 when absent or malformed."""
    raw = _annotations(svc).get(ANNOTATION_ENDPOINT_PORT)
    if raw is None:
        return -1
    if not _is_decimal(raw):
        return -1
    port = int(raw)
    if port > MAX_PORT:
        return -1
    return port


def pod_endpoints(endpoints: Any) -> list[PodEndpoint]:
    """Ready and not-ready addresses of all subsets, sorted by pod name."""
    pods: list[PodEndpoint] = []
    for subset in endpoints.subsets or []:
        for address in (subset.addresses or []) + (subset.not_ready_addresses or []):
            ref = address.target_ref
            pod_name = ref.name if ref is not None and ref.kind == "Pod" else ""
            pods.append(PodEndpoint(pod_name=pod_name or "", ip=address.ip))
    pods.sort(key=lambda p: p.pod_name)
    return pods


def make_service_url(svc: Any, route: ServiceRoute, scheme: str = "http") -> str:
    url = f"{scheme}://{svc.metadata.name}.{svc.metadata.namespace}.svc"
    if route.port >= 0:
        url += f":{route.port}"
    return url


class Reconciler:
    """Applies Service and Endpoints watch events to the registry."""

    def __init__(
        self,
        registry: Registry,
        handlers: HandlerFactory,
        service_url: Callable[[Any, ServiceRoute], str] | None = None,
    ):
        self.registry = registry
        self.handlers = handlers
        self.service_url = service_url or (lambda svc, route: make_service_url(svc, route, handlers.scheme))

    def apply(self, kind: str, event_type: str, obj: Any) -> None:
        if kind == SERVICE:
            if event_type == ADDED:
                self.service_added(obj)
                self.endpoint_port_added(obj)
            elif event_type == MODIFIED:
                self.service_modified(obj)
                self.endpoint_port_updated(obj)
            elif event_type == DELETED:
                self.service_deleted(obj)
                self.endpoint_port_deleted(obj)
            else:
                logger.warning("Ignoring %s event for service %s", event_type, object_id(obj))
        elif kind == ENDPOINTS:
            if event_type in (ADDED, MODIFIED):
                self.endpoints_updated(obj)
            elif event_type == DELETED:
                self.endpoints_deleted(obj)
            else:
                logger.warning("Ignoring %s event for endpoints %s", event_type, object_id(obj))
        else:
            logger.warning("Ignoring event for unknown kind %r", kind)

    def _install(self, svc: Any, route: ServiceRoute) -> None:
        svc_id = object_id(svc)
        route.handler = self.handlers.service_handler(self.service_url(svc, route), route)
        if self.registry.install_route(svc_id, route):
            logger.warning("Duplicate %s annotation for %s: %s", ANNOTATION_PATH, route.path, svc_id)

    def service_added(self, svc: Any) -> None:
        route = route_for(svc)
        if route is None:
            return
        svc_id = object_id(svc)
        prev = self.registry.get_route(svc_id)
        if prev is not None:
            if prev == route:
                return
            logger.info("ADD event for existing service %s", svc_id)
        logger.info("ADD service %s path=%s", svc_id, route.path)
        self._install(svc, route)

    def service_deleted(self, svc: Any) -> None:
        svc_id = object_id(svc)
        if self.registry.remove_route(svc_id) is not None:
            logger.info("DELETE service %s", svc_id)

    def service_modified(self, svc: Any) -> None:
        svc_id = object_id(svc)
        prev = self.registry.get_route(svc_id)
        route = route_for(svc)
        if prev is not None and route is not None:
            if prev == route:
                return
            logger.info("CHANGE service %s path=%s -> %s", svc_id, prev.path, route.path)
            self._install(svc, route)
        elif route is not None:
            self.service_added(svc)
        elif prev is not None:
            self.service_deleted(svc)

    def endpoint_port_added(self, svc: Any) -> None:
        port = endpoint_port(svc)
        if port <= 0:
            return
        self.registry.set_endpoint_port(object_id(svc), port)

    def endpoint_port_updated(self, svc: Any) -> None:
        port = endpoint_port(svc)
        if port > 0:
            self.registry.set_endpoint_port(object_id(svc), port)
        else:
            self.endpoint_port_deleted(svc)

    def endpoint_port_deleted(self, svc: Any) -> None:
        self.registry.disable_endpoint_port(object_id(svc))

    def endpoints_updated(self, endpoints: Any) -> None:
        self.registry.set_pod_endpoints(object_id(endpoints), pod_endpoints(endpoints))

    def endpoints_deleted(self, endpoints: Any) -> None:
        self.registry.set_pod_endpoints(object_id(endpoints), [])
