from __future__ import annotations

from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Callable


@dataclass
class ServiceRoute:
    path: str
    port: int = -1  # -1: no explicit port in the backend URL
    map_prefix: str = ""
    description: str = ""
    handler: Any = field(default=None, compare=False, repr=False)


@dataclass
class PodEndpoint:
    pod_name: str
    ip: str
    handler: Any = field(default=None, compare=False, repr=False)


@dataclass
class EndpointSet:
    port: int = 0  # 0: per-pod routing disabled
    pods: list[PodEndpoint] = field(default_factory=list)


def _matches(request_path: str, prefix: str) -> bool:
    if request_path.startswith(prefix):
        return True
    # "/foo" is served by the "/foo/" route.
    return prefix.endswith("/") and request_path == prefix[:-1]


class Registry:
    """Routing state shared by the watch loop and the request handlers.

    A single lock guards all three tables. Methods only touch in-memory
    structures so the lock is never held across network I/O.
    """

    def __init__(self) -> None:
        self.lock = Lock()
        self.routes: dict[str, list[Any]] = {}  # path -> handlers
        self.services: dict[str, ServiceRoute] = {}  # namespace/name -> route
        self.endpoints: dict[str, EndpointSet] = {}  # namespace/name -> pods

    def _unregister(self, route: ServiceRoute) -> None:
        handlers = self.routes.get(route.path)
        if handlers is None:
            return
        self.routes[route.path] = [h for h in handlers if h is not route.handler]
        if not self.routes[route.path]:
            del self.routes[route.path]

    def get_route(self, service_id: str) -> ServiceRoute | None:
        with self.lock:
            return self.services.get(service_id)

    def install_route(self, service_id: str, route: ServiceRoute) -> bool:
        """Register route for service_id, replacing its previous registration.

        Returns True when another service already holds the same path; both
        handlers are kept and the first one keeps serving.
        """
        with self.lock:
            prev = self.services.get(service_id)
            if prev is not None:
                self._unregister(prev)
            conflict = bool(self.routes.get(route.path))
            self.routes.setdefault(route.path, []).append(route.handler)
            self.services[service_id] = route
            return conflict

    def remove_route(self, service_id: str) -> ServiceRoute | None:
        with self.lock:
            route = self.services.pop(service_id, None)
            if route is not None:
                self._unregister(route)
            return route

    def lookup(self, request_path: str) -> Any | None:
        """Return the first handler of the longest path prefixing request_path."""
        best = ""
        handler = None
        with self.lock:
            for prefix, handlers in self.routes.items():
                if len(prefix) > len(best) and _matches(request_path, prefix):
                    best = prefix
                    handler = handlers[0]
        return handler

    def set_endpoint_port(self, service_id: str, port: int) -> None:
        with self.lock:
            self.endpoints.setdefault(service_id, EndpointSet()).port = port

    def disable_endpoint_port(self, service_id: str) -> None:
        with self.lock:
            data = self.endpoints.get(service_id)
            if data is not None:
                data.port = 0

    def set_pod_endpoints(self, service_id: str, pods: list[PodEndpoint]) -> None:
        # The list is replaced, never mutated: cached pod handlers go with it.
        with self.lock:
            self.endpoints.setdefault(service_id, EndpointSet()).pods = pods

    def pod_handler(self, service_id: str, index: int, build: Callable[[str, int], Any]) -> Any | None:
        """Return the cached handler of pod `index`, building it on first use.

        `build(ip, port)` must be cheap and perform no I/O.
        """
        with self.lock:
            data = self.endpoints.get(service_id)
            if data is None or data.port <= 0:
                return None
            if index < 0 or index >= len(data.pods):
                return None
            pod = data.pods[index]
            if pod.handler is None:
                pod.handler = build(pod.ip, data.port)
            return pod.handler

    def services_snapshot(self) -> dict[str, ServiceRoute]:
        with self.lock:
            return dict(self.services)

    def endpoints_snapshot(self) -> list[tuple[str, int, list[PodEndpoint]]]:
        with self.lock:
            return [
                (service_id, data.port, list(data.pods))
                for service_id, data in sorted(self.endpoints.items())
                if data.port != 0
            ]

    def paths(self) -> list[str]:
        with self.lock:
            return sorted(self.routes)

    def handlers_for(self, path: str) -> list[Any]:
        with self.lock:
            return list(self.routes.get(path, []))
