from __future__ import annotations

import logging
import os
import queue
import time
from threading import Thread
from typing import Any, Callable, Iterable, Protocol

from kubernetes import client, config, watch

from .reconciler import ENDPOINTS, SERVICE, Reconciler

logger = logging.getLogger(__name__)


_STOP = -1  # queue marker honoured whatever the current generation


class WatchFailed(Exception):
    pass


class EventSource(Protocol):
    kind: str

    def stream(self) -> Iterable[dict[str, Any]]: ...

    def stop(self) -> None: ...


class ResourceWatch:
    """One cluster-wide watch over a list function of CoreV1Api."""

    def __init__(self, kind: str, list_func: Callable[..., Any]):
        self.kind = kind
        self._list_func = list_func
        self._watch = watch.Watch()

    def stream(self) -> Iterable[dict[str, Any]]:
        return self._watch.stream(self._list_func)

    def stop(self) -> None:
        self._watch.stop()


def load_kube_config(in_cluster: bool = True) -> None:
    if in_cluster:
        try:
            config.load_incluster_config()
            logger.info("Loaded in-cluster Kubernetes config")
            return
        except config.ConfigException:
            logger.info("Not running in a cluster, falling back to kubeconfig")
    config.load_kube_config()
    logger.info("Loaded kubeconfig")


def cluster_watches(api: client.CoreV1Api | None = None) -> Callable[[], tuple[EventSource, EventSource]]:
    """Factory opening the Service and Endpoints watches on every call."""
    core = api or client.CoreV1Api()

    def _open() -> tuple[EventSource, EventSource]:
        return (
            ResourceWatch(SERVICE, core.list_service_for_all_namespaces),
            ResourceWatch(ENDPOINTS, core.list_endpoints_for_all_namespaces),
        )

    return _open


def _abort(err: BaseException | None) -> None:
    logger.critical("Kubernetes watch could not be re-established: %s", err)
    logging.shutdown()
    os._exit(1)


class WatchSupervisor:
    """Feeds watch events to the reconciler and re-opens closed watches.

    Both watches are pumped by their own thread into one queue. When either
    stream ends the supervisor re-opens both, up to `max_failures` attempts
    `retry_delay_s` apart, then gives up through `on_fatal`. An attempt fails
    when opening raises or when a watch closes before its first event; the
    count resets once a watch that has delivered events closes.
    """

    def __init__(
        self,
        reconciler: Reconciler,
        open_watches: Callable[[], tuple[EventSource, EventSource]],
        max_failures: int = 3,
        retry_delay_s: float = 5.0,
        on_fatal: Callable[[BaseException | None], None] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.reconciler = reconciler
        self.open_watches = open_watches
        self.max_failures = max(1, int(max_failures))
        self.retry_delay_s = retry_delay_s
        self.on_fatal = on_fatal or _abort
        self._sleep = sleep
        self._queue: queue.Queue[tuple[int, str, dict[str, Any] | None]] = queue.Queue()
        self._generation = 0
        self._sources: tuple[EventSource, ...] = ()
        self._stop = False
        self._last_error: BaseException | None = None
        self._received: set[str] = set()
        self._closed = ""
        self._thr: Thread | None = None

    def start(self) -> None:
        if self._thr and self._thr.is_alive():
            return
        self._thr = Thread(target=self.run, name="watch-supervisor", daemon=True)
        self._thr.start()

    def stop(self) -> None:
        self._stop = True
        self._close()
        self._queue.put((_STOP, "", None))

    def _pump(self, generation: int, source: EventSource) -> None:
        try:
            for event in source.stream():
                self._queue.put((generation, source.kind, event))
        except Exception as e:
            logger.warning("%s watch failed: %s: %s", source.kind, type(e).__name__, e)
            self._last_error = e
        self._queue.put((generation, source.kind, None))

    def _close(self) -> None:
        for source in self._sources:
            source.stop()
        self._sources = ()

    def connect(self) -> None:
        """Open both watches; events of earlier watches are dropped from now on."""
        self._close()
        sources = self.open_watches()
        self._generation += 1
        self._received = set()
        self._sources = tuple(sources)
        for source in self._sources:
            Thread(target=self._pump, args=(self._generation, source), name=f"watch-{source.kind}", daemon=True).start()

    def run_once(self) -> bool:
        """Apply the next event. Returns False when a watch has closed."""
        while True:
            generation, kind, event = self._queue.get()
            if generation in (self._generation, _STOP):
                break
        if event is None:
            self._closed = kind
            return False
        event_type = event.get("type")
        if event_type == "ERROR":
            status = event.get("raw_object") or event.get("object")
            logger.warning("%s watch error: %s", kind, status)
            self._last_error = WatchFailed(f"{kind} watch error: {status}")
            self._closed = kind
            return False
        self._received.add(kind)
        try:
            self.reconciler.apply(kind, event_type, event["object"])
        except Exception:
            logger.exception("Failed to apply %s %s event", kind, event_type)
        return True

    def recover(self, failures: int = 0) -> int:
        """Re-open both watches after a closed channel.

        `failures` counts the attempts already lost in a row; each lost attempt
        is followed by `retry_delay_s` of sleep. Returns the count once the
        watches are open again, or `max_failures` when the budget is spent.
        """
        while True:
            if failures:
                self._sleep(self.retry_delay_s)
                if failures >= self.max_failures:
                    return failures
            try:
                self.connect()
                logger.info("Kubernetes watches re-established")
                return failures
            except Exception as e:
                failures += 1
                self._last_error = e
                logger.warning("Watch reconnect attempt %d/%d failed: %s", failures, self.max_failures, e)

    def run(self) -> None:
        try:
            self.connect()
        except Exception as e:
            self.on_fatal(e)
            return
        logger.info("Watching services and endpoints")
        failures = 0
        while not self._stop:
            if self.run_once():
                continue
            if self._stop:
                break
            logger.warning("Kubernetes %s watch channel closed", self._closed)
            # A watch that closes before delivering anything counts as a failed attempt.
            if self._closed in self._received:
                failures = 0
            else:
                failures += 1
                logger.warning("Watch attempt %d/%d failed: %s", failures, self.max_failures, self._last_error)
            failures = self.recover(failures)
            if failures >= self.max_failures:
                self._close()
                self.on_fatal(WatchFailed(f"giving up after {self.max_failures} attempts: {self._last_error}"))
                return
        self._close()
