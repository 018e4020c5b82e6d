import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import Request
from fastapi.responses import PlainTextResponse, RedirectResponse

from svcproxy.constants import SERVICES_PAGE
from svcproxy.dispatcher import create_app
from svcproxy.gateway import HandlerFactory
from svcproxy.reconciler import Reconciler
from svcproxy.registry import Registry
from svcproxy.settings import settings
from svcproxy.watcher import WatchSupervisor, cluster_watches, load_kube_config

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("svcproxy")


async def default_handler(request: Request):
    """Requests no service claims: the root goes to the services status document."""
    if request.url.path == "/":
        return RedirectResponse(SERVICES_PAGE, status_code=303)
    return PlainTextResponse("404 page not found\n", status_code=404)


registry = Registry()
handlers = HandlerFactory(
    httpx.AsyncClient(timeout=settings.upstream_timeout_s, follow_redirects=False),
    scheme=settings.upstream_scheme,
)
reconciler = Reconciler(registry, handlers)


def start_watchers():
    load_kube_config(settings.in_cluster)
    supervisor = WatchSupervisor(
        reconciler,
        cluster_watches(),
        max_failures=settings.watch_max_failures,
        retry_delay_s=settings.watch_retry_delay_s,
    )
    supervisor.start()
    return supervisor


@asynccontextmanager
async def lifespan(app):
    start_watchers()
    yield
    await handlers.client.aclose()


app = create_app(registry, handlers, default_handler, lifespan=lifespan)


if __name__ == "__main__":
    import uvicorn

    logger.info("Listening on port %d", settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
