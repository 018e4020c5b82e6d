"""Annotation keys and fixed paths served by the proxy itself."""

# Path namespace owned by the proxy; services may not claim it.
STATUS_PATH = "/k8s-svc-proxy/"
SERVICES_PAGE = STATUS_PATH + "services"
ENDPOINTS_PAGE = STATUS_PATH + "endpoints"

ENDPOINT_PATH = "/endpoint/"

ANNOTATION_PREFIX = "k8s-svc-proxy.local/"
ANNOTATION_PATH = ANNOTATION_PREFIX + "path"
ANNOTATION_PORT = ANNOTATION_PREFIX + "port"
ANNOTATION_MAP = ANNOTATION_PREFIX + "map"
ANNOTATION_DESCRIPTION = ANNOTATION_PREFIX + "description"
ANNOTATION_ENDPOINT_PORT = ANNOTATION_PREFIX + "endpoint-port"

# Service port that needs no explicit ":port" in the backend URL.
DEFAULT_HTTP_PORT = 80
MAX_PORT = 65535
