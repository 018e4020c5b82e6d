"""Kubernetes service proxy.

HTTP gateway that exposes annotated cluster services under a single endpoint:
 - routes are learnt from Service annotations through watch streams
 - requests are dispatched by longest matching path prefix
 - individual pods are reachable under /endpoint/<ns>/<svc>/<index>/

Authentication is expected to happen in a fronting proxy.
"""
