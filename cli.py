from __future__ import annotations

import argparse
import json
import sys

import requests

from svcproxy.constants import ENDPOINT_PATH, ENDPOINTS_PAGE, SERVICES_PAGE


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="k8s-svc-proxy status CLI")
    p.add_argument("--api", default="http://localhost:8080", help="Proxy base URL")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("services", help="List routed services")

    s_ep = sub.add_parser("endpoints", help="List per-pod URLs")
    s_ep.add_argument("--json", action="store_true", help="Print the raw status document")

    args = p.parse_args(argv)

    base = args.api.rstrip("/")

    if args.cmd == "services":
        r = requests.get(f"{base}{SERVICES_PAGE}", timeout=10)
        _print(r.json())
        return 0 if r.ok else 1

    if args.cmd == "endpoints":
        r = requests.get(f"{base}{ENDPOINTS_PAGE}", timeout=10)
        if not r.ok:
            return 1
        status = r.json()
        if args.json:
            _print(status)
            return 0
        for svc in status:
            for i, pod in enumerate(svc.get("Backends") or []):
                print(f"{ENDPOINT_PATH}{svc['Name']}/{i}\t{svc['Port']}\t{pod['PodName']}\t{pod['IP']}")
        return 0

    return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
