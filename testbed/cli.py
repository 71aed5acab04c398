from __future__ import annotations

import argparse
import json
import logging
import sys

from pydantic import ValidationError

from .errors import ProvisionError
from .events import journal
from .kube_ops import KubeStore
from .provisioner import Provisioner
from .settings import settings


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def main(argv: list[str] | None = None, store=None) -> int:
    p = argparse.ArgumentParser(description="Provision a test workload and wait for it to become ready")
    p.add_argument("--namespace", default=settings.namespace)
    p.add_argument("--timeout-s", type=float, default=settings.ready_timeout_s, help="Max seconds to wait for readiness")
    p.add_argument("--poll-interval-s", type=float, default=settings.poll_interval_s)
    p.add_argument("-v", "--verbose", action="store_true")
    sub = p.add_subparsers(dest="cmd", required=True)

    s_echo = sub.add_parser("echo", help="Deploy the echoserver workload (http-svc)")
    s_echo.add_argument("--replicas", type=int, default=1)

    s_bin = sub.add_parser("httpbin", help="Deploy the httpbin workload")
    s_bin.add_argument("--replicas", type=int, default=1)

    s_dep = sub.add_parser("deploy", help="Deploy an arbitrary image")
    s_dep.add_argument("--name", required=True)
    s_dep.add_argument("--image", required=True)
    s_dep.add_argument("--port", type=int, required=True)
    s_dep.add_argument("--replicas", type=int, default=1)

    args = p.parse_args(argv)
    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING, format="%(asctime)s %(levelname)s %(message)s")

    try:
        prov = Provisioner(
            store or KubeStore.from_settings(),
            namespace=args.namespace,
            ready_timeout_s=args.timeout_s,
            poll_interval_s=args.poll_interval_s,
        )
        if args.cmd == "echo":
            report = prov.new_echo_deployment_with_replicas(args.replicas)
        elif args.cmd == "httpbin":
            report = prov.new_httpbin_deployment_with_replicas(args.replicas)
        else:
            report = prov.new_deployment(args.name, args.image, args.port, args.replicas)
    except (ProvisionError, ValidationError) as e:
        _print({"error": str(e), "events": journal.recent(20)})
        return 1

    _print(report.as_dict())
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
