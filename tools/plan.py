#!/usr/bin/env python3
"""Plan-only runner: prints what the controller would reconcile without applying changes.

Usage:
  SYNC_MODE=ENDPOINTSLICE python3 tools/plan.py
  KEY=monitoring/apiserver-alias SYNC_MODE=ENDPOINTSLICE python3 tools/plan.py

Notes:
- Uses your local kubeconfig (same behavior as app.py).
- KEY defaults to the static managed endpoint (MANAGED_ENDPOINT_NAMESPACE/MANAGED_ENDPOINT_NAME).
- Does not create/update/delete any objects.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

# Ensure project root is on sys.path when running as a script
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from config import ControllerConfig  # noqa: E402
from k8s import ClusterClient, load_kube  # noqa: E402
from reconcile import Reconciler, print_plan  # noqa: E402


def parse_key(raw: str, cfg: ControllerConfig) -> tuple[str, str]:
    if not raw:
        return cfg.managed_ref
    if "/" in raw:
        ns, name = raw.split("/", 1)
        return ns, name
    return cfg.managed_endpoint_namespace, raw


def main() -> int:
    cfg = ControllerConfig.from_env()
    print(f"[plan] using {load_kube()} config")

    key = parse_key(os.environ.get("KEY", ""), cfg)
    result = Reconciler(ClusterClient(), cfg).plan(key)
    print_plan(result)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
