#!/usr/bin/env python3
"""tools/render.py

Render the controller's desired managed Endpoints / EndpointSlices as multi-document YAML.

Why this exists:
- Managed objects are computed from live source endpoints and the managed service.
- Sometimes you want an artifact to review / diff / apply manually.

Usage examples:
  SYNC_MODE=ENDPOINTSLICE python3 tools/render.py > /tmp/slices.yaml
  KEY=default/kubernetes-vip PORT_POLICY=SERVICE python3 tools/render.py | head

Notes:
- This does NOT apply anything.
- For safe validation, pair it with: kubectl apply --dry-run=server -f -
"""

from __future__ import annotations

import os
import sys

import yaml

# Allow executing from tools/ without installing as a package
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from config import ControllerConfig  # noqa: E402
from k8s import ClusterClient, load_kube  # noqa: E402
from reconcile import Reconciler  # noqa: E402
from plan import parse_key  # noqa: E402


def render(desired: list[dict], out=None) -> None:
    out = out or sys.stdout
    for obj in desired:
        yaml.safe_dump(obj, out, sort_keys=False)
        out.write("---\n")


def main() -> int:
    cfg = ControllerConfig.from_env()
    load_kube()

    key = parse_key(os.environ.get("KEY", ""), cfg)
    result = Reconciler(ClusterClient(), cfg).plan(key)
    if not result.desired:
        print(f"[render] nothing to render: outcome={result.outcome}", file=sys.stderr)
        return 1

    try:
        render(result.desired)
    except BrokenPipeError:
        # Common when piping to `head`; exit cleanly
        return 0

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
