# cleanup.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from k8s import MANAGED_BY_LABEL, NAME, SERVICE_NAME_LABEL, labels_of, meta

logger = logging.getLogger("cleanup")


@dataclass
class CleanupReport:
    deleted: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


def _owned_by_controller(obj: dict) -> bool:
    return labels_of(obj).get(MANAGED_BY_LABEL) == NAME


def owned_slices(client, namespace: str, service_name: str) -> List[dict]:
    """Slices labelled for `service_name` that this controller created."""
    if not namespace or not service_name:
        return []
    labelled = client.list_endpoint_slices(namespace, f"{SERVICE_NAME_LABEL}={service_name}")
    return [s for s in labelled if _owned_by_controller(s)]


def collect(
    client,
    namespace: str,
    service_name: str,
    keep: Optional[Iterable[str]] = None,
    slices: Optional[List[dict]] = None,
    dry_run: bool = False,
) -> CleanupReport:
    """Delete owned slices of a managed service that are not in `keep`.

    keep=None removes every owned slice (the source is gone). Slices that
    vanished in the meantime count as missing, other delete errors are
    logged and the remaining slices are still attempted.
    """
    keep_names = set(keep) if keep is not None else set()
    if slices is None:
        slices = owned_slices(client, namespace, service_name)
    else:
        slices = [s for s in slices if _owned_by_controller(s)]

    report = CleanupReport()
    for s in slices:
        name = meta(s).get("name", "")
        if name in keep_names:
            continue
        if dry_run:
            report.deleted.append(name)
            continue
        try:
            gone = client.delete_endpoint_slice(namespace, name)
        except Exception:
            logger.exception("error deleting endpointslice %s/%s", namespace, name)
            report.failed.append(name)
            continue
        if gone:
            logger.info("Deleted endpointslice %s/%s", namespace, name)
            report.deleted.append(name)
        else:
            report.missing.append(name)
    return report
