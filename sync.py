# sync.py
from __future__ import annotations

import copy
import hashlib
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from k8s import (
    MANAGED_BY_LABEL,
    NAME,
    SERVICE_NAME_LABEL,
    SOURCE_SLICE_LABEL,
    labels_of,
    meta,
    sanitize_label_value,
    sanitize_name,
)
from ports import map_addresses

logger = logging.getLogger("sync")


@dataclass
class SyncReport:
    applied: List[str] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    bodies: List[dict] = field(default_factory=list, repr=False)

    @property
    def desired_names(self) -> List[str]:
        return self.applied + self.unchanged + self.failed


# ─────────────────────────────────────────────
# Whole-object (Endpoints)
# ─────────────────────────────────────────────
class EndpointsSync:
    def __init__(self, client):
        self.client = client

    @staticmethod
    def desired(source: dict, managed: dict, ports: List[dict]) -> dict:
        m = meta(managed)
        labels = dict(m.get("labels", {}) or {})
        labels[MANAGED_BY_LABEL] = NAME
        metadata: Dict[str, Any] = {
            "name": m.get("name"),
            "namespace": m.get("namespace"),
            "labels": labels,
        }
        if m.get("annotations"):
            metadata["annotations"] = dict(m["annotations"])

        # Copy only subset addresses; ports come from the policy
        subsets = []
        for subset in map_addresses(source.get("subsets")):
            subset["ports"] = copy.deepcopy(ports)
            subsets.append(subset)

        return {"apiVersion": "v1", "kind": "Endpoints", "metadata": metadata, "subsets": subsets}

    def sync(self, source: dict, managed: dict, ports: List[dict], dry_run: bool = False) -> dict:
        body = self.desired(source, managed, ports)
        name = body["metadata"]["name"]
        namespace = body["metadata"]["namespace"]
        if dry_run:
            return body
        # Unconditional update: no resourceVersion, last write wins.
        self.client.replace_endpoints(namespace, name, body)
        logger.info("Successfully updated endpoint %s/%s", namespace, name)
        return body


# ─────────────────────────────────────────────
# Per-slice (EndpointSlice)
# ─────────────────────────────────────────────
def slice_name(service_name: str, source_namespace: str, source_name: str) -> str:
    digest = hashlib.sha1(f"{source_namespace}/{source_name}".encode()).hexdigest()[:8]
    base = sanitize_name(service_name)[: 63 - 9].rstrip("-.")
    return f"{base}-{digest}"


def _prune(value: Any) -> Any:
    # drop empty/None values so server-side defaults don't read as drift
    if isinstance(value, dict):
        out = {}
        for k, v in value.items():
            v = _prune(v)
            if v in (None, "", {}, []):
                continue
            out[k] = v
        return out
    if isinstance(value, list):
        return [_prune(v) for v in value]
    return value


def _matches(current: dict, desired: dict) -> bool:
    cur_labels = labels_of(current)
    for k, v in labels_of(desired).items():
        if cur_labels.get(k) != v:
            return False
    for k in ("addressType", "endpoints", "ports"):
        if _prune(current.get(k)) != _prune(desired.get(k)):
            return False
    return True


class EndpointSliceSync:
    def __init__(self, client):
        self.client = client

    @staticmethod
    def desired_slice(service: dict, source_slice: dict, ports: List[dict]) -> dict:
        svc = meta(service)
        src = meta(source_slice)
        metadata: Dict[str, Any] = {
            "name": slice_name(svc.get("name", ""), src.get("namespace", ""), src.get("name", "")),
            "namespace": svc.get("namespace"),
            "labels": {
                SERVICE_NAME_LABEL: svc.get("name"),
                MANAGED_BY_LABEL: NAME,
                SOURCE_SLICE_LABEL: sanitize_label_value(src.get("name", "")),
            },
        }
        if svc.get("uid"):
            metadata["ownerReferences"] = [
                {"apiVersion": "v1", "kind": "Service", "name": svc.get("name"), "uid": svc["uid"]}
            ]
        return {
            "apiVersion": "discovery.k8s.io/v1",
            "kind": "EndpointSlice",
            "metadata": metadata,
            "addressType": source_slice.get("addressType") or "IPv4",
            "endpoints": map_addresses(source_slice.get("endpoints")),
            "ports": copy.deepcopy(ports),
        }

    def desired(self, service: dict, source_slices: Iterable[dict], ports: List[dict]) -> List[dict]:
        return [self.desired_slice(service, s, ports) for s in source_slices]

    def sync(
        self,
        service: dict,
        source_slices: Iterable[dict],
        ports: List[dict],
        existing: Optional[Iterable[dict]] = None,
        dry_run: bool = False,
    ) -> SyncReport:
        """Apply one managed slice per source slice.

        The built bodies are kept on the report, written or not.

        Slices already in the desired state are not written. A failed apply
        is logged and recorded; the remaining slices are still attempted.
        """
        current = {meta(s).get("name"): s for s in (existing or [])}
        report = SyncReport()
        report.bodies = self.desired(service, source_slices, ports)
        for body in report.bodies:
            name = body["metadata"]["name"]
            namespace = body["metadata"]["namespace"]
            if name in current and _matches(current[name], body):
                report.unchanged.append(name)
                continue
            if dry_run:
                report.applied.append(name)
                continue
            try:
                self.client.apply_endpoint_slice(namespace, name, body)
            except Exception:
                logger.exception("error applying endpointslice %s/%s", namespace, name)
                report.failed.append(name)
                continue
            logger.info("Applied endpointslice %s/%s", namespace, name)
            report.applied.append(name)
        return report
