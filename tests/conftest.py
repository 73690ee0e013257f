from __future__ import annotations

import copy
from typing import Dict, List, Optional, Tuple

import pytest
from kubernetes.client.rest import ApiException


def _matches_selector(labels: dict, selector: str) -> bool:
    for part in (selector or "").split(","):
        part = part.strip()
        if not part:
            continue
        if "=" in part:
            k, v = part.split("=", 1)
            if labels.get(k) != v:
                return False
        elif part not in labels:
            return False
    return True


class FakeCluster:
    """In-memory stand-in for k8s.ClusterClient that records every write."""

    def __init__(self):
        self.services: Dict[Tuple[str, str], dict] = {}
        self.endpoints: Dict[Tuple[str, str], dict] = {}
        self.slices: Dict[Tuple[str, str], dict] = {}
        self.writes: List[tuple] = []
        self.fail_apply: set = set()
        self.fail_delete: set = set()
        self.fail_get: Optional[int] = None

    # seeding
    def add(self, obj: dict) -> dict:
        m = obj["metadata"]
        key = (m["namespace"], m["name"])
        kind = obj.get("kind")
        if kind == "Service":
            self.services[key] = copy.deepcopy(obj)
        elif kind == "Endpoints":
            self.endpoints[key] = copy.deepcopy(obj)
        else:
            self.slices[key] = copy.deepcopy(obj)
        return obj

    def _get(self, store, namespace, name):
        if self.fail_get is not None:
            raise ApiException(status=self.fail_get, reason="injected")
        if not namespace or not name:
            return None
        obj = store.get((namespace, name))
        return copy.deepcopy(obj) if obj is not None else None

    def get_service(self, namespace, name):
        return self._get(self.services, namespace, name)

    def get_endpoints(self, namespace, name):
        return self._get(self.endpoints, namespace, name)

    def replace_endpoints(self, namespace, name, body):
        self.writes.append(("replace", namespace, name))
        self.endpoints[(namespace, name)] = copy.deepcopy(body)
        return copy.deepcopy(body)

    def list_endpoint_slices(self, namespace, label_selector):
        return [
            copy.deepcopy(s)
            for (ns, _), s in sorted(self.slices.items())
            if ns == namespace and _matches_selector(s["metadata"].get("labels", {}) or {}, label_selector)
        ]

    def apply_endpoint_slice(self, namespace, name, body):
        if name in self.fail_apply:
            raise ApiException(status=500, reason="injected")
        self.writes.append(("apply", namespace, name))
        self.slices[(namespace, name)] = copy.deepcopy(body)
        return copy.deepcopy(body)

    def delete_endpoint_slice(self, namespace, name):
        if name in self.fail_delete:
            raise ApiException(status=500, reason="injected")
        self.writes.append(("delete", namespace, name))
        return self.slices.pop((namespace, name), None) is not None


@pytest.fixture
def cluster() -> FakeCluster:
    return FakeCluster()


def svc(ns: str, name: str, ports=None, annotations=None, uid: Optional[str] = None) -> dict:
    meta = {"namespace": ns, "name": name}
    if annotations:
        meta["annotations"] = dict(annotations)
    if uid:
        meta["uid"] = uid
    return {"kind": "Service", "metadata": meta, "spec": {"ports": list(ports or [])}}


def eps(ns: str, name: str, ips, ports=None, labels=None) -> dict:
    meta = {"namespace": ns, "name": name}
    if labels:
        meta["labels"] = dict(labels)
    subsets = []
    if ips:
        subsets.append({"addresses": [{"ip": ip} for ip in ips], "ports": list(ports or [])})
    return {"kind": "Endpoints", "metadata": meta, "subsets": subsets}


def eps_slice(ns: str, name: str, service: str, ips, ports=None, labels=None) -> dict:
    lbls = {"kubernetes.io/service-name": service}
    lbls.update(labels or {})
    return {
        "kind": "EndpointSlice",
        "metadata": {"namespace": ns, "name": name, "labels": lbls},
        "addressType": "IPv4",
        "endpoints": [{"addresses": [ip], "conditions": {"ready": True}} for ip in ips],
        "ports": list(ports or []),
    }
