# k8s.py
from __future__ import annotations

import hashlib
import re
from typing import List, Optional

from kubernetes import client, config
from kubernetes.client.rest import ApiException

NAME = "endpoint-copier-operator"

MANAGED_BY_LABEL = "endpointslice.kubernetes.io/managed-by"
SERVICE_NAME_LABEL = "kubernetes.io/service-name"
SOURCE_SLICE_LABEL = "endpoint-copier-operator/source-slice"

ENABLED_ANNOTATION = "endpoint-copier-operator/enabled"
SOURCE_NAME_ANNOTATION = "endpoint-copier-operator/default-endpoint-name"
SOURCE_NAMESPACE_ANNOTATION = "endpoint-copier-operator/default-endpoint-namespace"

APPLY_CONTENT_TYPE = "application/apply-patch+yaml"


def load_kube() -> str:
    """Load in-cluster config, falling back to the local kubeconfig."""
    try:
        config.load_incluster_config()
        return "in-cluster"
    except config.ConfigException:
        config.load_kube_config()
        return "kubeconfig"


def sanitize_name(name: str) -> str:
    # RFC1123: lower-case alphanumerics, '-' or '.', start/end alphanumeric
    n = (name or "").lower()
    n = re.sub(r"[^a-z0-9-.]", "-", n)
    n = re.sub(r"[-.]{2,}", "-", n)
    n = re.sub(r"^[^a-z0-9]+", "", n)
    n = re.sub(r"[^a-z0-9]+$", "", n)
    return n or "slice"


def sanitize_label_value(val: str) -> str:
    # Labels: alphanumerics, '-', '_', '.', start/end alphanumeric, max 63
    v = str(val or "")
    v = re.sub(r"[^A-Za-z0-9-_.]", "-", v)
    v = re.sub(r"[-_.]{2,}", "-", v)
    v = re.sub(r"^[^A-Za-z0-9]+", "", v)
    v = re.sub(r"[^A-Za-z0-9]+$", "", v)
    if not v:
        return "value"
    if len(v) > 63:
        h = hashlib.sha1(str(val).encode()).hexdigest()[:6]
        v = v[:(63 - 7)] + "-" + h
        v = re.sub(r"[^A-Za-z0-9]+$", "", v)
        if not v:
            v = h
    return v


def is_not_found(exc: Exception) -> bool:
    return isinstance(exc, ApiException) and exc.status == 404


def meta(obj: Optional[dict]) -> dict:
    return ((obj or {}).get("metadata", {}) or {})


def labels_of(obj: Optional[dict]) -> dict:
    return meta(obj).get("labels", {}) or {}


def annotations_of(obj: Optional[dict]) -> dict:
    return meta(obj).get("annotations", {}) or {}


class ClusterClient:
    """Thin wrapper over CoreV1Api/DiscoveryV1Api returning JSON-shaped dicts.

    Reads return None on 404 (and for an empty name, which the API would
    otherwise answer with a list). Every other ApiException propagates.
    """

    def __init__(self, core=None, discovery=None):
        self.core = core or client.CoreV1Api()
        self.discovery = discovery or client.DiscoveryV1Api()

    def to_dict(self, obj) -> dict:
        return self.core.api_client.sanitize_for_serialization(obj)

    def _read(self, read_fn, namespace: str, name: str) -> Optional[dict]:
        if not namespace or not name:
            return None
        try:
            return self.to_dict(read_fn(name, namespace))
        except ApiException as e:
            if is_not_found(e):
                return None
            raise

    def get_service(self, namespace: str, name: str) -> Optional[dict]:
        return self._read(self.core.read_namespaced_service, namespace, name)

    def get_endpoints(self, namespace: str, name: str) -> Optional[dict]:
        return self._read(self.core.read_namespaced_endpoints, namespace, name)

    def replace_endpoints(self, namespace: str, name: str, body: dict) -> dict:
        res = self.core.replace_namespaced_endpoints(name=name, namespace=namespace, body=body)
        return self.to_dict(res)

    def list_endpoint_slices(self, namespace: str, label_selector: str) -> List[dict]:
        res = self.discovery.list_namespaced_endpoint_slice(
            namespace=namespace,
            label_selector=label_selector,
        )
        return self.to_dict(res).get("items", []) or []

    def apply_endpoint_slice(self, namespace: str, name: str, body: dict) -> dict:
        res = self.discovery.patch_namespaced_endpoint_slice(
            name=name,
            namespace=namespace,
            body=body,
            field_manager=NAME,
            force=True,
            _content_type=APPLY_CONTENT_TYPE,
        )
        return self.to_dict(res)

    def delete_endpoint_slice(self, namespace: str, name: str) -> bool:
        """Delete a slice; returns False when it was already gone."""
        try:
            self.discovery.delete_namespaced_endpoint_slice(name=name, namespace=namespace)
        except ApiException as e:
            if is_not_found(e):
                return False
            raise
        return True
