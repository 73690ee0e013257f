# filters.py
"""Watch predicates: decide per event whether a reconciliation is worth queueing.

All predicates are pure: they look at object metadata only. For MODIFIED
events on source kinds the pre-change snapshot is evaluated when the
informer has one.
"""
from __future__ import annotations

from typing import Iterable, Optional

from config import ControllerConfig, Ref
from identity import is_enabled, ref_of
from k8s import MANAGED_BY_LABEL, NAME, SERVICE_NAME_LABEL, labels_of, meta
from informer import Event


def subject(event: Event) -> Optional[dict]:
    if event.type == "MODIFIED" and event.old is not None:
        return event.old
    return event.obj


def accept_source_endpoints(event: Event, cfg: ControllerConfig, dynamic_sources: Iterable[Ref] = ()) -> bool:
    ref = ref_of(subject(event))
    return ref == cfg.source_ref or ref in set(dynamic_sources)


def accept_source_slice(event: Event, cfg: ControllerConfig, dynamic_sources: Iterable[Ref] = ()) -> bool:
    obj = subject(event)
    ref = (meta(obj).get("namespace", ""), labels_of(obj).get(SERVICE_NAME_LABEL, ""))
    if not ref[1]:
        return False
    return ref == cfg.source_ref or ref in set(dynamic_sources)


def _is_managed_service(obj: Optional[dict], cfg: ControllerConfig) -> bool:
    return obj is not None and (ref_of(obj) == cfg.managed_ref or is_enabled(obj))


def accept_managed_service(event: Event, cfg: ControllerConfig) -> bool:
    # Both snapshots count here: toggling the enabled annotation must
    # reach the reconciler in either direction.
    if event.type == "MODIFIED" and _is_managed_service(event.old, cfg):
        return True
    return _is_managed_service(event.obj, cfg)


def accept_managed_slice(event: Event) -> bool:
    """Slices written by this controller; a change or deletion re-examines their service."""
    lbls = labels_of(subject(event))
    return lbls.get(MANAGED_BY_LABEL) == NAME and bool(lbls.get(SERVICE_NAME_LABEL))
