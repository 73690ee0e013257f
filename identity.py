# identity.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Set

from config import ControllerConfig, Ref
from k8s import (
    ENABLED_ANNOTATION,
    SOURCE_NAME_ANNOTATION,
    SOURCE_NAMESPACE_ANNOTATION,
    annotations_of,
    meta,
)

STATIC = "static"
DYNAMIC = "dynamic"


@dataclass(frozen=True)
class Identity:
    source: Ref
    managed: Ref
    mode: str


def ref_of(obj: Optional[dict]) -> Ref:
    m = meta(obj)
    return (m.get("namespace", "") or "", m.get("name", "") or "")


def is_enabled(obj: Optional[dict]) -> bool:
    return annotations_of(obj).get(ENABLED_ANNOTATION) == "true"


def annotated_source(obj: Optional[dict]) -> Ref:
    ann = annotations_of(obj)
    return (ann.get(SOURCE_NAMESPACE_ANNOTATION, "") or "", ann.get(SOURCE_NAME_ANNOTATION, "") or "")


def resolve(trigger: Optional[dict], cfg: ControllerConfig) -> Identity:
    """Pick the (source, managed) pair for one reconciliation.

    An enabled trigger manages itself and names its source through
    annotations; missing annotations resolve to empty names, which read as
    not-found further down. Anything else (including no trigger at all) uses
    the static pair from configuration.
    """
    if trigger is not None and is_enabled(trigger):
        return Identity(source=annotated_source(trigger), managed=ref_of(trigger), mode=DYNAMIC)
    return Identity(source=cfg.source_ref, managed=cfg.managed_ref, mode=STATIC)


def dynamic_sources(services: Iterable[dict]) -> Set[Ref]:
    """Sources currently referenced by enabled services."""
    out: Set[Ref] = set()
    for svc in services:
        if is_enabled(svc):
            src = annotated_source(svc)
            if src[0] and src[1]:
                out.add(src)
    return out


def managed_refs_for_source(source: Ref, services: Iterable[dict], cfg: ControllerConfig) -> List[Ref]:
    """Managed keys to re-examine after a change to `source`."""
    refs: List[Ref] = []
    if source == cfg.source_ref:
        refs.append(cfg.managed_ref)
    for svc in services:
        if is_enabled(svc) and annotated_source(svc) == source:
            ref = ref_of(svc)
            if ref not in refs:
                refs.append(ref)
    return refs
