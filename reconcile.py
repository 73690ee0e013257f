# reconcile.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from cleanup import CleanupReport, collect, owned_slices
from config import ControllerConfig, Ref
from identity import Identity, resolve
from k8s import SERVICE_NAME_LABEL
from mode import ENDPOINTSLICE
from ports import PortPolicy, policy_from_config
from sync import EndpointSliceSync, EndpointsSync, SyncReport

logger = logging.getLogger("reconcile")

SYNCED = "synced"
CLEANED = "cleaned"
SOURCE_MISSING = "source-missing"
MANAGED_MISSING = "managed-missing"
SERVICE_MISSING = "service-missing"
NOT_MANAGED = "not-managed"


@dataclass
class Result:
    """Outcome of one reconciliation; anything returned counts as success."""

    key: Ref
    outcome: str
    identity: Optional[Identity] = None
    sync: Optional[SyncReport] = None
    cleanup: Optional[CleanupReport] = None
    desired: List[dict] = field(default_factory=list)


def _service_ports(service: Optional[dict]) -> list:
    return ((service or {}).get("spec", {}) or {}).get("ports", []) or []


class Reconciler:
    """Converges the managed endpoints of one key toward its source.

    The key is the managed (namespace, name). Not-found reads end the cycle
    quietly; any other API error propagates so the work queue can retry.
    """

    def __init__(self, client, cfg: ControllerConfig, policy: Optional[PortPolicy] = None):
        self.client = client
        self.cfg = cfg
        self.policy = policy or policy_from_config(cfg)
        self.endpoints = EndpointsSync(client)
        self.slices = EndpointSliceSync(client)

    def reconcile(self, key: Ref) -> Result:
        return self._run(key, dry_run=False)

    def plan(self, key: Ref) -> Result:
        """Compute what reconcile() *would* do, without writing anything."""
        return self._run(key, dry_run=True)

    def _run(self, key: Ref, dry_run: bool) -> Result:
        if self.cfg.sync_mode == ENDPOINTSLICE:
            return self._reconcile_slices(key, dry_run)
        return self._reconcile_endpoints(key, dry_run)

    # ─────────────────────────────────────────────
    # Whole-object
    # ─────────────────────────────────────────────
    def _reconcile_endpoints(self, key: Ref, dry_run: bool) -> Result:
        service = self.client.get_service(*key)
        identity = resolve(service, self.cfg)
        if identity.managed != key:
            # a service that is neither static nor enabled (any more)
            return Result(key, NOT_MANAGED, identity)

        source = self.client.get_endpoints(*identity.source)
        if source is None:
            logger.debug("source endpoints %s/%s not found", *identity.source)
            return Result(key, SOURCE_MISSING, identity)

        managed = self.client.get_endpoints(*identity.managed)
        if managed is None:
            logger.debug("managed endpoints %s/%s not found, nothing to sync yet", *identity.managed)
            return Result(key, MANAGED_MISSING, identity)

        if self.policy.needs_service and service is None:
            logger.debug("managed service %s/%s not found, no ports to publish", *key)
            return Result(key, SERVICE_MISSING, identity)

        ports = self.policy.compute_ports(_service_ports(service))
        body = self.endpoints.sync(source, managed, ports, dry_run=dry_run)
        return Result(key, SYNCED, identity, desired=[body])

    # ─────────────────────────────────────────────
    # Per-slice
    # ─────────────────────────────────────────────
    def _reconcile_slices(self, key: Ref, dry_run: bool) -> Result:
        namespace, name = key
        service = self.client.get_service(namespace, name)
        if service is None:
            return Result(key, MANAGED_MISSING)

        identity = resolve(service, self.cfg)
        if identity.managed != key:
            # no longer managed: drop whatever we wrote for it
            report = collect(self.client, namespace, name, keep=None, dry_run=dry_run)
            return Result(key, NOT_MANAGED, identity, cleanup=report)

        source_ns, source_name = identity.source
        if self.client.get_endpoints(source_ns, source_name) is None:
            logger.info("source %s/%s is gone, cleaning up slices of %s/%s", source_ns, source_name, namespace, name)
            report = collect(self.client, namespace, name, keep=None, dry_run=dry_run)
            return Result(key, CLEANED, identity, cleanup=report)

        source_slices = self.client.list_endpoint_slices(source_ns, f"{SERVICE_NAME_LABEL}={source_name}")
        existing = owned_slices(self.client, namespace, name)
        existing_names = {(s.get("metadata") or {}).get("name") for s in existing}
        # never copy our own output back in when source and managed coincide
        source_slices = [
            s for s in source_slices
            if not (source_ns == namespace and (s.get("metadata") or {}).get("name") in existing_names)
        ]

        ports = self.policy.compute_ports(_service_ports(service))
        report = self.slices.sync(service, source_slices, ports, existing=existing, dry_run=dry_run)

        # a source slice that disappeared leaves an orphan copy behind
        stale = collect(
            self.client,
            namespace,
            name,
            keep=report.desired_names,
            slices=existing,
            dry_run=dry_run,
        )
        report.deleted = stale.deleted
        if report.failed:
            logger.warning("%d of %d slices failed to apply for %s/%s", len(report.failed), len(report.desired_names), namespace, name)

        return Result(
            key,
            SYNCED,
            identity,
            sync=report,
            cleanup=stale,
            desired=report.bodies,
        )


def print_plan(result: Result) -> None:
    ns, name = result.key
    print(f"[plan] key={ns}/{name} outcome={result.outcome}")
    if result.identity is not None:
        src_ns, src_name = result.identity.source
        print(f"[plan] source={src_ns}/{src_name} mode={result.identity.mode}")
    if result.sync is not None:
        for k in ("applied", "unchanged", "failed"):
            items = getattr(result.sync, k) or []
            if not items:
                continue
            print(f"[plan] {k}:")
            for n in items:
                print(f"  - {n}")
    if result.cleanup is not None and result.cleanup.deleted:
        print("[plan] delete:")
        for n in result.cleanup.deleted:
            print(f"  - {n}")
    if result.outcome == SYNCED and result.sync is None:
        print("[plan] replace:")
        for body in result.desired:
            md = body.get("metadata", {})
            print(f"  - {md.get('namespace')}/{md.get('name')}")
