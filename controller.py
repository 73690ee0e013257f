# controller.py
from __future__ import annotations

import logging
import threading
from typing import List, Optional

from config import ControllerConfig, Ref
from filters import accept_managed_service, accept_managed_slice, accept_source_endpoints, accept_source_slice
from identity import dynamic_sources, managed_refs_for_source, ref_of
from informer import Event, Informer
from k8s import SERVICE_NAME_LABEL, labels_of, meta
from mode import ENDPOINTSLICE
from ports import PortPolicy
from reconcile import Reconciler
from workqueue import WorkQueue

logger = logging.getLogger("controller")


class Controller:
    """Wires watches, predicates, the work queue and the reconciler together."""

    def __init__(
        self,
        cluster,
        cfg: ControllerConfig,
        policy: Optional[PortPolicy] = None,
        queue: Optional[WorkQueue] = None,
        informer_cls=Informer,
    ):
        self.cluster = cluster
        self.cfg = cfg
        self.reconciler = Reconciler(cluster, cfg, policy)
        self.queue = queue or WorkQueue()
        self._stop = threading.Event()
        self._threads: List[threading.Thread] = []

        self.services = informer_cls(
            "services",
            cluster.core.list_service_for_all_namespaces,
            self.on_service_event,
            resync_seconds=cfg.resync_seconds,
        )
        if cfg.sync_mode == ENDPOINTSLICE:
            self.sources = informer_cls(
                "endpointslices",
                cluster.discovery.list_endpoint_slice_for_all_namespaces,
                self.on_slice_event,
                resync_seconds=cfg.resync_seconds,
                label_selector=SERVICE_NAME_LABEL,
            )
        else:
            self.sources = informer_cls(
                "endpoints",
                cluster.core.list_endpoints_for_all_namespaces,
                self.on_endpoints_event,
                resync_seconds=cfg.resync_seconds,
            )

    # ─────────────────────────────────────────────
    # Event handlers
    # ─────────────────────────────────────────────
    def enqueue(self, key: Ref) -> None:
        logger.debug("enqueue %s/%s", *key)
        self.queue.add(key)

    def _dynamic_sources(self):
        return dynamic_sources(self.services.cached())

    def _enqueue_for_source(self, source: Ref) -> None:
        for key in managed_refs_for_source(source, self.services.cached(), self.cfg):
            self.enqueue(key)

    def on_service_event(self, event: Event) -> None:
        if accept_managed_service(event, self.cfg):
            self.enqueue(ref_of(event.obj))

    def on_endpoints_event(self, event: Event) -> None:
        if accept_source_endpoints(event, self.cfg, self._dynamic_sources()):
            self._enqueue_for_source(ref_of(event.obj))

    def on_slice_event(self, event: Event) -> None:
        service = (meta(event.obj).get("namespace", ""), labels_of(event.obj).get(SERVICE_NAME_LABEL, ""))
        if accept_managed_slice(event):
            self.enqueue(service)
        # one of our copies may itself be the source of another alias
        if accept_source_slice(event, self.cfg, self._dynamic_sources()):
            self._enqueue_for_source(service)

    # ─────────────────────────────────────────────
    # Workers
    # ─────────────────────────────────────────────
    def process_next(self) -> bool:
        """Reconcile one key; False once the queue is shut down."""
        key = self.queue.get()
        if key is None:
            return False
        try:
            result = self.reconciler.reconcile(key)
        except Exception:
            delay = self.queue.add_rate_limited(key)
            logger.exception("error reconciling %s/%s, requeue in %.3fs", key[0], key[1], delay)
        else:
            self.queue.forget(key)
            logger.info("reconciled %s/%s: %s", key[0], key[1], result.outcome)
        finally:
            self.queue.done(key)
        return True

    def _worker(self) -> None:
        while self.process_next():
            pass

    def start(self) -> None:
        for inf in (self.services, self.sources):
            t = threading.Thread(target=inf.run, args=(self._stop,), name=f"informer-{inf.name}", daemon=True)
            t.start()
            self._threads.append(t)
        for i in range(self.cfg.workers):
            t = threading.Thread(target=self._worker, name=f"worker-{i}", daemon=True)
            t.start()
            self._threads.append(t)
        logger.info("controller started with %d workers", self.cfg.workers)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        for inf in (self.services, self.sources):
            inf.stop()
        self.queue.shutdown()
        for t in self._threads:
            t.join(timeout=timeout)
        logger.info("controller stopped")
